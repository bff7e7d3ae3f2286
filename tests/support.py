"""Test doubles for the gateway and the outbound collaborators."""
import asyncio
import time
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from application.dtos.payments import CreatePreference, PaymentDetail, Payer, PreferenceResult
from application.services.activation_service import BusinessActivationDispatcher
from application.services.signature import build_manifest, compute_signature
from domain.payment.entity import PaymentRecord
from domain.payment.references import ReferenceType


WEBHOOK_SECRET = "test-webhook-secret"


class FakeGateway:
    provider = "fake"

    def __init__(self) -> None:
        self.details: Dict[str, PaymentDetail] = {}
        self.fetches: List[str] = []
        self.preferences: List[CreatePreference] = []
        self.error: Optional[Exception] = None

    def add(self, detail: PaymentDetail) -> PaymentDetail:
        self.details[detail.id] = detail
        return detail

    async def fetch_payment_detail(self, payment_id: str) -> PaymentDetail:
        self.fetches.append(payment_id)
        if self.error is not None:
            raise self.error
        return self.details[payment_id]

    async def create_preference(self, req: CreatePreference) -> PreferenceResult:
        self.preferences.append(req)
        return PreferenceResult(
            id="pref-1",
            payment_link="https://checkout.example/pref-1",
            external_reference=req.external_reference,
            date_created="2024-05-01T10:00:00.000-03:00",
        )

    async def aclose(self) -> None:
        return None


class RecordingStatusSync:
    def __init__(self, result: bool = True, delay: float = 0.0, error: Optional[Exception] = None) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.result = result
        self.delay = delay
        self.error = error

    async def sync_status(self, external_reference: str, mapped_status: str) -> bool:
        self.calls.append((external_reference, mapped_status))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingNotifier:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent: List[str] = []
        self.error = error

    async def send_confirmation(self, record: PaymentRecord) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(record.external_reference)


class RecordingActivation:
    def __init__(self) -> None:
        self.activated: List[str] = []
        self.fail = False

    async def __call__(self, record: PaymentRecord) -> None:
        # Yield so concurrent callers interleave.
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("activation backend down")
        self.activated.append(record.external_reference)

    def dispatcher(self) -> BusinessActivationDispatcher:
        return BusinessActivationDispatcher({ref_type: self for ref_type in ReferenceType})


def make_detail(
    payment_id: str = "123",
    external_reference: Optional[str] = "PRODUCT_9",
    status: str = "approved",
    amount: str = "50.00",
    payment_method_id: str = "pix",
) -> PaymentDetail:
    return PaymentDetail(
        id=payment_id,
        status=status,
        status_detail="accredited" if status == "approved" else None,
        external_reference=external_reference,
        transaction_amount=Decimal(amount),
        currency_id="BRL",
        payer=Payer(email="buyer@example.com", first_name="Ana", last_name="Silva"),
        payment_method_id=payment_method_id,
        payment_type_id="bank_transfer",
        date_created="2024-05-01T10:00:00.000-03:00",
        date_approved="2024-05-01T10:01:00.000-03:00" if status == "approved" else None,
        live_mode=False,
        collector_id="999",
    )


def sign_headers(data_id: str, request_id: str = "req-1", ts: Optional[int] = None, secret: str = WEBHOOK_SECRET) -> dict:
    ts_value = str(int(time.time()) if ts is None else ts)
    v1 = compute_signature(build_manifest(data_id, request_id, ts_value), secret)
    return {"x-signature": f"ts={ts_value},v1={v1}", "x-request-id": request_id}
