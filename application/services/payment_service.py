"""
Application service orchestrating charge creation.

This class depends only on the application PaymentGateway port, the record
repository and DTOs. Gateway implementations are provided by infrastructure
and injected from the composition root, keeping dependencies one-way.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.payments import CreatePreference, PaymentDetail, PreferenceResult
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.payment.entity import PaymentRecord, PaymentStatus
from domain.payment.references import classify_reference, validate_reference
from domain.payment.repository import PaymentRecordRepository


logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        store: PaymentRecordRepository,
        *,
        notification_url: Optional[str] = None,
        back_urls: Optional[dict[str, str]] = None,
        default_currency: str = "BRL",
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.notification_url = notification_url
        self.back_urls = {k: v for k, v in (back_urls or {}).items() if v}
        self.default_currency = default_currency

    async def create_preference(self, req: CreatePreference) -> PreferenceResult:
        validate_reference(req.external_reference)
        req = req.model_copy(
            update={
                "currency_id": req.currency_id or self.default_currency,
                "notification_url": req.notification_url or self.notification_url,
                "back_urls": req.back_urls or (self.back_urls or None),
            }
        )
        logger.info(
            "payment_preference_request",
            external_reference=req.external_reference,
            provider=self.gateway.provider,
            unit_price=str(req.unit_price),
            quantity=req.quantity,
        )
        result = await self.gateway.create_preference(req)
        logger.info("payment_preference_created", preference_id=result.id, external_reference=req.external_reference)

        # Placeholder only: a record that already exists keeps its status.
        placeholder = await self.store.insert_if_absent(
            PaymentRecord(
                external_reference=req.external_reference,
                status=PaymentStatus.PENDING.value,
                amount=req.unit_price * req.quantity,
                currency=req.currency_id,
                payer_email=(req.payer.email if req.payer else None) or "",
                date_created=result.date_created,
                reference_type=classify_reference(req.external_reference).value,
            )
        )
        if placeholder is None:
            logger.info("payment_placeholder_skipped", external_reference=req.external_reference)
        return result

    async def fetch_payment(self, payment_id: str) -> PaymentDetail:
        logger.info("payment_query_request", payment_id=payment_id, provider=self.gateway.provider)
        return await self.gateway.fetch_payment_detail(payment_id)
