"""
Payer confirmation notifier that hands the composed message to the log pipeline.

Delivery providers (email, SMS) plug in by implementing the same
`send_confirmation` coroutine.
"""
from __future__ import annotations

import secrets
from typing import Any, Optional

from core.logging_config import get_logger
from domain.payment.entity import PaymentRecord
from domain.payment.references import ReferenceType, classify_reference


logger = get_logger(__name__)


def _payer_name(record: PaymentRecord) -> str:
    payer = (record.raw_gateway_payload or {}).get("payer") or {}
    parts = [payer.get("first_name") or payer.get("name") or "", payer.get("last_name") or payer.get("surname") or ""]
    return " ".join(p for p in parts if p).strip()


class LogConfirmationNotifier:
    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = (base_url or "http://localhost:8000").rstrip("/")

    def access_info(self, record: PaymentRecord) -> dict[str, Any]:
        ref = record.external_reference
        ref_type = classify_reference(ref)
        if ref_type is ReferenceType.COURSE:
            return {"access_link": f"{self.base_url}/course/access/{ref}", "login_url": f"{self.base_url}/course/login"}
        if ref_type is ReferenceType.PRODUCT:
            return {"download_link": f"{self.base_url}/download/{ref}?token={secrets.token_urlsafe(16)}"}
        if ref_type is ReferenceType.SERVICE:
            return {"access_link": f"{self.base_url}/service/activate/{ref}"}
        if ref_type is ReferenceType.SUBSCRIPTION:
            return {"access_link": f"{self.base_url}/subscription/{ref}"}
        return {"access_link": f"{self.base_url}/payment/confirmation/{record.payment_id or ref}"}

    def compose(self, record: PaymentRecord) -> dict[str, Any]:
        return {
            "payment_id": record.payment_id,
            "external_reference": record.external_reference,
            "amount": str(record.amount) if record.amount is not None else None,
            "currency": record.currency,
            "payer_email": record.payer_email or None,
            "payer_name": _payer_name(record) or None,
            "approved_at": record.date_approved,
            **self.access_info(record),
        }

    async def send_confirmation(self, record: PaymentRecord) -> None:
        message = self.compose(record)
        if not message["payer_email"]:
            logger.warning("payment_confirmation_no_recipient", external_reference=record.external_reference)
        logger.info("payment_confirmation_sent", **message)
