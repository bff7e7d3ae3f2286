"""
Business activation dispatch keyed by the external reference prefix.

Each ReferenceType maps to one async handler. Handlers are best-effort: the
dispatcher converts any failure into an ActivationResult instead of raising,
so the approved-payment flow always continues.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from application.ports.collaborators import ActivationHandler
from core.logging_config import get_logger
from domain.payment.entity import PaymentRecord
from domain.payment.references import ReferenceType, classify_reference


logger = get_logger(__name__)


@dataclass(frozen=True)
class ActivationResult:
    reference_type: ReferenceType
    succeeded: bool
    error: Optional[str] = None


async def activate_course_access(record: PaymentRecord) -> None:
    logger.info(
        "activation_course_access",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        payer_email=record.payer_email,
    )


async def enable_product_download(record: PaymentRecord) -> None:
    logger.info(
        "activation_product_download",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        payer_email=record.payer_email,
    )


async def activate_service(record: PaymentRecord) -> None:
    logger.info(
        "activation_service",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        payer_email=record.payer_email,
    )


async def activate_subscription(record: PaymentRecord) -> None:
    logger.info(
        "activation_subscription",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        payer_email=record.payer_email,
    )


async def default_activation(record: PaymentRecord) -> None:
    logger.info(
        "activation_default",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
    )


DEFAULT_HANDLERS: Dict[ReferenceType, ActivationHandler] = {
    ReferenceType.COURSE: activate_course_access,
    ReferenceType.PRODUCT: enable_product_download,
    ReferenceType.SERVICE: activate_service,
    ReferenceType.SUBSCRIPTION: activate_subscription,
    ReferenceType.DEFAULT: default_activation,
}


class BusinessActivationDispatcher:
    def __init__(self, handlers: Optional[Dict[ReferenceType, ActivationHandler]] = None) -> None:
        self._handlers: Dict[ReferenceType, ActivationHandler] = dict(DEFAULT_HANDLERS)
        if handlers:
            self._handlers.update(handlers)

    def register(self, reference_type: ReferenceType, handler: ActivationHandler) -> None:
        self._handlers[reference_type] = handler

    def handler_for(self, reference_type: ReferenceType) -> ActivationHandler:
        return self._handlers.get(reference_type) or self._handlers[ReferenceType.DEFAULT]

    async def dispatch(self, record: PaymentRecord) -> ActivationResult:
        reference_type = classify_reference(record.external_reference)
        handler = self.handler_for(reference_type)
        try:
            await handler(record)
        except Exception as exc:
            logger.error(
                "activation_failed",
                external_reference=record.external_reference,
                reference_type=reference_type.value,
                error=str(exc),
                exc_info=True,
            )
            return ActivationResult(reference_type=reference_type, succeeded=False, error=str(exc) or type(exc).__name__)
        return ActivationResult(reference_type=reference_type, succeeded=True)
