"""
Routes a freshly fetched payment detail by its gateway status.

Every known status is persisted as a snapshot (the record is created on first
observation). Only `approved` triggers side effects, through the dedup claim
and the ApprovedPaymentProcessor; the other statuses run log-only hooks.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Dict, Optional

from application.dtos.payments import PaymentDetail
from application.services.audit_service import AuditService
from application.services.deduplicator import ProcessingDeduplicator
from application.services.payment_processor import (
    ApprovedPaymentProcessor,
    ProcessingOutcome,
    ProcessingResult,
)
from core.logging_config import get_logger
from domain.payment.entity import PaymentRecord, PaymentStatus, ProcessingSource
from domain.payment.repository import PaymentRecordRepository


logger = get_logger(__name__)

StatusHook = Callable[[PaymentRecord], Awaitable[None]]


async def on_rejected(record: PaymentRecord) -> None:
    logger.info(
        "payment_rejected",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        status_detail=record.status_detail,
    )


async def on_cancelled(record: PaymentRecord) -> None:
    logger.info("payment_cancelled", external_reference=record.external_reference, payment_id=record.payment_id)


async def on_refunded(record: PaymentRecord) -> None:
    refunded = (record.raw_gateway_payload or {}).get("transaction_amount_refunded")
    logger.warning(
        "payment_refunded",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        refunded_amount=refunded,
    )


async def on_pending(record: PaymentRecord) -> None:
    logger.info(
        "payment_pending",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        status_detail=record.status_detail,
    )


async def on_other(record: PaymentRecord) -> None:
    logger.info(
        "payment_status_unhandled",
        external_reference=record.external_reference,
        payment_id=record.payment_id,
        status=record.status,
    )


STATUS_HOOKS: Dict[PaymentStatus, StatusHook] = {
    PaymentStatus.REJECTED: on_rejected,
    PaymentStatus.CANCELLED: on_cancelled,
    PaymentStatus.REFUNDED: on_refunded,
    PaymentStatus.PENDING: on_pending,
}


class StatusTransitionRouter:
    def __init__(
        self,
        store: PaymentRecordRepository,
        processor: ApprovedPaymentProcessor,
        deduplicator: ProcessingDeduplicator,
        *,
        audit: Optional[AuditService] = None,
        hooks: Optional[Dict[PaymentStatus, StatusHook]] = None,
    ) -> None:
        self.store = store
        self.processor = processor
        self.deduplicator = deduplicator
        self.audit = audit
        self.hooks = dict(STATUS_HOOKS)
        if hooks:
            self.hooks.update(hooks)

    async def route(self, detail: PaymentDetail, *, source: ProcessingSource = ProcessingSource.WEBHOOK) -> ProcessingResult:
        ref = detail.external_reference
        if not ref:
            logger.warning("payment_without_external_reference", payment_id=detail.id, status=detail.status)
            return ProcessingResult(ProcessingOutcome.IGNORED)

        status = PaymentStatus.parse(detail.status)
        if status is None:
            logger.warning("payment_status_unknown", external_reference=ref, payment_id=detail.id, status=detail.status)
            return ProcessingResult(ProcessingOutcome.IGNORED, ref)

        snapshot = detail.to_record()
        if status is PaymentStatus.APPROVED:
            return await self._route_approved(ref, snapshot, source)

        record = await self.store.upsert(snapshot)
        await self.hooks.get(status, on_other)(record)
        if self.audit is not None:
            await self.audit.log_payment_event(f"payment.{status.value}", record, source=source.value)
        return ProcessingResult(ProcessingOutcome.RECORDED, ref, record)

    async def _route_approved(self, ref: str, snapshot: PaymentRecord, source: ProcessingSource) -> ProcessingResult:
        existing = await self.store.get(ref)
        if existing is not None and existing.is_approved and not existing.needs_processing(self.processor.max_attempts):
            record = await self.store.upsert(snapshot)
            logger.info("payment_already_processed", external_reference=ref, payment_id=snapshot.payment_id, source=source.value)
            return ProcessingResult(ProcessingOutcome.ALREADY_PROCESSED, ref, record)

        if not self.deduplicator.try_claim(ref):
            record = await self.store.upsert(snapshot)
            logger.info("payment_duplicate_suppressed", external_reference=ref, payment_id=snapshot.payment_id, source=source.value)
            return ProcessingResult(ProcessingOutcome.DUPLICATE, ref, record)

        try:
            result = await self.processor.process(ref, source=source, snapshot=snapshot)
        except Exception:
            self.deduplicator.release(ref)
            raise
        if result.outcome not in (ProcessingOutcome.PROCESSED, ProcessingOutcome.PROCESSED_WITH_ERRORS):
            self.deduplicator.release(ref)
        return result
