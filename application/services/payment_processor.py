"""
Approved payment processing.

Runs the confirmation side effects for one external reference:

1. business activation (by reference prefix)
2. downstream status sync (`approved` -> `confirmed`), bounded by a timeout
3. payer confirmation notification (best-effort)

Every step records its outcome on the record right after it runs, so a crash
between steps never repeats a step whose sticky flag was already written.
Side effects for a key are serialised by a per-key lock and re-checked
against the stored record under that lock.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from application.ports.collaborators import ConfirmationNotifier, StatusSyncPort
from application.services.activation_service import BusinessActivationDispatcher
from application.services.audit_service import AuditService
from core.logging_config import get_logger
from domain.payment.entity import PaymentRecord, ProcessingSource, ProcessingState, utc_now
from domain.payment.repository import PaymentRecordRepository
from domain.payment.service import merge_records
from shared.codes.payment_codes import map_downstream_status
from shared.locks import KeyedLock


logger = get_logger(__name__)


class ProcessingOutcome(str, Enum):
    PROCESSED = "processed"
    PROCESSED_WITH_ERRORS = "processed_with_errors"
    ALREADY_PROCESSED = "already_processed"
    DUPLICATE = "duplicate"
    NOT_APPROVED = "not_approved"
    NOT_FOUND = "not_found"
    RECORDED = "recorded"
    IGNORED = "ignored"


@dataclass
class ProcessingResult:
    outcome: ProcessingOutcome
    external_reference: Optional[str] = None
    record: Optional[PaymentRecord] = None
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.outcome is ProcessingOutcome.PROCESSED_WITH_ERRORS:
            return "Processed with errors: " + "; ".join(self.errors)
        return {
            ProcessingOutcome.PROCESSED: "Payment processed",
            ProcessingOutcome.ALREADY_PROCESSED: "Payment already processed",
            ProcessingOutcome.DUPLICATE: "Duplicate trigger suppressed",
            ProcessingOutcome.NOT_APPROVED: "Payment is not approved",
            ProcessingOutcome.NOT_FOUND: "Payment record not found",
            ProcessingOutcome.RECORDED: "Payment status recorded",
            ProcessingOutcome.IGNORED: "Notification ignored",
        }.get(self.outcome, self.outcome.value)


def _state_patch(external_reference: str, **state: Any) -> PaymentRecord:
    """Partial record that only touches the given processing_state fields."""
    return PaymentRecord(external_reference=external_reference, processing_state=ProcessingState(**state))


class ApprovedPaymentProcessor:
    def __init__(
        self,
        store: PaymentRecordRepository,
        activation: BusinessActivationDispatcher,
        status_sync: StatusSyncPort,
        notifier: ConfirmationNotifier,
        *,
        audit: Optional[AuditService] = None,
        sync_timeout: float = 10.0,
        max_attempts: int = 3,
    ) -> None:
        self.store = store
        self.activation = activation
        self.status_sync = status_sync
        self.notifier = notifier
        self.audit = audit
        self.sync_timeout = sync_timeout
        self.max_attempts = max_attempts
        self._locks = KeyedLock()

    async def process(
        self,
        external_reference: str,
        *,
        source: ProcessingSource,
        snapshot: Optional[PaymentRecord] = None,
        force: bool = False,
    ) -> ProcessingResult:
        """Process one approved payment; store failures propagate to the caller."""
        async with self._locks.hold(external_reference):
            existing = await self.store.get(external_reference)
            if existing is None and snapshot is None:
                return ProcessingResult(ProcessingOutcome.NOT_FOUND, external_reference)

            current = merge_records(existing, snapshot) if snapshot is not None else existing
            if not current.is_approved:
                logger.info(
                    "payment_processing_skipped_not_approved",
                    external_reference=external_reference,
                    status=current.status,
                    source=source.value,
                )
                return ProcessingResult(ProcessingOutcome.NOT_APPROVED, external_reference, current)
            if not force and not current.needs_processing(self.max_attempts):
                logger.info(
                    "payment_already_processed",
                    external_reference=external_reference,
                    source=source.value,
                    attempts=current.processing_state.processing_attempts,
                )
                return ProcessingResult(ProcessingOutcome.ALREADY_PROCESSED, external_reference, current)

            try:
                return await self._run_steps(current, snapshot, source=source, force=force)
            except Exception as exc:
                logger.error(
                    "payment_processing_failed",
                    external_reference=external_reference,
                    source=source.value,
                    error=str(exc),
                    exc_info=True,
                )
                if self.audit is not None:
                    await self.audit.log_payment_event(
                        "payment.processing_failed", current, source=source.value, details={"error": str(exc)}
                    )
                raise

    async def _run_steps(
        self,
        current: PaymentRecord,
        snapshot: Optional[PaymentRecord],
        *,
        source: ProcessingSource,
        force: bool,
    ) -> ProcessingResult:
        ref = current.external_reference
        state = current.processing_state
        attempt = state.processing_attempts + 1
        logger.info("payment_processing_started", external_reference=ref, source=source.value, attempt=attempt, force=force)

        start = ProcessingState(processing_started_at=utc_now(), processing_attempts=attempt)
        if snapshot is not None:
            record = await self.store.upsert(snapshot.model_copy(update={"processing_state": start}))
        else:
            record = await self.store.upsert(_state_patch(ref, processing_started_at=start.processing_started_at, processing_attempts=attempt))

        errors: List[str] = []

        if force or not record.processing_state.business_activation_succeeded:
            result = await self.activation.dispatch(record)
            record = await self.store.upsert(_state_patch(ref, business_activation_succeeded=result.succeeded))
            if not result.succeeded:
                errors.append(f"activation: {result.error}")

        if force or not record.processing_state.downstream_sync_succeeded:
            synced, sync_error = await self._sync_downstream(record)
            record = await self.store.upsert(
                _state_patch(ref, downstream_sync_attempted=True, downstream_sync_succeeded=synced)
            )
            if not synced:
                errors.append(f"downstream: {sync_error}")

        if force or not record.processing_state.notification_sent:
            try:
                await self.notifier.send_confirmation(record)
            except Exception as exc:
                logger.warning("payment_notification_failed", external_reference=ref, error=str(exc))
            else:
                record = await self.store.upsert(_state_patch(ref, notification_sent=True))

        record = await self.store.upsert(
            _state_patch(
                ref,
                processing_completed_at=utc_now(),
                downstream_sync_error="; ".join(errors) if errors else None,
                last_processed_by=source,
            )
        )

        outcome = ProcessingOutcome.PROCESSED_WITH_ERRORS if errors else ProcessingOutcome.PROCESSED
        logger.info(
            "payment_processing_completed",
            external_reference=ref,
            source=source.value,
            outcome=outcome.value,
            errors=errors or None,
        )
        if self.audit is not None:
            await self.audit.log_payment_event(
                "payment.processed", record, source=source.value, details={"outcome": outcome.value, "errors": errors}
            )
        return ProcessingResult(outcome, ref, record, errors)

    async def _sync_downstream(self, record: PaymentRecord) -> tuple[bool, Optional[str]]:
        mapped = map_downstream_status(record.status)
        if mapped is None:
            logger.info("downstream_sync_no_mapping", external_reference=record.external_reference, status=record.status)
            return False, f"no downstream mapping for status {record.status}"
        try:
            ok = await asyncio.wait_for(
                self.status_sync.sync_status(record.external_reference, mapped), timeout=self.sync_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "downstream_sync_timeout", external_reference=record.external_reference, timeout=self.sync_timeout
            )
            return False, f"timeout after {self.sync_timeout}s"
        except Exception as exc:
            logger.warning("downstream_sync_error", external_reference=record.external_reference, error=str(exc))
            return False, str(exc) or type(exc).__name__
        if not ok:
            return False, "downstream rejected the status update"
        return True, None
