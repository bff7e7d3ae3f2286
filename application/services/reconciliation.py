"""
Reconciliation watcher over the payment record store.

The watcher observes store changes (eventually, possibly more than once) and
processes approved records that still need work, so a missed or failed
webhook is recovered from persisted state. It also owns the operator
reprocess paths.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Optional, Set

from application.dtos.payments import ReprocessResult, ReprocessSummary
from application.ports.change_feed import ChangeKind, StoreChange, StoreChangeFeed
from application.services.deduplicator import ProcessingDeduplicator
from application.services.payment_processor import (
    ApprovedPaymentProcessor,
    ProcessingOutcome,
    ProcessingResult,
)
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.entity import ProcessingSource, utc_now
from domain.payment.repository import PaymentRecordRepository
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)

# Outcomes that ran side effects; their claim is kept until it expires.
_WORKED = (ProcessingOutcome.PROCESSED, ProcessingOutcome.PROCESSED_WITH_ERRORS)


class ReconciliationWatcher:
    def __init__(
        self,
        store: PaymentRecordRepository,
        feed: StoreChangeFeed,
        processor: ApprovedPaymentProcessor,
        deduplicator: ProcessingDeduplicator,
        *,
        poll_interval: float = 2.0,
        settle_delay: float = 1.0,
    ) -> None:
        self.store = store
        self.feed = feed
        self.processor = processor
        self.deduplicator = deduplicator
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay

        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._claimed: Set[str] = set()
        self._missed: Set[str] = set()
        self.last_sweep_at: Optional[datetime] = None
        self.processed_count = 0
        self.failed_count = 0

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_active:
            return
        await self.feed.prime()
        logger.info("reconciliation_started", directory=self.feed.location, poll_interval=self.poll_interval)
        await self.sweep()
        self._task = asyncio.create_task(self._run(), name="payment-reconciliation")

    async def stop(self) -> None:
        tasks = list(self._inflight)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._inflight.clear()
        for key in self._claimed:
            self.deduplicator.release(key)
        self._claimed.clear()
        self._missed.clear()
        logger.info("reconciliation_stopped", directory=self.feed.location)

    async def _run(self) -> None:
        while True:
            try:
                changes = await self.feed.poll()
            except Exception as exc:
                logger.error("reconciliation_poll_failed", error=str(exc), exc_info=True)
            else:
                for change in changes:
                    self._spawn(change)
            await asyncio.sleep(self.poll_interval)

    def _spawn(self, change: StoreChange) -> None:
        task = asyncio.create_task(self.handle_change(change))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _claim(self, key: str) -> bool:
        if not self.deduplicator.try_claim(key):
            return False
        self._claimed = {k for k in self._claimed if self.deduplicator.is_claimed(k)}
        self._claimed.add(key)
        return True

    def _release(self, key: str) -> None:
        self.deduplicator.release(key)
        self._claimed.discard(key)

    async def handle_change(self, change: StoreChange) -> Optional[ProcessingResult]:
        ref = change.external_reference
        logger.debug("reconciliation_change_observed", external_reference=ref, kind=change.kind.value)
        if change.kind is ChangeKind.REMOVED:
            logger.info("reconciliation_record_removed", external_reference=ref)
            return None
        if not self._claim(ref):
            if ref in self._claimed:
                self._missed.add(ref)
            logger.debug("reconciliation_duplicate_suppressed", external_reference=ref)
            return ProcessingResult(ProcessingOutcome.DUPLICATE, ref)
        try:
            while True:
                self._missed.discard(ref)
                await asyncio.sleep(self.settle_delay)
                result = await self._reconcile(ref)
                # A claim that led to processing is kept until it expires, so
                # the writes made by processing are not picked up as new work.
                if result.outcome in _WORKED:
                    return result
                # Changes suppressed while the claim was held are re-read
                # before the claim is given back.
                if ref not in self._missed:
                    self._release(ref)
                    return result
        except asyncio.CancelledError:
            self._release(ref)
            raise
        except Exception as exc:
            self._release(ref)
            self.failed_count += 1
            logger.error("reconciliation_change_failed", external_reference=ref, error=str(exc), exc_info=True)
            return None

    async def _reconcile(self, ref: str) -> ProcessingResult:
        record = await self.store.get(ref)
        if record is None:
            logger.info("reconciliation_record_missing", external_reference=ref)
            return ProcessingResult(ProcessingOutcome.NOT_FOUND, ref)
        if not record.is_approved:
            logger.debug("reconciliation_not_approved", external_reference=ref, status=record.status)
            return ProcessingResult(ProcessingOutcome.NOT_APPROVED, ref, record)
        if not record.needs_processing(self.processor.max_attempts):
            logger.debug("payment_already_processed", external_reference=ref, source=ProcessingSource.RECONCILIATION.value)
            return ProcessingResult(ProcessingOutcome.ALREADY_PROCESSED, ref, record)
        result = await self.processor.process(ref, source=ProcessingSource.RECONCILIATION)
        if result.outcome is ProcessingOutcome.PROCESSED:
            self.processed_count += 1
        elif result.outcome is ProcessingOutcome.PROCESSED_WITH_ERRORS:
            self.failed_count += 1
        return result

    async def sweep(self) -> int:
        """Process every approved record that still needs work; returns the number attempted."""
        attempted = 0
        try:
            records = await self.store.list_all()
        except Exception as exc:
            logger.error("reconciliation_sweep_failed", error=str(exc), exc_info=True)
            return 0
        for record in records:
            ref = record.external_reference
            if not record.needs_processing(self.processor.max_attempts):
                continue
            if not self._claim(ref):
                continue
            attempted += 1
            try:
                result = await self._reconcile(ref)
            except Exception as exc:
                self._release(ref)
                self.failed_count += 1
                logger.error("reconciliation_sweep_item_failed", external_reference=ref, error=str(exc), exc_info=True)
                continue
            if result.outcome not in _WORKED:
                self._release(ref)
        self.last_sweep_at = utc_now()
        logger.info("reconciliation_sweep_completed", scanned=len(records), attempted=attempted)
        return attempted

    def status(self) -> dict[str, Any]:
        return {
            "is_active": self.is_active,
            "directory": self.feed.location,
            "active_claims": self.deduplicator.active_claims,
            "in_flight": len(self._inflight),
            "last_sweep_at": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "poll_interval": self.poll_interval,
            "settle_delay": self.settle_delay,
        }

    async def reprocess(self, external_reference: str, *, force: bool = False) -> ReprocessResult:
        """Operator path: bypasses the dedup claim, still honours sticky flags unless forced."""
        logger.info("reprocess_requested", external_reference=external_reference, force=force)
        try:
            record = await self.store.get(external_reference)
            if record is None:
                return ReprocessResult(
                    external_reference=external_reference,
                    success=False,
                    outcome=ProcessingOutcome.NOT_FOUND.value,
                    message="Payment record not found",
                    error_code=PaymentCode.RECORD_NOT_FOUND,
                )
            if not record.is_approved:
                return ReprocessResult(
                    external_reference=external_reference,
                    success=False,
                    outcome=ProcessingOutcome.NOT_APPROVED.value,
                    message=f"Payment is not approved (status={record.status})",
                    error_code=PaymentCode.RECORD_NOT_APPROVED,
                )
            result = await self.processor.process(external_reference, source=ProcessingSource.MANUAL, force=force)
        except BusinessException as exc:
            logger.error("reprocess_failed", external_reference=external_reference, error=exc.message)
            return ReprocessResult(
                external_reference=external_reference,
                success=False,
                outcome="error",
                message=exc.message,
                error_code=exc.code,
            )
        except Exception as exc:
            logger.error("reprocess_failed", external_reference=external_reference, error=str(exc), exc_info=True)
            return ReprocessResult(
                external_reference=external_reference,
                success=False,
                outcome="error",
                message=str(exc) or type(exc).__name__,
                error_code=BusinessCode.SYSTEM_ERROR,
            )

        success = result.outcome in (ProcessingOutcome.PROCESSED, ProcessingOutcome.ALREADY_PROCESSED)
        return ReprocessResult(
            external_reference=external_reference,
            success=success,
            outcome=result.outcome.value,
            message=result.message,
            error_code=None if success else PaymentCode.PROVIDER_RECOVERABLE,
        )

    async def reprocess_all(self, *, force: bool = False) -> ReprocessSummary:
        summary = ReprocessSummary()
        records = await self.store.list_all()
        for record in records:
            if not record.is_approved:
                continue
            result = await self.reprocess(record.external_reference, force=force)
            summary.total += 1
            if not result.success:
                summary.failed += 1
            elif result.outcome == ProcessingOutcome.ALREADY_PROCESSED.value:
                summary.skipped += 1
            else:
                summary.succeeded += 1
            summary.results.append(result)
        logger.info(
            "reprocess_all_completed",
            total=summary.total,
            succeeded=summary.succeeded,
            skipped=summary.skipped,
            failed=summary.failed,
            force=force,
        )
        return summary
