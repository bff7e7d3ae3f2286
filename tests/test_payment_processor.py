import asyncio

import pytest

from application.services.activation_service import BusinessActivationDispatcher
from application.services.audit_service import AuditService
from application.services.payment_processor import ApprovedPaymentProcessor, ProcessingOutcome
from domain.payment.entity import PaymentRecord, ProcessingSource
from tests.support import RecordingNotifier, RecordingStatusSync, make_detail


def _processor(store, activation, status_sync, notifier, **kw) -> ApprovedPaymentProcessor:
    return ApprovedPaymentProcessor(
        store,
        activation.dispatcher(),
        status_sync,
        notifier,
        audit=AuditService(),
        sync_timeout=kw.pop("sync_timeout", 0.5),
        max_attempts=kw.pop("max_attempts", 3),
    )


@pytest.mark.asyncio
async def test_concurrent_processing_runs_side_effects_once(store, activation, status_sync, notifier):
    processor = _processor(store, activation, status_sync, notifier)
    snapshot = make_detail().to_record()

    results = await asyncio.gather(*[
        processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=snapshot) for _ in range(10)
    ])

    outcomes = [r.outcome for r in results]
    assert outcomes.count(ProcessingOutcome.PROCESSED) == 1
    assert outcomes.count(ProcessingOutcome.ALREADY_PROCESSED) == 9
    assert activation.activated == ["PRODUCT_9"]
    assert status_sync.calls == [("PRODUCT_9", "confirmed")]
    assert notifier.sent == ["PRODUCT_9"]

    record = await store.get("PRODUCT_9")
    state = record.processing_state
    assert state.processing_completed_at is not None
    assert state.business_activation_succeeded is True
    assert state.downstream_sync_attempted is True
    assert state.downstream_sync_succeeded is True
    assert state.notification_sent is True
    assert state.downstream_sync_error is None
    assert state.processing_attempts == 1
    assert state.last_processed_by == ProcessingSource.WEBHOOK


@pytest.mark.asyncio
async def test_missing_record_without_snapshot_is_not_found(store, activation, status_sync, notifier):
    processor = _processor(store, activation, status_sync, notifier)
    result = await processor.process("PRODUCT_404", source=ProcessingSource.MANUAL)
    assert result.outcome is ProcessingOutcome.NOT_FOUND
    assert activation.activated == []


@pytest.mark.asyncio
async def test_non_approved_record_is_skipped(store, activation, status_sync, notifier):
    processor = _processor(store, activation, status_sync, notifier)
    await store.upsert(PaymentRecord(external_reference="PRODUCT_9", status="pending"))
    result = await processor.process("PRODUCT_9", source=ProcessingSource.RECONCILIATION)
    assert result.outcome is ProcessingOutcome.NOT_APPROVED
    assert status_sync.calls == []


@pytest.mark.asyncio
async def test_sync_failure_is_recorded_and_retried(store, activation, notifier):
    failing = RecordingStatusSync(result=False)
    processor = _processor(store, activation, failing, notifier)
    snapshot = make_detail().to_record()

    first = await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=snapshot)
    assert first.outcome is ProcessingOutcome.PROCESSED_WITH_ERRORS
    record = await store.get("PRODUCT_9")
    assert record.processing_state.processing_completed_at is not None
    assert record.processing_state.downstream_sync_attempted is True
    assert record.processing_state.downstream_sync_succeeded is False
    assert "downstream" in record.processing_state.downstream_sync_error
    assert record.needs_processing(3) is True

    failing.result = True
    second = await processor.process("PRODUCT_9", source=ProcessingSource.RECONCILIATION)
    assert second.outcome is ProcessingOutcome.PROCESSED
    # Activation and notification already succeeded and are not repeated.
    assert activation.activated == ["PRODUCT_9"]
    assert notifier.sent == ["PRODUCT_9"]
    assert len(failing.calls) == 2

    record = await store.get("PRODUCT_9")
    assert record.processing_state.downstream_sync_succeeded is True
    assert record.processing_state.downstream_sync_error is None
    assert record.processing_state.processing_attempts == 2
    assert record.processing_state.last_processed_by == ProcessingSource.RECONCILIATION


@pytest.mark.asyncio
async def test_retries_stop_after_max_attempts(store, activation, notifier):
    failing = RecordingStatusSync(result=False)
    processor = _processor(store, activation, failing, notifier, max_attempts=2)
    await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=make_detail().to_record())
    await processor.process("PRODUCT_9", source=ProcessingSource.RECONCILIATION)
    third = await processor.process("PRODUCT_9", source=ProcessingSource.RECONCILIATION)
    assert third.outcome is ProcessingOutcome.ALREADY_PROCESSED
    assert len(failing.calls) == 2


@pytest.mark.asyncio
async def test_sync_timeout_is_recorded(store, activation, notifier):
    slow = RecordingStatusSync(delay=1.0)
    processor = _processor(store, activation, slow, notifier, sync_timeout=0.05)
    result = await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=make_detail().to_record())
    assert result.outcome is ProcessingOutcome.PROCESSED_WITH_ERRORS
    record = await store.get("PRODUCT_9")
    assert "timeout" in record.processing_state.downstream_sync_error
    # The other steps still ran.
    assert record.processing_state.notification_sent is True


@pytest.mark.asyncio
async def test_sync_exception_does_not_abort(store, activation, notifier):
    broken = RecordingStatusSync(error=ConnectionError("refused"))
    processor = _processor(store, activation, broken, notifier)
    result = await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=make_detail().to_record())
    assert result.outcome is ProcessingOutcome.PROCESSED_WITH_ERRORS
    assert notifier.sent == ["PRODUCT_9"]


@pytest.mark.asyncio
async def test_activation_failure_is_recorded(store, activation, status_sync, notifier):
    activation.fail = True
    processor = _processor(store, activation, status_sync, notifier)
    result = await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=make_detail().to_record())
    assert result.outcome is ProcessingOutcome.PROCESSED_WITH_ERRORS
    assert status_sync.calls == [("PRODUCT_9", "confirmed")]
    record = await store.get("PRODUCT_9")
    assert record.processing_state.business_activation_succeeded is False
    assert "activation" in record.processing_state.downstream_sync_error


@pytest.mark.asyncio
async def test_notification_failure_leaves_flag_unset(store, activation, status_sync):
    notifier = RecordingNotifier(error=RuntimeError("smtp down"))
    processor = _processor(store, activation, status_sync, notifier)
    result = await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=make_detail().to_record())
    assert result.outcome is ProcessingOutcome.PROCESSED
    record = await store.get("PRODUCT_9")
    assert record.processing_state.notification_sent is False
    assert record.processing_state.processing_completed_at is not None


@pytest.mark.asyncio
async def test_force_reruns_every_step(store, activation, status_sync, notifier):
    processor = _processor(store, activation, status_sync, notifier)
    await processor.process("PRODUCT_9", source=ProcessingSource.WEBHOOK, snapshot=make_detail().to_record())
    again = await processor.process("PRODUCT_9", source=ProcessingSource.MANUAL)
    assert again.outcome is ProcessingOutcome.ALREADY_PROCESSED

    forced = await processor.process("PRODUCT_9", source=ProcessingSource.MANUAL, force=True)
    assert forced.outcome is ProcessingOutcome.PROCESSED
    assert activation.activated == ["PRODUCT_9", "PRODUCT_9"]
    assert len(status_sync.calls) == 2
    assert notifier.sent == ["PRODUCT_9", "PRODUCT_9"]
    record = await store.get("PRODUCT_9")
    assert record.processing_state.last_processed_by == ProcessingSource.MANUAL


@pytest.mark.asyncio
async def test_default_dispatcher_handles_every_prefix(store, status_sync, notifier):
    processor = ApprovedPaymentProcessor(store, BusinessActivationDispatcher(), status_sync, notifier)
    for ref in ("COURSE_1", "SERVICE_1", "SUBSCRIPTION_1", "ORDER_1"):
        result = await processor.process(
            ref, source=ProcessingSource.WEBHOOK, snapshot=make_detail(external_reference=ref).to_record()
        )
        assert result.outcome is ProcessingOutcome.PROCESSED
