import pytest

from application.services.deduplicator import ProcessingDeduplicator
from application.services.payment_processor import ApprovedPaymentProcessor, ProcessingOutcome
from application.services.status_router import StatusTransitionRouter
from domain.common.exceptions import PaymentRecordWriteError
from domain.payment.entity import PaymentStatus
from tests.support import make_detail


@pytest.fixture
def router_parts(store, activation, status_sync, notifier):
    processor = ApprovedPaymentProcessor(store, activation.dispatcher(), status_sync, notifier, sync_timeout=0.5)
    dedup = ProcessingDeduplicator(default_ttl=5.0)
    return StatusTransitionRouter(store, processor, dedup), dedup


@pytest.mark.asyncio
async def test_approved_payment_is_processed(router_parts, store, activation, status_sync, notifier):
    router, _ = router_parts
    result = await router.route(make_detail())
    assert result.outcome is ProcessingOutcome.PROCESSED
    assert activation.activated == ["PRODUCT_9"]
    assert status_sync.calls == [("PRODUCT_9", "confirmed")]
    assert notifier.sent == ["PRODUCT_9"]

    record = await store.get("PRODUCT_9")
    assert record.payment_id == "123"
    assert record.payer_email == "buyer@example.com"
    assert record.reference_type == "product"
    assert record.raw_gateway_payload["id"] == "123"


@pytest.mark.asyncio
async def test_repeat_approved_notification_is_already_processed(router_parts, store, activation):
    router, dedup = router_parts
    await router.route(make_detail())
    dedup.clear()
    again = await router.route(make_detail())
    assert again.outcome is ProcessingOutcome.ALREADY_PROCESSED
    assert activation.activated == ["PRODUCT_9"]


@pytest.mark.asyncio
async def test_claimed_key_is_suppressed_but_snapshot_saved(router_parts, store, activation):
    router, dedup = router_parts
    assert dedup.try_claim("PRODUCT_9") is True
    result = await router.route(make_detail())
    assert result.outcome is ProcessingOutcome.DUPLICATE
    assert activation.activated == []
    record = await store.get("PRODUCT_9")
    assert record.status == "approved"
    assert record.processing_state.processing_completed_at is None


@pytest.mark.asyncio
async def test_unknown_status_is_not_persisted(router_parts, store):
    router, _ = router_parts
    result = await router.route(make_detail(status="mystery"))
    assert result.outcome is ProcessingOutcome.IGNORED
    assert await store.get("PRODUCT_9") is None


@pytest.mark.asyncio
async def test_missing_external_reference_is_ignored(router_parts, store):
    router, _ = router_parts
    result = await router.route(make_detail(external_reference=None))
    assert result.outcome is ProcessingOutcome.IGNORED
    assert await store.list_all() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "rejected", "cancelled", "refunded", "in_process"])
async def test_non_approved_status_is_recorded_without_side_effects(router_parts, store, activation, status_sync, status):
    router, _ = router_parts
    result = await router.route(make_detail(status=status))
    assert result.outcome is ProcessingOutcome.RECORDED
    assert activation.activated == []
    assert status_sync.calls == []
    record = await store.get("PRODUCT_9")
    assert record.status == status


@pytest.mark.asyncio
async def test_status_hooks_can_be_overridden(store, activation, status_sync, notifier):
    seen = []

    async def on_rejected(record):
        seen.append(record.external_reference)

    processor = ApprovedPaymentProcessor(store, activation.dispatcher(), status_sync, notifier)
    router = StatusTransitionRouter(
        store, processor, ProcessingDeduplicator(), hooks={PaymentStatus.REJECTED: on_rejected}
    )
    await router.route(make_detail(status="rejected"))
    assert seen == ["PRODUCT_9"]


@pytest.mark.asyncio
async def test_pending_then_approved_transition(router_parts, store, activation):
    router, _ = router_parts
    await router.route(make_detail(status="pending"))
    assert activation.activated == []
    result = await router.route(make_detail(status="approved"))
    assert result.outcome is ProcessingOutcome.PROCESSED
    assert activation.activated == ["PRODUCT_9"]


@pytest.mark.asyncio
async def test_claim_is_kept_after_processing_and_released_on_failure(router_parts, store, monkeypatch):
    router, dedup = router_parts
    await router.route(make_detail())
    assert dedup.is_claimed("PRODUCT_9") is True

    async def broken_upsert(record):
        raise PaymentRecordWriteError(record.external_reference, "disk full")

    monkeypatch.setattr(store, "upsert", broken_upsert)
    with pytest.raises(PaymentRecordWriteError):
        await router.route(make_detail(external_reference="PRODUCT_10"))
    assert dedup.is_claimed("PRODUCT_10") is False
