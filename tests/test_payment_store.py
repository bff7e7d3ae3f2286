import asyncio
import json
from datetime import timedelta
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, PaymentRecordReadError
from domain.payment.entity import PaymentRecord, ProcessingState
from domain.payment.service import merge_records
from infrastructure.repositories.file_payment_repository import FilePaymentRecordStore


def _record(ref: str = "PRODUCT_1", **fields) -> PaymentRecord:
    return PaymentRecord(external_reference=ref, **fields)


@pytest.mark.asyncio
async def test_upsert_creates_then_merges(store: FilePaymentRecordStore):
    created = await store.upsert(_record(payment_id="1", status="pending", amount=Decimal("10.00")))
    assert created.date_last_updated is not None

    merged = await store.upsert(_record(status="approved"))
    assert merged.status == "approved"
    # Fields absent from the partial update are kept.
    assert merged.payment_id == "1"
    assert merged.amount == Decimal("10.00")
    assert merged.date_last_updated >= created.date_last_updated

    stored = await store.get("PRODUCT_1")
    assert stored.to_storage() == merged.to_storage()


@pytest.mark.asyncio
async def test_sticky_flags_never_revert(store: FilePaymentRecordStore):
    await store.upsert(_record(processing_state=ProcessingState(notification_sent=True, processing_attempts=1)))
    after = await store.upsert(
        _record(processing_state=ProcessingState(notification_sent=False, processing_attempts=2))
    )
    assert after.processing_state.notification_sent is True
    assert after.processing_state.processing_attempts == 2


def test_merge_keeps_last_updated_monotonic():
    existing = merge_records(None, _record(status="pending"))
    earlier = existing.date_last_updated - timedelta(seconds=30)
    merged = merge_records(existing, _record(status="approved"), now=earlier)
    assert merged.date_last_updated == existing.date_last_updated


@pytest.mark.asyncio
async def test_file_on_disk_is_camel_case_json(store: FilePaymentRecordStore):
    await store.upsert(_record(payment_id="1", payer_email="a@b.c"))
    data = json.loads((store.base_path / "PRODUCT_1.json").read_text(encoding="utf-8"))
    assert data["externalReference"] == "PRODUCT_1"
    assert data["payerEmail"] == "a@b.c"
    assert "processingState" in data
    # no temp file left behind
    assert [p.name for p in store.base_path.iterdir()] == ["PRODUCT_1.json"]


@pytest.mark.asyncio
async def test_get_missing_returns_none(store: FilePaymentRecordStore):
    assert await store.get("PRODUCT_404") is None


@pytest.mark.asyncio
async def test_get_malformed_raises_read_error(store: FilePaymentRecordStore):
    (store.base_path / "PRODUCT_bad.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(PaymentRecordReadError):
        await store.get("PRODUCT_bad")


@pytest.mark.asyncio
async def test_invalid_reference_is_rejected(store: FilePaymentRecordStore):
    with pytest.raises(DomainValidationException):
        await store.upsert(_record(ref="../escape"))


@pytest.mark.asyncio
async def test_list_all_newest_first_skipping_malformed(store: FilePaymentRecordStore):
    await store.upsert(_record("PRODUCT_1", status="approved"))
    await asyncio.sleep(0.01)
    await store.upsert(_record("PRODUCT_2", status="pending"))
    (store.base_path / "PRODUCT_bad.json").write_text("[]", encoding="utf-8")
    (store.base_path / ".PRODUCT_3.json.tmp").write_text("{}", encoding="utf-8")
    (store.base_path / "notes.txt").write_text("hello", encoding="utf-8")

    records = await store.list_all()
    assert [r.external_reference for r in records] == ["PRODUCT_2", "PRODUCT_1"]

    invalid = await store.list_invalid()
    assert [item["external_reference"] for item in invalid] == ["PRODUCT_bad"]
    assert invalid[0]["file"] == "PRODUCT_bad.json"


@pytest.mark.asyncio
async def test_delete_and_clear(store: FilePaymentRecordStore):
    await store.upsert(_record("PRODUCT_1"))
    await store.upsert(_record("PRODUCT_2"))
    assert await store.delete("PRODUCT_1") is True
    assert await store.delete("PRODUCT_1") is False
    assert await store.get("PRODUCT_1") is None
    assert await store.clear() == 1
    assert await store.list_all() == []


@pytest.mark.asyncio
async def test_aggregate_stats(store: FilePaymentRecordStore):
    await store.upsert(_record("PRODUCT_1", status="approved", amount=Decimal("50.00"), payment_method_id="pix"))
    await store.upsert(_record("PRODUCT_2", status="approved", amount=Decimal("25.50"), payment_method_id="visa"))
    await store.upsert(_record("COURSE_1", status="pending", amount=Decimal("10"), payment_method_id="pix"))

    stats = await store.aggregate_stats()
    assert stats["count"] == 3
    assert stats["count_by_status"] == {"approved": 2, "pending": 1}
    assert stats["count_by_payment_method"] == {"pix": 2, "visa": 1}
    assert stats["total_amount"] == Decimal("85.50")


@pytest.mark.asyncio
async def test_concurrent_upserts_are_serialised(store: FilePaymentRecordStore):
    await asyncio.gather(*[
        store.upsert(_record(processing_state=ProcessingState(processing_attempts=i))) for i in range(20)
    ])
    record = await store.get("PRODUCT_1")
    assert record is not None
    assert 0 <= record.processing_state.processing_attempts < 20
    assert [p.name for p in store.base_path.iterdir()] == ["PRODUCT_1.json"]


@pytest.mark.asyncio
async def test_insert_if_absent_never_overwrites(store: FilePaymentRecordStore):
    created = await store.insert_if_absent(_record("COURSE_1", status="pending", amount=Decimal("10")))
    assert created is not None
    assert created.status == "pending"

    await store.upsert(_record("COURSE_1", status="approved"))
    assert await store.insert_if_absent(_record("COURSE_1", status="pending")) is None
    assert (await store.get("COURSE_1")).status == "approved"


@pytest.mark.asyncio
async def test_insert_if_absent_racing_an_approval_keeps_approved(store: FilePaymentRecordStore):
    await asyncio.gather(
        store.insert_if_absent(_record("COURSE_2", status="pending")),
        store.upsert(_record("COURSE_2", status="approved")),
    )
    assert (await store.get("COURSE_2")).status == "approved"


@pytest.mark.asyncio
async def test_clear_waits_for_in_flight_writes(store: FilePaymentRecordStore):
    await store.upsert(_record("PRODUCT_1", status="pending"))
    held = asyncio.Event()
    release = asyncio.Event()

    async def writer():
        async with store._locks.hold("PRODUCT_1"):
            held.set()
            await release.wait()

    writing = asyncio.create_task(writer())
    await held.wait()
    clearing = asyncio.create_task(store.clear())
    await asyncio.sleep(0.05)
    assert not clearing.done()
    assert (store.base_path / "PRODUCT_1.json").exists()

    release.set()
    assert await clearing == 1
    await writing
    assert not (store.base_path / "PRODUCT_1.json").exists()
