"""
Administrative access to payment records (listing, lookup, deletion, stats).
"""
from __future__ import annotations

from typing import Any, List

from core.logging_config import get_logger
from domain.common.exceptions import PaymentRecordNotFoundException
from domain.payment.entity import PaymentRecord
from domain.payment.references import validate_reference
from domain.payment.repository import PaymentRecordRepository


logger = get_logger(__name__)


class PaymentAdminService:
    def __init__(self, store: PaymentRecordRepository) -> None:
        self.store = store

    async def list_records(self, *, status: str | None = None, limit: int | None = None) -> List[PaymentRecord]:
        records = await self.store.list_all()
        if status:
            records = [r for r in records if r.status == status]
        if limit is not None:
            records = records[:limit]
        return records

    async def get_record(self, external_reference: str) -> PaymentRecord:
        validate_reference(external_reference)
        record = await self.store.get(external_reference)
        if record is None:
            raise PaymentRecordNotFoundException(external_reference)
        return record

    async def delete_record(self, external_reference: str) -> None:
        validate_reference(external_reference)
        if not await self.store.delete(external_reference):
            raise PaymentRecordNotFoundException(external_reference)
        logger.info("payment_record_deleted", external_reference=external_reference)

    async def clear_records(self) -> int:
        removed = await self.store.clear()
        logger.warning("payment_records_cleared", removed=removed)
        return removed

    async def stats(self) -> dict[str, Any]:
        return await self.store.aggregate_stats()

    async def invalid_records(self) -> List[dict[str, Any]]:
        return await self.store.list_invalid()
