"""
支付记录仓储实现 - 每个 external_reference 一个 JSON 文件

写入流程（同一 key 串行）：读取现有记录 -> 合并 -> 写入临时文件 -> 原子替换。
读取方永远只会看到完整的旧文件或新文件。
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    PaymentRecordReadError,
    PaymentRecordWriteError,
)
from domain.payment.entity import PaymentRecord
from domain.payment.references import validate_reference
from domain.payment.repository import PaymentRecordRepository
from domain.payment.service import aggregate_records, merge_records
from shared.locks import KeyedLock


logger = get_logger(__name__)

RECORD_SUFFIX = ".json"


def reference_from_filename(name: str) -> Optional[str]:
    """Record file name -> external_reference; None for temp/hidden/other files."""
    if name.startswith(".") or not name.endswith(RECORD_SUFFIX):
        return None
    return name[: -len(RECORD_SUFFIX)] or None


class FilePaymentRecordStore(PaymentRecordRepository):
    """支付记录仓储的文件系统实现"""

    def __init__(self, data_dir: str):
        self.base_path = Path(data_dir).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._locks = KeyedLock()

    def _path(self, external_reference: str) -> Path:
        validate_reference(external_reference)
        return self.base_path / f"{external_reference}{RECORD_SUFFIX}"

    def _temp_path(self, external_reference: str) -> Path:
        return self.base_path / f".{external_reference}{RECORD_SUFFIX}.tmp"

    async def _read(self, external_reference: str, path: Path) -> Optional[PaymentRecord]:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PaymentRecordReadError(external_reference, str(e)) from e
        try:
            return PaymentRecord.from_storage(json.loads(content))
        except (ValueError, ValidationError) as e:
            raise PaymentRecordReadError(external_reference, str(e)) from e

    async def _write(self, record: PaymentRecord, path: Path) -> None:
        ref = record.external_reference
        tmp = self._temp_path(ref)
        payload = json.dumps(record.to_storage(), ensure_ascii=False, indent=2)
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(payload)
                await f.flush()
            await aiofiles.os.replace(tmp, path)
        except OSError as e:
            if tmp.exists():
                tmp.unlink(missing_ok=True)
            raise PaymentRecordWriteError(ref, str(e)) from e

    async def upsert(self, record: PaymentRecord) -> PaymentRecord:
        """合并写入（后写覆盖 + 粘性标志），返回合并后的记录"""
        ref = record.external_reference
        path = self._path(ref)
        async with self._locks.hold(ref):
            existing = await self._read(ref, path)
            merged = merge_records(existing, record)
            await self._write(merged, path)
        logger.debug(
            "payment_record_saved",
            external_reference=ref,
            status=merged.status,
            created=existing is None,
        )
        return merged

    async def insert_if_absent(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        ref = record.external_reference
        path = self._path(ref)
        async with self._locks.hold(ref):
            if await self._read(ref, path) is not None:
                return None
            merged = merge_records(None, record)
            await self._write(merged, path)
        logger.debug("payment_record_created", external_reference=ref, status=merged.status)
        return merged

    async def get(self, external_reference: str) -> Optional[PaymentRecord]:
        return await self._read(external_reference, self._path(external_reference))

    async def _references(self) -> List[str]:
        names = await aiofiles.os.listdir(self.base_path)
        refs = []
        for name in sorted(names):
            ref = reference_from_filename(name)
            if ref is not None:
                refs.append(ref)
        return refs

    async def list_all(self) -> List[PaymentRecord]:
        records: List[PaymentRecord] = []
        for ref in await self._references():
            try:
                record = await self.get(ref)
            except PaymentRecordReadError as e:
                logger.warning("payment_record_unreadable", external_reference=ref, error=e.message)
                continue
            except DomainValidationException as e:
                # Non-conforming file name (e.g. placed manually)
                logger.warning("payment_record_skipped", file=f"{ref}{RECORD_SUFFIX}", error=str(e))
                continue
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.date_last_updated.timestamp() if r.date_last_updated else 0.0, reverse=True)
        return records

    async def list_invalid(self) -> List[dict[str, Any]]:
        invalid: List[dict[str, Any]] = []
        for ref in await self._references():
            try:
                await self.get(ref)
            except PaymentRecordReadError as e:
                invalid.append({"external_reference": ref, "file": f"{ref}{RECORD_SUFFIX}", "error": e.details["reason"]})
            except DomainValidationException as e:
                invalid.append({"external_reference": ref, "file": f"{ref}{RECORD_SUFFIX}", "error": str(e)})
        return invalid

    async def delete(self, external_reference: str) -> bool:
        path = self._path(external_reference)
        async with self._locks.hold(external_reference):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                return False
            except OSError as e:
                raise PaymentRecordWriteError(external_reference, str(e)) from e
        logger.info("payment_record_removed", external_reference=external_reference)
        return True

    async def clear(self) -> int:
        removed = 0
        for ref in await self._references():
            async with self._locks.hold(ref):
                try:
                    await aiofiles.os.remove(self.base_path / f"{ref}{RECORD_SUFFIX}")
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise PaymentRecordWriteError(ref, str(e)) from e
            removed += 1
        logger.info("payment_records_cleared", removed=removed)
        return removed

    async def aggregate_stats(self) -> dict[str, Any]:
        return aggregate_records(await self.list_all())
