"""
支付记录领域服务 - 合并写入规则与统计聚合
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from .entity import PaymentRecord, STICKY_FLAGS, ensure_utc, utc_now


def merge_processing_state(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """合并处理状态：逐字段后写覆盖，粘性标志只能由 False 变为 True"""
    merged = dict(existing)
    for key, value in incoming.items():
        if key in STICKY_FLAGS:
            merged[key] = bool(existing.get(key)) or bool(value)
        else:
            merged[key] = value
    return merged


def merge_record_data(existing: Optional[dict[str, Any]], incoming: dict[str, Any]) -> dict[str, Any]:
    """
    合并两份记录数据（python 字段名）

    - incoming 只应包含显式设置过的字段（exclude_unset）
    - 标量字段后写覆盖，processing_state 按字段深度合并
    - external_reference 不可变，始终保留已有值
    """
    if not existing:
        return dict(incoming)
    merged = dict(existing)
    for key, value in incoming.items():
        if key == "external_reference":
            continue
        if key == "processing_state":
            merged[key] = merge_processing_state(existing.get(key) or {}, value or {})
        else:
            merged[key] = value
    return merged


def next_last_updated(previous: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """Wall-clock write time, never earlier than the previous write for the key."""
    current = ensure_utc(now) or utc_now()
    previous = ensure_utc(previous)
    if previous is not None and previous > current:
        return previous
    return current


def merge_records(existing: Optional[PaymentRecord], incoming: PaymentRecord, *, now: Optional[datetime] = None) -> PaymentRecord:
    base = existing.model_dump() if existing is not None else None
    data = merge_record_data(base, incoming.model_dump(exclude_unset=True))
    data["date_last_updated"] = next_last_updated(existing.date_last_updated if existing else None, now)
    return PaymentRecord.model_validate(data)


def aggregate_records(records: Iterable[PaymentRecord]) -> dict[str, Any]:
    """全量扫描统计"""
    by_status: Counter[str] = Counter()
    by_method: Counter[str] = Counter()
    total = Decimal("0")
    count = 0
    for record in records:
        count += 1
        by_status[record.status or "unknown"] += 1
        by_method[record.payment_method_id or "unknown"] += 1
        if record.amount is not None:
            total += record.amount
    return {
        "count": count,
        "count_by_status": dict(by_status),
        "count_by_payment_method": dict(by_method),
        "total_amount": total,
        "generated_at": utc_now(),
    }
