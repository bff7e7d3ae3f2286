"""
支付记录实体 - 以 external_reference 为键的持久化聚合

业务规则：
1. external_reference 一经分配不可变更，是去重与查找的唯一键
2. 写入采用合并语义，处理状态中的 *_succeeded / *_sent 标志一旦为 True 不会回退
3. 每次写入都会推进 date_last_updated
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PaymentStatus(str, Enum):
    """网关支付状态"""
    PENDING = "pending"
    APPROVED = "approved"
    AUTHORIZED = "authorized"
    IN_PROCESS = "in_process"
    IN_MEDIATION = "in_mediation"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    CHARGED_BACK = "charged_back"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["PaymentStatus"]:
        """Return the enum member for a raw status, or None when unknown."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({
    PaymentStatus.APPROVED,
    PaymentStatus.REJECTED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})


class ProcessingSource(str, Enum):
    WEBHOOK = "webhook"
    RECONCILIATION = "reconciliation"
    MANUAL = "manual"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ProcessingState(_CamelModel):
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    notification_sent: bool = False
    business_activation_succeeded: bool = False
    downstream_sync_attempted: bool = False
    downstream_sync_succeeded: bool = False
    downstream_sync_error: Optional[str] = None
    processing_attempts: int = 0
    last_processed_by: Optional[ProcessingSource] = None


# Flags that never revert to False once recorded as True.
STICKY_FLAGS = frozenset({
    "notification_sent",
    "business_activation_succeeded",
    "downstream_sync_succeeded",
})


class PaymentRecord(_CamelModel):
    """
    支付记录（每个 external_reference 一个持久化槽位）

    A record built for an upsert may be partial: only the fields that were
    explicitly set take part in the merge.
    """

    external_reference: str = Field(min_length=1)
    payment_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payer_email: Optional[str] = None
    payment_method_id: Optional[str] = None
    payment_type_id: Optional[str] = None
    status_detail: Optional[str] = None
    date_created: Optional[str] = None
    date_approved: Optional[str] = None
    date_last_updated: Optional[datetime] = None
    live_mode: Optional[bool] = None
    user_id: Optional[str] = None
    reference_type: Optional[str] = None
    raw_gateway_payload: Optional[dict[str, Any]] = None
    processing_state: ProcessingState = Field(default_factory=ProcessingState)

    @property
    def payment_status(self) -> Optional[PaymentStatus]:
        return PaymentStatus.parse(self.status)

    @property
    def is_approved(self) -> bool:
        return self.payment_status is PaymentStatus.APPROVED

    @property
    def is_processed(self) -> bool:
        return self.processing_state.processing_completed_at is not None

    def has_failed_steps(self) -> bool:
        state = self.processing_state
        return not (state.business_activation_succeeded and state.downstream_sync_succeeded)

    def needs_processing(self, max_attempts: int) -> bool:
        """Approved and either never completed, or completed with a retryable failure.

        Retries stop once `processing_attempts` reaches `max_attempts`; the
        operator reprocess path is the recovery route after that.
        """
        if not self.is_approved:
            return False
        if not self.is_processed:
            return True
        return self.has_failed_steps() and self.processing_state.processing_attempts < max_attempts

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> "PaymentRecord":
        return cls.model_validate(data)
