"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

from domain.payment.entity import PaymentRecord
from domain.payment.references import classify_reference


class WebhookData(BaseModel):
    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        # Gateways send the id as a number or a string.
        if v is None:
            return v
        return str(v)


class WebhookNotification(BaseModel):
    """Inbound gateway notification body (only the fields routing relies on)."""

    id: Optional[str] = None
    action: Optional[str] = None
    type: Optional[str] = None
    live_mode: Optional[bool] = None
    user_id: Optional[str] = None
    data: WebhookData = Field(default_factory=WebhookData)

    model_config = ConfigDict(extra="allow")

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_str(cls, v):
        if v is None:
            return v
        return str(v)

    @field_validator("data", mode="before")
    @classmethod
    def _empty_data(cls, v):
        return {} if v is None else v

    @property
    def is_payment(self) -> bool:
        return self.type == "payment" and bool(self.data.id)


class PayerPhone(BaseModel):
    area_code: Optional[str] = None
    number: Optional[str] = None


class Payer(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    surname: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[PayerPhone] = None

    model_config = ConfigDict(extra="allow")


class PaymentDetail(BaseModel):
    """Canonical payment detail as fetched from the gateway."""

    id: str
    status: str
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    transaction_amount: Optional[Decimal] = None
    transaction_amount_refunded: Optional[Decimal] = None
    currency_id: Optional[str] = None
    payer: Optional[Payer] = None
    payment_method_id: Optional[str] = None
    payment_type_id: Optional[str] = None
    date_created: Optional[str] = None
    date_approved: Optional[str] = None
    date_last_updated: Optional[str] = None
    live_mode: Optional[bool] = None
    collector_id: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("id", "collector_id", mode="before")
    @classmethod
    def _coerce_str(cls, v):
        if v is None:
            return v
        return str(v)

    def to_record(self) -> PaymentRecord:
        """Snapshot of this detail as a partial record ready for upsert."""
        if not self.external_reference:
            raise ValueError("payment detail has no external_reference")
        return PaymentRecord(
            external_reference=self.external_reference,
            payment_id=self.id,
            status=self.status,
            amount=self.transaction_amount,
            currency=self.currency_id,
            payer_email=(self.payer.email if self.payer else None) or "",
            payment_method_id=self.payment_method_id,
            payment_type_id=self.payment_type_id,
            status_detail=self.status_detail,
            date_created=self.date_created,
            date_approved=self.date_approved,
            live_mode=self.live_mode,
            user_id=self.collector_id or "",
            reference_type=classify_reference(self.external_reference).value,
            raw_gateway_payload=self.model_dump(mode="json"),
        )


class CreatePreference(BaseModel):
    """Create-charge request (checkout preference)."""

    external_reference: str
    title: str
    description: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_price: condecimal(gt=0)  # type: ignore[valid-type]
    currency_id: Optional[str] = None
    payer: Optional[Payer] = None
    notification_url: Optional[str] = None
    back_urls: Optional[dict[str, str]] = None
    auto_return: Optional[str] = "approved"
    payment_methods: Optional[dict[str, Any]] = None


class PreferenceResult(BaseModel):
    id: str
    payment_link: Optional[str] = None
    sandbox_payment_link: Optional[str] = None
    external_reference: Optional[str] = None
    date_created: Optional[str] = None


class ReprocessResult(BaseModel):
    external_reference: str
    success: bool
    outcome: str
    message: str
    error_code: Optional[int] = None


class ReprocessSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[ReprocessResult] = Field(default_factory=list)


class WebhookAck(BaseModel):
    status: str
    message: str
    payment_id: Optional[str] = None
    outcome: Optional[str] = None
