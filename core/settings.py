"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Every group is reachable through `PAYMENT__<GROUP>__<FIELD>`, e.g.
`PAYMENT__WEBHOOK__SECRET` or `PAYMENT__RECONCILIATION__POLL_INTERVAL`.
"""
from __future__ import annotations

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    secret: Optional[str] = None
    tolerance_seconds: int = 300
    # reject: stale signatures are refused; warn: logged only; off: not checked
    freshness_mode: Literal["reject", "warn", "off"] = "warn"


class MercadoPagoSettings(BaseModel):
    access_token: Optional[str] = None
    base_url: str = "https://api.mercadopago.com"
    notification_url: Optional[str] = None
    success_url: Optional[str] = None
    failure_url: Optional[str] = None
    pending_url: Optional[str] = None
    default_currency: str = "BRL"


class DownstreamSettings(BaseModel):
    url: Optional[str] = None
    token: Optional[str] = None
    timeout_seconds: float = 10.0
    max_retries: int = 1


class StorageSettings(BaseModel):
    data_dir: str = "data/payments"
    audit_log_path: Optional[str] = None


class ReconciliationSettings(BaseModel):
    enabled: bool = True
    poll_interval: float = 2.0
    settle_delay: float = 1.0
    dedup_ttl: float = 5.0
    max_processing_attempts: int = 3


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    mercadopago: MercadoPagoSettings = Field(default_factory=MercadoPagoSettings)
    downstream: DownstreamSettings = Field(default_factory=DownstreamSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    high_value_threshold: float = 10000.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
