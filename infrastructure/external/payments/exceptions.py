"""
Exceptions for payment providers mapped to unified BusinessException variants.

PaymentRecoverableError marks transient upstream failures (timeouts, 429,
5xx): the webhook path acknowledges them and reconciliation retries later.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


def _provider_details(provider: str, status_code: int | None, details: Optional[dict]) -> dict:
    full_details = {"provider": provider, "status_code": status_code}
    if details:
        full_details.update(details)
    return full_details


class PaymentProviderError(BusinessException):
    def __init__(self, message: str, *, provider: str, status_code: int | None = None, details: Optional[dict] = None):
        self.status_code = status_code
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=_provider_details(provider, status_code, details),
        )


class PaymentRecoverableError(BusinessException):
    def __init__(self, message: str, *, provider: str, status_code: int | None = None, details: Optional[dict] = None):
        self.status_code = status_code
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=_provider_details(provider, status_code, details),
        )


class PaymentTimeoutError(PaymentRecoverableError):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(message, provider=provider, details=details)
        self.code = PaymentCode.TIMEOUT
        self.error_type = "PaymentTimeoutError"
