"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PaymentRecordNotFoundException(BusinessException):
    def __init__(self, external_reference: str):
        super().__init__(
            code=PaymentCode.RECORD_NOT_FOUND,
            message=f"Payment record not found: {external_reference}",
            error_type="PaymentRecordNotFound",
            details={"external_reference": external_reference},
        )


class PaymentRecordReadError(BusinessException):
    """The slot exists but could not be read or parsed (distinct from not found)."""

    def __init__(self, external_reference: str, reason: str):
        super().__init__(
            code=PaymentCode.RECORD_READ_ERROR,
            message=f"Failed to read payment record {external_reference}: {reason}",
            error_type="PaymentRecordReadError",
            details={"external_reference": external_reference, "reason": reason},
        )


class PaymentRecordWriteError(BusinessException):
    def __init__(self, external_reference: str, reason: str):
        super().__init__(
            code=PaymentCode.RECORD_WRITE_ERROR,
            message=f"Failed to write payment record {external_reference}: {reason}",
            error_type="PaymentRecordWriteError",
            details={"external_reference": external_reference, "reason": reason},
        )


class PaymentNotApprovedException(BusinessException):
    def __init__(self, external_reference: str, status: str | None):
        super().__init__(
            code=PaymentCode.RECORD_NOT_APPROVED,
            message=f"Payment {external_reference} is not approved (status={status})",
            error_type="PaymentNotApproved",
            details={"external_reference": external_reference, "status": status},
        )


class WebhookSignatureException(BusinessException):
    def __init__(self, message: str = "Invalid webhook signature", *, details: dict | None = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="WebhookSignatureError",
            details=details,
        )
