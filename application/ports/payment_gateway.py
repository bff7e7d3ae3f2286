"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CreatePreference, PaymentDetail, PreferenceResult


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the payment provider.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def fetch_payment_detail(self, payment_id: str) -> PaymentDetail: ...

    async def create_preference(self, req: CreatePreference) -> PreferenceResult: ...

    async def aclose(self) -> None: ...
