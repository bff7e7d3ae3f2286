"""
Downstream collaborator ports used once a payment is confirmed.

- StatusSyncPort: pushes the mapped status to the downstream system of record.
- ConfirmationNotifier: tells the payer; best-effort by contract.
- ActivationHandler: one business activation branch (course access, product
  download, ...), keyed by ReferenceType in the dispatcher.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable

from domain.payment.entity import PaymentRecord


@runtime_checkable
class StatusSyncPort(Protocol):
    async def sync_status(self, external_reference: str, mapped_status: str) -> bool: ...


@runtime_checkable
class ConfirmationNotifier(Protocol):
    async def send_confirmation(self, record: PaymentRecord) -> None: ...


ActivationHandler = Callable[[PaymentRecord], Awaitable[None]]


__all__ = ["StatusSyncPort", "ConfirmationNotifier", "ActivationHandler"]
