"""
Payment specific codes and gateway→downstream status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003

    # Payment record errors (61xxx)
    RECORD_NOT_FOUND = 61000
    RECORD_READ_ERROR = 61001
    RECORD_WRITE_ERROR = 61002
    RECORD_NOT_APPROVED = 61003


# Gateway status → downstream (guest/order) status. Anything missing is a no-op.
GATEWAY_STATUS_TO_DOWNSTREAM = {
    "approved": "confirmed",
    "pending": "pending",
    "cancelled": "cancelled",
    "rejected": "cancelled",
}


def map_downstream_status(gateway_status: str | None) -> str | None:
    """Return the downstream status for a gateway status, or None when unmapped."""
    if not gateway_status:
        return None
    return GATEWAY_STATUS_TO_DOWNSTREAM.get(gateway_status)
