"""
Webhook signature verification.

The gateway signs `id:<data.id>;request-id:<x-request-id>;ts:<ts>;` with
HMAC-SHA256 and sends `x-signature: ts=<unix>,v1=<hex>`. The manifest
layout (field order, trailing semicolon) is part of the wire contract.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from core.logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class SignatureParts:
    ts: Optional[str]
    v1: Optional[str]


def parse_signature_header(header: Optional[str]) -> SignatureParts:
    """Parse `ts=...,v1=...`; unknown keys are ignored."""
    ts: Optional[str] = None
    v1: Optional[str] = None
    for part in (header or "").split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key == "ts":
            ts = value or None
        elif key == "v1":
            v1 = value or None
    return SignatureParts(ts=ts, v1=v1)


def build_manifest(event_id: str, request_id: str, ts: str) -> str:
    return f"id:{event_id};request-id:{request_id};ts:{ts};"


def compute_signature(manifest: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def _body_event_id(raw_body: Optional[bytes | str]) -> Optional[str]:
    if not raw_body:
        return None
    try:
        payload = json.loads(raw_body)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and data.get("id") is not None:
        return str(data["id"])
    return None


class SignatureVerifier:
    """Stateless verifier; every failure is reported as False, never raised."""

    def verify(
        self,
        signature_header: Optional[str],
        request_id: Optional[str],
        event_id: Optional[str],
        raw_body: Optional[bytes | str],
        secret: Optional[str],
    ) -> bool:
        parts = parse_signature_header(signature_header)
        if not parts.ts or not parts.v1:
            logger.warning("webhook_signature_malformed", has_ts=bool(parts.ts), has_v1=bool(parts.v1))
            return False
        if not secret or not request_id or not event_id:
            logger.warning(
                "webhook_signature_inputs_missing",
                has_secret=bool(secret),
                has_request_id=bool(request_id),
                has_event_id=bool(event_id),
            )
            return False

        # The notified id inside the body must be the one that was signed.
        body_id = _body_event_id(raw_body)
        if body_id is not None and body_id != event_id:
            logger.warning("webhook_signature_id_mismatch", event_id=event_id, body_id=body_id)
            return False

        expected = compute_signature(build_manifest(event_id, request_id, parts.ts), secret)
        valid = hmac.compare_digest(expected, parts.v1)
        if valid:
            logger.info("webhook_signature_valid", event_id=event_id, request_id=request_id)
        else:
            logger.warning("webhook_signature_invalid", event_id=event_id, request_id=request_id)
        return valid

    def verify_freshness(
        self,
        signature_header: Optional[str],
        tolerance_seconds: int = 300,
        now: Optional[float] = None,
    ) -> bool:
        parts = parse_signature_header(signature_header)
        if not parts.ts:
            logger.warning("webhook_timestamp_missing")
            return False
        try:
            webhook_ts = int(parts.ts)
        except ValueError:
            logger.warning("webhook_timestamp_malformed", ts=parts.ts)
            return False
        current = int(now if now is not None else time.time())
        difference = abs(current - webhook_ts)
        fresh = difference <= tolerance_seconds
        if not fresh:
            logger.warning(
                "webhook_timestamp_stale",
                webhook_ts=webhook_ts,
                current_ts=current,
                difference=difference,
                tolerance=tolerance_seconds,
            )
        return fresh
