"""
Audit trail for payment and webhook events.

Entries go through the structured logger under the `audit` logger name and,
when a path is configured, are appended to a JSON-lines file. Auditing never
raises into the caller.
"""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import aiofiles

from core.logging_config import get_logger
from domain.payment.entity import PaymentRecord


logger = get_logger("audit")

# Events that always raise an operator-visible warning.
CRITICAL_EVENTS = frozenset({
    "payment.refunded",
    "payment.charged_back",
    "payment.processing_failed",
})


class AuditService:
    def __init__(self, *, log_path: Optional[str] = None, high_value_threshold: float = 10000.0) -> None:
        self.log_path = Path(log_path) if log_path else None
        self.high_value_threshold = Decimal(str(high_value_threshold))
        self._write_lock = asyncio.Lock()

    async def log_payment_event(
        self,
        event: str,
        record: PaymentRecord,
        *,
        source: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "source": source,
            "external_reference": record.external_reference,
            "payment_id": record.payment_id,
            "status": record.status,
            "amount": str(record.amount) if record.amount is not None else None,
            "payer_email": record.payer_email,
            "details": details or {},
        }
        await self._emit(entry)
        if event in CRITICAL_EVENTS:
            logger.warning("audit_critical_event", audit_event=event, external_reference=record.external_reference)
        if record.amount is not None and record.amount > self.high_value_threshold:
            logger.warning(
                "audit_high_value_payment",
                external_reference=record.external_reference,
                amount=str(record.amount),
                threshold=str(self.high_value_threshold),
            )

    async def log_webhook_event(
        self,
        event: str,
        *,
        payment_id: Optional[str],
        result: str,
        action: Optional[str] = None,
        live_mode: Optional[bool] = None,
        error: Optional[str] = None,
    ) -> None:
        await self._emit({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": f"webhook.{event}",
            "source": "webhook",
            "payment_id": payment_id,
            "result": result,
            "action": action,
            "live_mode": live_mode,
            "error": error,
        })

    async def _emit(self, entry: dict[str, Any]) -> None:
        fields = {k: v for k, v in entry.items() if k != "event"}
        logger.info("audit_event", audit_event=entry["event"], **fields)
        if self.log_path is None:
            return
        try:
            async with self._write_lock:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(self.log_path, "a", encoding="utf-8") as fh:
                    await fh.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as exc:
            logger.error("audit_persist_failed", path=str(self.log_path), error=str(exc))
