"""
Gateway webhook endpoint.

Keep this thin: body parsing and header extraction only; authentication,
fetching and routing live in WebhookService.
"""
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError

from api.dependencies import get_webhook_service
from application.dtos.payments import WebhookAck, WebhookNotification
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from core.response import success_response


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


def _parse_body(raw_body: bytes) -> dict:
    if not raw_body:
        return {}
    try:
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning("webhook_body_not_json", size=len(raw_body))
        return {}
    return payload if isinstance(payload, dict) else {}


@router.post("/mercadopago", summary="Receive payment notification")
async def mercadopago_webhook(
    request: Request,
    data_id: Optional[str] = Query(default=None, alias="data.id"),
    topic: Optional[str] = Query(default=None, alias="type"),
    service: WebhookService = Depends(get_webhook_service),
):
    raw_body = await request.body()
    payload = _parse_body(raw_body)
    if topic and not payload.get("type"):
        payload["type"] = topic
    try:
        notification = WebhookNotification.model_validate(payload)
    except ValidationError as exc:
        # Malformed bodies are acknowledged as ignored; only signature failures are rejected.
        logger.warning("webhook_payload_invalid", payment_id=data_id, errors=exc.error_count())
        ack = WebhookAck(status="ignored", message="Notification payload not recognised", payment_id=data_id)
        return success_response(data=ack.model_dump(mode="json"), message=ack.message)

    ack = await service.handle(
        notification,
        signature=request.headers.get("x-signature"),
        request_id=request.headers.get("x-request-id"),
        raw_body=raw_body,
        query_data_id=data_id,
    )
    return success_response(data=ack.model_dump(mode="json"), message=ack.message)
