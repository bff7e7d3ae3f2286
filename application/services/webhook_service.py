"""
Webhook ingestion: authenticate, fetch the fresh detail, route.

Signature failures raise WebhookSignatureException (the API answers 401 and
the gateway retries). Every other failure is logged and acknowledged so the
gateway does not redeliver a notification that reconciliation will recover.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.payments import WebhookAck, WebhookNotification
from application.ports.payment_gateway import PaymentGateway
from application.services.audit_service import AuditService
from application.services.signature import SignatureVerifier
from application.services.status_router import StatusTransitionRouter
from core.logging_config import get_logger
from domain.common.exceptions import WebhookSignatureException
from domain.payment.entity import ProcessingSource


logger = get_logger(__name__)


class WebhookService:
    def __init__(
        self,
        gateway: PaymentGateway,
        router: StatusTransitionRouter,
        verifier: SignatureVerifier,
        *,
        secret: Optional[str],
        tolerance_seconds: int = 300,
        freshness_mode: str = "warn",
        audit: Optional[AuditService] = None,
    ) -> None:
        self.gateway = gateway
        self.router = router
        self.verifier = verifier
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds
        self.freshness_mode = freshness_mode
        self.audit = audit

    def authenticate(
        self,
        *,
        signature: Optional[str],
        request_id: Optional[str],
        event_id: str,
        raw_body: bytes,
    ) -> None:
        if not self.secret:
            logger.error("webhook_secret_not_configured")
            raise WebhookSignatureException("Webhook secret is not configured")
        if not self.verifier.verify(signature, request_id, event_id, raw_body, self.secret):
            raise WebhookSignatureException(details={"event_id": event_id, "request_id": request_id})
        if self.freshness_mode == "off":
            return
        if not self.verifier.verify_freshness(signature, self.tolerance_seconds):
            if self.freshness_mode == "reject":
                raise WebhookSignatureException("Webhook signature timestamp outside tolerance")
            logger.warning("webhook_stale_accepted", event_id=event_id, tolerance=self.tolerance_seconds)

    async def handle(
        self,
        notification: WebhookNotification,
        *,
        signature: Optional[str],
        request_id: Optional[str],
        raw_body: bytes,
        query_data_id: Optional[str] = None,
    ) -> WebhookAck:
        payment_id = query_data_id or notification.data.id
        logger.info(
            "webhook_received",
            notification_id=notification.id,
            action=notification.action,
            type=notification.type,
            payment_id=payment_id,
            live_mode=notification.live_mode,
        )
        if notification.type != "payment" or not payment_id:
            logger.info("webhook_ignored", type=notification.type, payment_id=payment_id)
            return WebhookAck(status="ignored", message="Notification type not handled", payment_id=payment_id)

        try:
            self.authenticate(signature=signature, request_id=request_id, event_id=payment_id, raw_body=raw_body)
        except WebhookSignatureException as exc:
            await self._audit("signature_rejected", payment_id, "unauthorized", notification, error=exc.message)
            raise

        try:
            detail = await self.gateway.fetch_payment_detail(payment_id)
            result = await self.router.route(detail, source=ProcessingSource.WEBHOOK)
        except Exception as exc:
            logger.error("webhook_processing_error", payment_id=payment_id, error=str(exc), exc_info=True)
            await self._audit("processed", payment_id, "error", notification, error=str(exc))
            return WebhookAck(status="error", message="Webhook received with processing error", payment_id=payment_id)

        await self._audit("processed", payment_id, result.outcome.value, notification)
        return WebhookAck(
            status="received",
            message=result.message,
            payment_id=payment_id,
            outcome=result.outcome.value,
        )

    async def _audit(
        self,
        event: str,
        payment_id: Optional[str],
        result: str,
        notification: WebhookNotification,
        *,
        error: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.log_webhook_event(
            event,
            payment_id=payment_id,
            result=result,
            action=notification.action,
            live_mode=notification.live_mode,
            error=error,
        )
