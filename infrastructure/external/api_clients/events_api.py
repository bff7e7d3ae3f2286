"""下游事件系统状态同步客户端"""
from typing import Optional

import httpx

from core.logging_config import get_logger
from core.settings import DownstreamSettings

from .base import APIError, BaseAPIClient

logger = get_logger(__name__)


class EventsApiStatusSyncClient(BaseAPIClient):
    """
    `PUT <url>` with `{"id": <external_reference>, "status": <mapped>}`.

    Only 200 and 204 count as success. Never raises: every failure, including
    missing configuration, is reported as False.
    """

    def __init__(self, settings: DownstreamSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            base_url=settings.url or "",
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
            retry_delay=0.5,
            auth_token=settings.token,
            transport=transport,
        )
        self.configured = bool(settings.url and settings.token)
        if not self.configured:
            logger.warning(
                "downstream_api_not_configured",
                has_url=bool(settings.url),
                has_token=bool(settings.token),
            )

    async def sync_status(self, external_reference: str, mapped_status: str) -> bool:
        if not self.configured:
            logger.error("downstream_sync_skipped_not_configured", external_reference=external_reference)
            return False

        logger.info("downstream_sync_request", external_reference=external_reference, status=mapped_status)
        try:
            response = await self.put(json_data={"id": external_reference, "status": mapped_status})
        except APIError as exc:
            logger.error(
                "downstream_sync_failed",
                external_reference=external_reference,
                status=mapped_status,
                status_code=exc.status_code,
                error=exc.message,
            )
            return False

        if response.status_code in (200, 204):
            logger.info(
                "downstream_sync_succeeded",
                external_reference=external_reference,
                status=mapped_status,
                response_status=response.status_code,
            )
            return True
        logger.warning(
            "downstream_sync_unexpected_response",
            external_reference=external_reference,
            status=mapped_status,
            response_status=response.status_code,
            response_body=response.text()[:500],
        )
        return False
