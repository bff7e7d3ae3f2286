"""
Base payment client implementing shared concerns: http, retry, logging, error mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentTimeoutError,
)


logger = get_logger(__name__)

RECOVERABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg["total"],
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeouts,
                headers=self._headers,
                transport=self._transport,
            )
        # Kept open for reuse; aclose() closes it.
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, PaymentRecoverableError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send with retries; map transport and status failures to payment exceptions."""

        async def _send_once() -> dict[str, Any]:
            async with self.client() as http:
                response = await http.request(method, path, **kwargs)
            self._raise_for_status(response, method, path)
            return response.json()

        try:
            return await self._retry(_send_once)
        except httpx.TimeoutException as exc:
            raise PaymentTimeoutError(f"{self.provider} request timed out", provider=self.provider, details={"path": path}) from exc
        except httpx.TransportError as exc:
            raise PaymentRecoverableError(f"{self.provider} transport error: {exc}", provider=self.provider) from exc
        except ValueError as exc:
            raise PaymentProviderError(f"{self.provider} returned invalid JSON", provider=self.provider) from exc

    def _raise_for_status(self, response: httpx.Response, method: str, path: str) -> None:
        if response.is_success:
            self._log("payment_provider_response", method=method, path=path, status_code=response.status_code)
            return
        message = self._error_message(response)
        logger.warning(
            "payment_provider_error_response",
            provider=self.provider,
            method=method,
            path=path,
            status_code=response.status_code,
            error=message,
        )
        if response.status_code in RECOVERABLE_STATUS_CODES:
            raise PaymentRecoverableError(message, provider=self.provider, status_code=response.status_code)
        raise PaymentProviderError(message, provider=self.provider, status_code=response.status_code)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
