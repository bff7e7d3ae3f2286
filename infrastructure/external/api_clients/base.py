"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 自动重试（tenacity）
- 错误分类
- 请求/响应日志
- Bearer 认证
"""
import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger

logger = get_logger(__name__)


class HTTPMethod(Enum):
    """HTTP方法枚举"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def text(self) -> str:
        return self.raw_content.decode('utf-8', errors='replace')


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    """认证错误"""


class NotFoundError(APIError):
    """资源未找到错误"""


class ServerError(APIError):
    """服务器错误"""


class RetryableAPIError(APIError):
    """可重试的API错误"""


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:
    """
    REST API客户端基类

    子类继承并实现具体的 API 调用；`transport` 供测试注入 httpx.MockTransport。
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "payment-reconciler/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.set_auth_token(auth_token)

        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        """设置认证令牌"""
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.lstrip('/')
        if not endpoint:
            return self.base_url
        return f"{self.base_url}/{endpoint}"

    def _raise_for_error(self, response: APIResponse):
        """按状态码抛出对应的错误"""
        error_map = {
            401: AuthenticationError,
            403: AuthenticationError,
            404: NotFoundError,
        }
        if response.status_code >= 500:
            error_class = ServerError
        else:
            error_class = error_map.get(response.status_code, APIError)

        error_message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            error_message = (
                response.data.get("message")
                or response.data.get("error")
                or response.data.get("detail")
                or error_message
            )
        raise error_class(
            message=str(error_message),
            status_code=response.status_code,
            response=response,
            request_id=response.request_id,
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str = "",
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        瞬时错误（超时、网络错误、429/5xx）按 max_retries 重试；
        最终失败统一抛出 APIError 子类。
        """
        if isinstance(method, HTTPMethod):
            method = method.value
        url = self._build_url(endpoint)
        request_headers = {**self.default_headers}
        if headers:
            request_headers.update(headers)

        logger.debug("api_request", method=method, url=url, params=params)

        async def _send_once() -> APIResponse:
            start_time = datetime.now()
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers=request_headers,
            )
            elapsed = (datetime.now() - start_time).total_seconds() * 1000

            response_data = None
            if "application/json" in response.headers.get("content-type", ""):
                try:
                    response_data = response.json()
                except json.JSONDecodeError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                raw_content=response.content,
                elapsed_ms=elapsed,
                request_id=response.headers.get("x-request-id"),
            )
            logger.debug("api_response", url=url, status_code=api_response.status_code, elapsed_ms=round(elapsed, 2))

            if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES:
                retry_after = api_response.headers.get("retry-after")
                if api_response.status_code == 429 and retry_after and retry_after.isdigit():
                    await asyncio.sleep(float(retry_after))
                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    request_id=api_response.request_id,
                )
            return api_response

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=lambda state: logger.warning(
                "api_request_retry", url=url, attempt=state.attempt_number, error=str(state.outcome.exception())
            ),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    api_response = await _send_once()
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            if exc.response is not None:
                self._raise_for_error(exc.response)
            raise

        if api_response.is_error:
            self._raise_for_error(api_response)
        return api_response

    async def put(self, endpoint: str = "", **kwargs) -> APIResponse:
        """PUT请求"""
        return await self._request(HTTPMethod.PUT, endpoint, **kwargs)


__all__ = [
    "APIError",
    "APIResponse",
    "AuthenticationError",
    "BaseAPIClient",
    "HTTPMethod",
    "NotFoundError",
    "ServerError",
]
