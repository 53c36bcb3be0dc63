"""
REST API客户端基类

平台与支付网关客户端共用：
- 自动重试（仅连接失败，以及幂等请求的瞬时状态码）
- 错误映射（HTTP 状态码 -> APIError 子类）
- 请求/响应日志
- 超时控制
"""
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
    DELETE = "DELETE"


# 响应丢失后可安全重发的方法
IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS"}
RETRY_STATUS_CODES = {429, 502, 503, 504}


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

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)

    def payload(self) -> Any:
        """JSON 响应返回解析结果，否则返回解码后的文本"""
        if self.data is not None:
            return self.data
        return self.raw_content.decode("utf-8", errors="replace")


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None,
        request_sent: bool = True,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        # False 表示请求从未到达对端（连接失败），写操作一定没有生效
        self.request_sent = request_sent
        super().__init__(self.message)

    @property
    def payload(self) -> Any:
        return self.response.payload() if self.response is not None else None

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


class ConflictError(APIError):
    """版本冲突（409）"""


class RateLimitError(APIError):
    """速率限制错误"""


class ServerError(APIError):
    """服务器错误"""


class TransportError(APIError):
    """网络/超时错误，请求可能未到达对端"""


class RetryableAPIError(APIError):
    """可重试的API错误"""


ERROR_MAP = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    409: ConflictError,
    429: RateLimitError,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
}


class BaseAPIClient:
    """
    REST API客户端基类

    子类实现具体的 API 调用；POST 只在连接建立失败时重试，避免重复写入。
    """

    user_agent = "payment-sync-extension/1.0"

    def __init__(
        self,
        base_url: str,
        timeout: Union[float, httpx.Timeout] = 30.0,
        max_retries: int = 2,
        retry_delay: float = 0.2,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API基础URL
            timeout: 请求超时时间（秒）或 httpx.Timeout
            max_retries: 最大重试次数
            retry_delay: 重试退避基数（秒）
            headers: 默认请求头
            transport: 自定义 httpx transport（测试注入 MockTransport）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if headers:
            self.default_headers.update(headers)

        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """关闭HTTP客户端"""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _raise_for_error(self, response: APIResponse) -> None:
        error_class = ERROR_MAP.get(response.status_code, APIError)
        error_message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            error_message = (
                response.data.get("message")
                or response.data.get("error_description")
                or response.data.get("error")
                or error_message
            )
        raise error_class(
            message=str(error_message),
            status_code=response.status_code,
            response=response,
            request_id=response.request_id,
        )

    async def _send_once(self, method: str, url: str, **kwargs) -> APIResponse:
        start_time = datetime.now()
        try:
            response = await self.client.request(method=method, url=url, **kwargs)
        except httpx.ConnectError as exc:
            # 请求未到达对端，任何方法都可重试
            raise RetryableAPIError(f"Connection failed: {exc}", request_sent=False) from exc
        except httpx.TimeoutException as exc:
            if method in IDEMPOTENT_METHODS:
                raise RetryableAPIError(f"Request timeout: {exc}") from exc
            raise TransportError(f"Request timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"Network error: {exc}") from exc

        elapsed = (datetime.now() - start_time).total_seconds() * 1000
        data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except ValueError:
                data = None

        api_response = APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=data,
            raw_content=response.content,
            elapsed_ms=elapsed,
            request_id=response.headers.get("x-correlation-id") or response.headers.get("x-request-id"),
        )
        logger.debug(
            "api_response",
            method=method,
            url=url,
            status_code=api_response.status_code,
            elapsed_ms=round(elapsed, 2),
        )

        if api_response.is_error:
            if api_response.status_code in RETRY_STATUS_CODES and method in IDEMPOTENT_METHODS:
                raise RetryableAPIError(
                    f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    request_id=api_response.request_id,
                )
            self._raise_for_error(api_response)
        return api_response

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> APIResponse:
        """
        发送HTTP请求

        Raises:
            APIError: 按状态码映射的子类；重试耗尽后抛出最后一次的错误
        """
        if isinstance(method, HTTPMethod):
            method = method.value
        url = self._build_url(endpoint)
        request_headers = {**self.default_headers, **(headers or {})}

        logger.debug("api_request", method=method, url=url)

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type(RetryableAPIError),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(
                        method,
                        url,
                        params=params,
                        json=json_data,
                        data=data,
                        headers=request_headers,
                        **kwargs,
                    )
        except RetryableAPIError as exc:
            logger.warning("api_retries_exhausted", method=method, url=url, error=exc.message)
            if exc.response is not None:
                self._raise_for_error(exc.response)
            raise TransportError(exc.message, request_sent=exc.request_sent) from exc
        raise APIError("Request was not attempted")  # pragma: no cover

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)
