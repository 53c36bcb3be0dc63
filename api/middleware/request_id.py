"""
Request ID 中间件

透传或生成 X-Request-ID，并把请求上下文绑定到 structlog，
便于关联同一请求周期内的所有日志。
"""
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"
    PROJECT_KEY_HEADER = "x-project-key"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        # 异常处理器从这里读取 error.request_id
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=_client_ip(request),
            method=request.method,
            path=request.url.path,
        )
        # 此时尚未认证，认证依赖通过后再绑定 project_key
        claimed = request.headers.get(self.PROJECT_KEY_HEADER)
        if claimed:
            structlog.contextvars.bind_contextvars(claimed_project_key=claimed)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or (request.client.host if request.client else "unknown")
