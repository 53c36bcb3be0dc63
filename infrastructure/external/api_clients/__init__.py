"""
API客户端模块

平台与支付网关客户端共用的 REST 基类
"""
from .base import BaseAPIClient, APIResponse, APIError, ConflictError, NotFoundError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "ConflictError",
    "NotFoundError",
]
