"""
API Package
===========
HTTP клиент портала, кэш ответов и хранилища.
"""

from .client import ApiClient, ApiResponse, BatchItemResult, RequestSpec
from .exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFound,
    PermissionDenied,
    RequestCancelled,
    ServerError,
    ValidationFailed,
)
from .storage import JsonFileStorage, MemoryStorage, RedisStorage, create_storage

__all__ = [
    'ApiClient',
    'ApiResponse',
    'BatchItemResult',
    'RequestSpec',
    'ApiError',
    'AuthenticationError',
    'NetworkError',
    'NotFound',
    'PermissionDenied',
    'RequestCancelled',
    'ServerError',
    'ValidationFailed',
    'JsonFileStorage',
    'MemoryStorage',
    'RedisStorage',
    'create_storage',
]
