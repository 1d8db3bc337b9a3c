"""
Auth Package
============
Сессия пользователя и работа с токенами.
"""

from .session import AuthSession
from .tokens import is_token_expired, next_refresh_delay, token_expiry

__all__ = [
    'AuthSession',
    'is_token_expired',
    'next_refresh_delay',
    'token_expiry',
]
