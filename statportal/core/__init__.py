"""
Core Package
============
Конфигурация, константы и логирование.
"""

from .config import settings

__all__ = ['settings']
