"""Pydantic схемы ответов API."""

from .schemas import (
    AuthPayload,
    AuthResult,
    BulkUploadReport,
    Document,
    FileValidation,
    NewsArticle,
    Page,
    SessionCheck,
    UploadConfig,
    User,
)

__all__ = [
    "AuthPayload",
    "AuthResult",
    "BulkUploadReport",
    "Document",
    "FileValidation",
    "NewsArticle",
    "Page",
    "SessionCheck",
    "UploadConfig",
    "User",
]
