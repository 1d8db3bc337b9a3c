"""
Pydantic схемы ответов API портала.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ============================================================================
# Пользователи и аутентификация
# ============================================================================

class User(BaseModel):
    """Пользователь портала."""
    model_config = ConfigDict(extra="allow")

    id: int
    name: str = ""
    email: str = ""
    role: str = "user"
    status: Optional[str] = None
    avatar: Optional[str] = None
    email_verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AuthPayload(BaseModel):
    """Ответ login/register/refresh: пользователь и bearer-токен."""
    model_config = ConfigDict(extra="allow")

    token: str
    user: Optional[User] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class AuthResult(BaseModel):
    """Результат операции сессии (login/register). Ошибки не пробрасываются."""
    success: bool
    user: Optional[User] = None
    message: str = ""
    error: Optional[str] = None
    status: Optional[int] = None


# ============================================================================
# Контент
# ============================================================================

class NewsArticle(BaseModel):
    """Новостная статья."""
    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    body: str = ""
    excerpt: Optional[str] = ""
    category: Optional[str] = None
    status: str = "draft"
    image_url: Optional[str] = None
    author_id: Optional[int] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Document(BaseModel):
    """Загруженный документ."""
    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    description: Optional[str] = ""
    category: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    is_public: bool = True
    tags: List[str] = Field(default_factory=list)
    downloads: int = 0
    created_at: Optional[datetime] = None


class Page(BaseModel, Generic[T]):
    """
    Страница списка в формате пагинатора Laravel.

    {"data": [...], "current_page": 1, "last_page": 5, "per_page": 10, "total": 42}
    """
    model_config = ConfigDict(extra="allow")

    data: List[T] = Field(default_factory=list)
    current_page: int = 1
    last_page: int = 0
    per_page: int = 10
    total: int = 0

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.last_page

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1


# ============================================================================
# Служебные результаты
# ============================================================================

class BulkUploadItem(BaseModel):
    """Результат загрузки одного файла в bulk_upload."""
    file: str
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class BulkUploadSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BulkUploadReport(BaseModel):
    """Итог пакетной загрузки документов."""
    success: bool
    results: List[BulkUploadItem]
    summary: BulkUploadSummary
    message: str


class UploadConfig(BaseModel):
    """Ограничения загрузки файлов."""
    max_size: int
    max_size_formatted: str
    allowed_types: List[str]
    allowed_extensions: List[str]


class FileValidation(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class SessionCheck(BaseModel):
    """Результат validate_session."""
    valid: bool
    data: Optional[Any] = None
    error: Optional[str] = None
