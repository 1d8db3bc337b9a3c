"""
Базовый класс сервисов предметной области.
"""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel

from statportal.api.client import ApiClient
from statportal.core.config import settings
from statportal.models.schemas import Page

ModelT = TypeVar("ModelT", bound=BaseModel)

MINUTE = 60.0


def unwrap(data: Any, key: Optional[str] = None) -> Any:
    """
    Снимает обёртку ресурса Laravel.

    {"data": {...}} -> {...}; при заданном key: {"user": {...}} -> {...}.
    Списки и пагинированные ответы не трогаются.
    """
    if not isinstance(data, dict):
        return data
    if key and key in data:
        return data[key]
    if set(data) == {"data"} or ("data" in data and isinstance(data["data"], dict) and "last_page" not in data):
        return data["data"]
    return data


class BaseService:
    """Общая логика сервисов: клиент, разбор страниц, размер страницы."""

    #: семейство ключей кэша, очищаемое после изменений
    cache_family: str = ""

    def __init__(self, client: ApiClient) -> None:
        self.client = client

    @staticmethod
    def page_size(per_page: Optional[int]) -> int:
        size = per_page or settings.DEFAULT_PAGE_SIZE
        return max(1, min(int(size), settings.MAX_PAGE_SIZE))

    @staticmethod
    def parse_model(model: Type[ModelT], data: Any, key: Optional[str] = None) -> ModelT:
        return model.model_validate(unwrap(data, key))

    @staticmethod
    def parse_list(model: Type[ModelT], data: Any) -> list[ModelT]:
        items = unwrap(data)
        if isinstance(items, dict):
            items = items.get("data") or []
        return [model.model_validate(item) for item in items or []]

    @staticmethod
    def parse_page(model: Type[ModelT], data: Any) -> Page[ModelT]:
        if isinstance(data, list):
            return Page[model](data=data, current_page=1, last_page=1, per_page=len(data), total=len(data))
        return Page[model].model_validate(data or {})

    async def invalidate(self, *patterns: str) -> None:
        for pattern in patterns or (self.cache_family,):
            if pattern:
                await self.client.clear_cache(pattern)
