"""
Сервис новостей: список с фильтрами, CRUD, публикация, поиск.

Списки кэшируются через get_with_cache; любые изменения очищают семейство
ключей кэша "news".
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from statportal.api.client import FileSource
from statportal.core.constants import VALIDATION_MESSAGES, NewsStatus
from statportal.models.schemas import NewsArticle, Page
from statportal.services.base import MINUTE, BaseService
from statportal.utils.validators import BODY_MIN_LENGTH, TITLE_MIN_LENGTH, check_min_length, raise_if_errors

logger = logging.getLogger(__name__)

LIST_TTL = 2 * MINUTE
ARTICLE_TTL = 5 * MINUTE
FEATURED_TTL = 10 * MINUTE
RECENT_TTL = 5 * MINUTE
CATEGORIES_TTL = 30 * MINUTE

_UNSET: Any = object()


class NewsService(BaseService):
    """Запросы /news к API портала."""

    cache_family = "news"

    async def list(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        search: str = "",
        category: str = "",
        status: str = "",
        sort_by: str = "created_at",
        sort_order: str = "desc",
        *,
        use_cache: bool = True,
    ) -> Page[NewsArticle]:
        params = {
            "page": page,
            "per_page": self.page_size(per_page),
            "search": search,
            "category": category,
            "status": status,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }
        response = await self.client.get_with_cache(
            "/news", params=params, cache_duration=LIST_TTL, use_cache=use_cache
        )
        return self.parse_page(NewsArticle, response.data)

    async def get(self, article_id: int) -> NewsArticle:
        response = await self.client.get_with_cache(f"/news/{article_id}", cache_duration=ARTICLE_TTL)
        return self.parse_model(NewsArticle, response.data)

    async def create(
        self,
        title: str,
        body: Optional[str] = None,
        category: Optional[str] = None,
        *,
        content: Optional[str] = None,
        excerpt: Optional[str] = None,
        status: str = NewsStatus.DRAFT,
        image_url: Optional[str] = None,
        featured_image: Optional[str] = None,
    ) -> NewsArticle:
        """
        Создаёт статью. Текст можно передать как body или content.
        """
        text = body or content
        errors: dict[str, list[str]] = {}
        check_min_length(errors, "title", title, TITLE_MIN_LENGTH, VALIDATION_MESSAGES["title_min"])
        check_min_length(errors, "body", text, BODY_MIN_LENGTH, VALIDATION_MESSAGES["body_min"])
        if not category:
            errors["category"] = [VALIDATION_MESSAGES["category_required"]]
        raise_if_errors(errors)

        response = await self.client.post(
            "/news",
            {
                "title": title.strip(),
                "body": text.strip(),
                "excerpt": (excerpt or "").strip(),
                "category": category,
                "status": status,
                "image_url": featured_image or image_url,
            },
        )
        await self.invalidate()
        logger.info("News article created: %s", title.strip())
        return self.parse_model(NewsArticle, response.data)

    async def update(
        self,
        article_id: int,
        *,
        title: Optional[str] = _UNSET,
        body: Optional[str] = _UNSET,
        content: Optional[str] = _UNSET,
        excerpt: Optional[str] = _UNSET,
        category: Optional[str] = _UNSET,
        status: Optional[str] = _UNSET,
        image_url: Optional[str] = _UNSET,
        featured_image: Optional[str] = _UNSET,
    ) -> NewsArticle:
        """Частичное обновление: проверяются и отправляются только переданные поля."""
        if body is not _UNSET and body:
            text = body
        elif content is not _UNSET:
            text = content
        else:
            text = body

        errors: dict[str, list[str]] = {}
        if title is not _UNSET:
            check_min_length(errors, "title", title, TITLE_MIN_LENGTH, VALIDATION_MESSAGES["title_min"])
        if text is not _UNSET:
            check_min_length(errors, "body", text, BODY_MIN_LENGTH, VALIDATION_MESSAGES["body_min"])
        if category is not _UNSET and not category:
            errors["category"] = [VALIDATION_MESSAGES["category_required"]]
        raise_if_errors(errors)

        payload: dict[str, Any] = {}
        if title is not _UNSET:
            payload["title"] = title.strip()
        if text is not _UNSET:
            payload["body"] = text.strip()
        if excerpt is not _UNSET:
            payload["excerpt"] = (excerpt or "").strip()
        if category is not _UNSET:
            payload["category"] = category
        if status is not _UNSET:
            payload["status"] = status
        if featured_image is not _UNSET or image_url is not _UNSET:
            image = featured_image if featured_image is not _UNSET else None
            payload["image_url"] = image or (image_url if image_url is not _UNSET else None)

        response = await self.client.put(f"/news/{article_id}", payload)
        await self.invalidate()
        return self.parse_model(NewsArticle, response.data)

    async def delete(self, article_id: int) -> Any:
        response = await self.client.delete(f"/news/{article_id}")
        await self.invalidate()
        logger.info("News article deleted: %s", article_id)
        return response.data

    async def featured(self, limit: int = 5) -> list[NewsArticle]:
        response = await self.client.get_with_cache(
            "/news/featured", params={"limit": limit}, cache_duration=FEATURED_TTL
        )
        return self.parse_list(NewsArticle, response.data)

    async def recent(self, limit: int = 10) -> list[NewsArticle]:
        response = await self.client.get_with_cache(
            "/news/recent", params={"limit": limit}, cache_duration=RECENT_TTL
        )
        return self.parse_list(NewsArticle, response.data)

    async def categories(self) -> list[Any]:
        response = await self.client.get_with_cache("/news/categories", cache_duration=CATEGORIES_TTL)
        data = response.data
        if isinstance(data, dict):
            data = data.get("data") or data.get("categories") or []
        return list(data or [])

    async def search(
        self,
        query: str,
        *,
        limit: int = 20,
        category: str = "",
        date_from: str = "",
        date_to: str = "",
    ) -> list[NewsArticle]:
        response = await self.client.get(
            "/news/search",
            params={
                "q": query,
                "limit": limit,
                "category": category,
                "date_from": date_from,
                "date_to": date_to,
            },
        )
        return self.parse_list(NewsArticle, response.data)

    async def publish(self, article_id: int) -> NewsArticle:
        response = await self.client.patch(f"/news/{article_id}/publish")
        await self.invalidate()
        logger.info("News article published: %s", article_id)
        return self.parse_model(NewsArticle, response.data)

    async def unpublish(self, article_id: int) -> NewsArticle:
        response = await self.client.patch(f"/news/{article_id}/unpublish")
        await self.invalidate()
        logger.info("News article unpublished: %s", article_id)
        return self.parse_model(NewsArticle, response.data)

    async def upload_featured_image(
        self,
        file: FileSource,
        on_progress: Optional[Callable[[int, int, int], Any]] = None,
    ) -> Any:
        response = await self.client.upload_file(
            "/news/upload-image", file, field="image", on_progress=on_progress
        )
        return response.data
