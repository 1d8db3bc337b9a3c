"""
Бесконечная подгрузка списка: страницы накапливаются в items.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from statportal.api.exceptions import ApiError, normalize_error
from statportal.core.config import settings

logger = logging.getLogger(__name__)


def _page_items(response: Any) -> list[Any]:
    if response is None:
        return []
    if isinstance(response, list):
        return response
    if isinstance(response, dict):
        return list(response.get("data") or [])
    return list(getattr(response, "data", None) or [])


class InfiniteList:
    """
    Подгружает следующую страницу по load_more().

    has_more становится False, когда страница пустая или короче page_size.
    Пока идёт загрузка, повторные вызовы load_more() ничего не делают.
    """

    def __init__(
        self,
        fetcher: Callable[[dict[str, Any]], Awaitable[Any]],
        *,
        page_size: Optional[int] = None,
        enabled: bool = True,
    ) -> None:
        self.fetcher = fetcher
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self.enabled = enabled

        self.items: list[Any] = []
        self.page = 1
        self.has_more = True
        self.loading = False
        self.error: Optional[ApiError] = None

    async def load_more(self) -> list[Any]:
        """Загружает следующую страницу и возвращает новые элементы."""
        if self.loading or not self.has_more or not self.enabled:
            return []

        self.loading = True
        self.error = None
        try:
            response = await self.fetcher({"page": self.page, "per_page": self.page_size})
            new_items = _page_items(response)
            if len(new_items) < self.page_size:
                self.has_more = False
            self.items.extend(new_items)
            self.page += 1
            return new_items
        except Exception as exc:
            self.error = normalize_error(exc)
            logger.warning("Failed to load page %s: %s", self.page, self.error.message)
            return []
        finally:
            self.loading = False

    def reset(self) -> None:
        self.items = []
        self.page = 1
        self.has_more = True
        self.error = None
        self.loading = False
