"""
Состояние постраничного списка: страница, поиск с задержкой, фильтры, сортировка.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from statportal.api.exceptions import ApiError
from statportal.core.config import settings
from statportal.state.debounce import Debouncer
from statportal.state.resource import ApiResource
from statportal.utils.cache_keys import build_state_key

logger = logging.getLogger(__name__)


def _field(response: Any, name: str, default: Any = None) -> Any:
    if response is None:
        return default
    if isinstance(response, dict):
        return response.get(name, default)
    return getattr(response, name, default)


class PaginatedQuery:
    """
    Постраничная загрузка в формате пагинатора Laravel.

    fetcher получает словарь параметров
    {"page", "per_page", "search", "sort_by", "sort_order", **filters}
    и возвращает Page или dict с полями data / last_page / total.
    Любое изменение поиска, фильтров или сортировки сбрасывает страницу на 1.
    """

    def __init__(
        self,
        fetcher: Callable[[dict[str, Any]], Awaitable[Any]],
        *,
        initial_page: int = 1,
        page_size: Optional[int] = None,
        search_debounce_ms: Optional[int] = None,
        cache_pages: bool = True,
        **resource_options: Any,
    ) -> None:
        self.page = initial_page
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self.total_pages = 0
        self.total_items = 0
        self.search_term = ""
        self.filters: dict[str, Any] = {}
        self.sort_by: Optional[str] = None
        self.sort_order = "asc"
        self.cache_pages = cache_pages

        self.resource: ApiResource[Any] = ApiResource(fetcher, **resource_options)
        self._search_debouncer = Debouncer(self._apply_search, search_debounce_ms)

    # ------------------------------------------------------------------
    # Параметры и состояние
    # ------------------------------------------------------------------
    @property
    def params(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "per_page": self.page_size,
            "search": self.search_term,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            **self.filters,
        }

    @property
    def cache_key(self) -> Optional[str]:
        return build_state_key("paginated", self.params) if self.cache_pages else None

    @property
    def response(self) -> Any:
        return self.resource.data

    @property
    def items(self) -> list[Any]:
        return list(_field(self.resource.data, "data") or [])

    @property
    def loading(self) -> bool:
        return self.resource.loading

    @property
    def error(self) -> Optional[ApiError]:
        return self.resource.error

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    # ------------------------------------------------------------------
    # Загрузка
    # ------------------------------------------------------------------
    async def load(self) -> Any:
        """Загружает текущую страницу и обновляет счётчики страниц и элементов."""
        self.resource.cache_key = self.cache_key
        response = await self.resource.fetch(self.params)
        if _field(response, "data") is not None:
            self.total_pages = _field(response, "last_page", 0) or 0
            self.total_items = _field(response, "total", 0) or 0
        return response

    async def refetch(self) -> Any:
        self.resource.clear_cache(self.cache_key)
        return await self.load()

    def clear_cache(self) -> None:
        self.resource.clear_all()

    # ------------------------------------------------------------------
    # Навигация
    # ------------------------------------------------------------------
    async def next_page(self) -> Optional[Any]:
        if not self.has_next_page:
            return None
        self.page += 1
        return await self.load()

    async def prev_page(self) -> Optional[Any]:
        if not self.has_prev_page:
            return None
        self.page -= 1
        return await self.load()

    async def go_to_page(self, page: int) -> Optional[Any]:
        """Переход на страницу в пределах [1, total_pages]; иначе ничего не делает."""
        if page < 1 or page > self.total_pages:
            return None
        self.page = page
        return await self.load()

    # ------------------------------------------------------------------
    # Поиск, фильтры, сортировка
    # ------------------------------------------------------------------
    def set_search(self, term: str) -> None:
        """Поиск с задержкой: срабатывает последний ввод после паузы."""
        self._search_debouncer(term)

    async def wait_for_search(self) -> Any:
        return await self._search_debouncer.wait()

    async def _apply_search(self, term: str) -> Any:
        self.search_term = term
        self.page = 1
        try:
            return await self.load()
        except ApiError as exc:
            # Ошибка уже сохранена в self.error
            logger.debug("Search load failed: %s", exc.message)
            return None

    async def search(self, term: str) -> Any:
        """Поиск без задержки."""
        self._search_debouncer.cancel()
        self.search_term = term
        self.page = 1
        return await self.load()

    async def update_filters(self, **filters: Any) -> Any:
        self.filters.update(filters)
        self.page = 1
        return await self.load()

    async def update_sort(self, field: str, order: str = "asc") -> Any:
        self.sort_by = field
        self.sort_order = order
        self.page = 1
        return await self.load()

    async def clear_filters(self) -> Any:
        self._search_debouncer.cancel()
        self.filters = {}
        self.search_term = ""
        self.sort_by = None
        self.sort_order = "asc"
        self.page = 1
        return await self.load()
