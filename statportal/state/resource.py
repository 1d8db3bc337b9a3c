"""
==============================================================================
API RESOURCE
==============================================================================
Жизненный цикл загрузки данных: loading / error / data / attempt.

- Повторы с экспоненциальной задержкой (retry_delay * 2**attempt)
- In-memory кэш результата по cache_key с TTL
- Новый fetch отменяет предыдущий незавершённый; отмена не повторяется
- Колбэки on_success / on_error, статистика запросов
==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from statportal.api.exceptions import ApiError, RequestCancelled, normalize_error
from statportal.core.config import settings
from statportal.utils.request_stats import RequestStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApiResource(Generic[T]):
    """
    Обёртка над асинхронной функцией загрузки данных.

    Args:
        fetcher: Корутинная функция, возвращающая данные
        retry_attempts: Количество повторов после первой попытки
        retry_delay: Базовая задержка между повторами в секундах
        cache_key: Ключ in-memory кэша (None - без кэша)
        cache_duration: TTL кэша в секундах
    """

    def __init__(
        self,
        fetcher: Callable[..., Awaitable[T]],
        *,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        cache_key: Optional[str] = None,
        cache_duration: Optional[float] = None,
        on_success: Optional[Callable[[T], Any]] = None,
        on_error: Optional[Callable[[ApiError], Any]] = None,
        name: Optional[str] = None,
        stats: Optional[RequestStats] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetcher = fetcher
        self.retry_attempts = retry_attempts if retry_attempts is not None else settings.API_RETRY_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.API_RETRY_DELAY
        self.cache_key = cache_key
        self.cache_duration = cache_duration if cache_duration is not None else settings.DEFAULT_CACHE_TTL
        self.on_success = on_success
        self.on_error = on_error
        self.name = name or getattr(fetcher, "__name__", None) or "API Request"
        self.stats = stats if stats is not None else RequestStats()
        self._sleep = sleep
        self._clock = clock

        self.data: Optional[T] = None
        self.loading = False
        self.error: Optional[ApiError] = None
        self.attempt = 0

        self._cache: dict[str, tuple[float, T]] = {}
        self._current: Optional[asyncio.Task] = None
        self._superseded: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Кэш
    # ------------------------------------------------------------------
    def _cached(self, key: str) -> Optional[T]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at < self.cache_duration:
            return value
        del self._cache[key]
        return None

    def clear_cache(self, key: Optional[str] = None) -> None:
        """Удаляет запись текущего cache_key (или указанного ключа)."""
        target = key if key is not None else self.cache_key
        if target is not None:
            self._cache.pop(target, None)

    def clear_all(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Загрузка
    # ------------------------------------------------------------------
    async def fetch(self, *args: Any, **kwargs: Any) -> T:
        """
        Загружает данные. Незавершённая предыдущая загрузка отменяется
        и завершается у своего вызывающего исключением RequestCancelled.
        """
        previous = self._current
        if previous is not None and not previous.done():
            self._superseded.add(previous)
            previous.cancel()

        task = asyncio.ensure_future(self._run(self.cache_key, args, kwargs))
        self._current = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._current is task:
                # Новый запрос не запущен, загрузка завершена
                self.loading = False
                self.attempt = 0
            if task in self._superseded:
                self._superseded.discard(task)
                raise RequestCancelled("Request cancelled due to new request") from None
            raise
        finally:
            if self._current is task:
                self._current = None

    async def refetch(self, *args: Any, **kwargs: Any) -> T:
        return await self.fetch(*args, **kwargs)

    def cancel(self) -> None:
        if self._current is not None and not self._current.done():
            self._superseded.add(self._current)
            self._current.cancel()

    async def _run(self, cache_key: Optional[str], args: tuple, kwargs: dict) -> T:
        if cache_key:
            cached = self._cached(cache_key)
            if cached is not None:
                self.data = cached
                self.loading = False
                self.error = None
                return cached

        self.loading = True
        self.error = None
        last_error: Optional[BaseException] = None

        for attempt in range(self.retry_attempts + 1):
            self.attempt = attempt
            started = time.perf_counter()
            try:
                result = await self.fetcher(*args, **kwargs)
            except RequestCancelled as exc:
                # Отменённый запрос не повторяем
                last_error = exc
                break
            except Exception as exc:
                last_error = exc
                self.stats.track(self.name, (time.perf_counter() - started) * 1000, success=False)
                if attempt < self.retry_attempts:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.debug("%s failed (attempt %s), retrying in %.2fs", self.name, attempt + 1, delay)
                    await self._sleep(delay)
                continue

            self.stats.track(self.name, (time.perf_counter() - started) * 1000, success=True)
            self.data = result
            self.loading = False
            self.error = None
            self.attempt = 0
            if cache_key:
                self._cache[cache_key] = (self._clock(), result)
            if self.on_success:
                self.on_success(result)
            return result

        error = normalize_error(last_error) if last_error is not None else ApiError("Request failed")
        self.error = error
        self.loading = False
        self.attempt = 0
        logger.warning("%s failed: %s", self.name, error.message)
        if self.on_error:
            self.on_error(error)
        if error is last_error:
            raise error
        raise error from last_error
