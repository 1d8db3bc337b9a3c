"""
Debouncer на таймерах asyncio: из серии быстрых вызовов срабатывает только последний.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from statportal.core.config import settings

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Откладывает вызов callback на delay_ms; повторный вызов сбрасывает таймер.

    Если callback возвращает корутину, она запускается задачей;
    последнюю задачу можно дождаться через wait().
    """

    def __init__(self, callback: Callable[..., Any], delay_ms: Optional[int] = None) -> None:
        self.callback = callback
        self.delay_ms = delay_ms if delay_ms is not None else settings.SEARCH_DEBOUNCE_MS
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        # Выставлен, когда таймер не взведён (сработал или отменён)
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._idle.clear()
        self._handle = loop.call_later(self.delay_ms / 1000, self._fire, args, kwargs)

    def _fire(self, args: tuple, kwargs: dict) -> None:
        self._handle = None
        try:
            result = self.callback(*args, **kwargs)
            if asyncio.iscoroutine(result):
                self._task = asyncio.ensure_future(result)
        finally:
            self._idle.set()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._idle.set()

    async def wait(self) -> Any:
        """Ждёт срабатывания таймера и завершения запущенной корутины."""
        # Повторный вызов во время ожидания снова взводит таймер
        while self._handle is not None:
            await self._idle.wait()
        if self._task is not None:
            return await self._task
        return None
