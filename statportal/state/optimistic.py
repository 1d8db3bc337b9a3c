"""
Оптимистичное обновление: данные меняются сразу, затем синхронизируются с сервером.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from statportal.api.exceptions import ApiError, normalize_error

T = TypeVar("T")


class OptimisticUpdate(Generic[T]):
    """
    mutate(optimistic, *args) сразу выставляет data = optimistic,
    вызывает updater(*args) и заменяет data ответом сервера.
    При ошибке data откатывается к прежнему значению (rollback_on_error).
    """

    def __init__(
        self,
        updater: Callable[..., Awaitable[T]],
        *,
        initial: Optional[T] = None,
        on_success: Optional[Callable[[T], Any]] = None,
        on_error: Optional[Callable[[ApiError], Any]] = None,
        rollback_on_error: bool = True,
    ) -> None:
        self.updater = updater
        self.data: Optional[T] = initial
        self.loading = False
        self.error: Optional[ApiError] = None
        self.on_success = on_success
        self.on_error = on_error
        self.rollback_on_error = rollback_on_error

    async def mutate(self, optimistic: T, *args: Any, **kwargs: Any) -> T:
        previous = self.data
        self.data = optimistic
        self.loading = True
        self.error = None
        try:
            result = await self.updater(*args, **kwargs)
        except asyncio.CancelledError:
            if self.rollback_on_error:
                self.data = previous
            raise
        except Exception as exc:
            error = normalize_error(exc)
            self.error = error
            if self.rollback_on_error:
                self.data = previous
            if self.on_error:
                self.on_error(error)
            if error is exc:
                raise
            raise error from exc
        finally:
            self.loading = False

        self.data = result
        if self.on_success:
            self.on_success(result)
        return result

    def set_data(self, value: Optional[T]) -> None:
        self.data = value
