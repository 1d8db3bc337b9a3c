"""
Вспомогательные классы тестов: фейковый API для httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Optional, Union

import httpx

BASE_URL = "http://testserver/api"

Handler = Union[httpx.Response, Callable[[httpx.Request], Any]]


class FakeApi:
    """
    Маршрутизатор запросов для MockTransport.

    Для маршрута можно задать несколько ответов: они отдаются по очереди,
    последний повторяется. Ответ - httpx.Response или функция от запроса
    (обычная или async).
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Handler]] = {}
        self.requests: list[httpx.Request] = []
        self.calls: dict[tuple[str, str], int] = defaultdict(int)

    def add(self, method: str, path: str, *responses: Handler) -> None:
        self.routes[(method.upper(), path)] = list(responses)

    def json(self, method: str, path: str, data: Any, status: int = 200) -> None:
        self.add(method, path, httpx.Response(status, json=data))

    def count(self, method: str, path: str) -> int:
        return self.calls[(method.upper(), path)]

    def last(self, method: str, path: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.method == method.upper() and self.path_of(request) == path:
                return request
        raise AssertionError(f"{method} {path} was not requested")

    @staticmethod
    def path_of(request: httpx.Request) -> str:
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api") else path

    def __call__(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        key = (request.method, self.path_of(request))
        self.calls[key] += 1
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"message": f"No route for {key[0]} {key[1]}"})
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(handler, httpx.Response):
            # Новый объект на каждый запрос: ответ httpx нельзя прочитать дважды
            return httpx.Response(handler.status_code, headers=handler.headers, content=handler.content)
        return handler(request)


class SleepRecorder:
    """Заменяет asyncio.sleep: записывает задержки и не ждёт."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def user_payload(role: str = "user", **overrides: Any) -> dict[str, Any]:
    data = {"id": 1, "name": "Test User", "email": "test@example.com", "role": role}
    data.update(overrides)
    return data


def paginated(
    items: list[Any],
    page: int = 1,
    last_page: int = 1,
    per_page: int = 10,
    total: Optional[int] = None,
) -> dict[str, Any]:
    return {
        "data": items,
        "current_page": page,
        "last_page": last_page,
        "per_page": per_page,
        "total": len(items) if total is None else total,
    }


def bearer(request: httpx.Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    return header[len("Bearer "):] if header.startswith("Bearer ") else None
