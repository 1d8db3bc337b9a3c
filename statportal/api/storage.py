"""
Постоянные хранилища ключ-значение для токена и кэша ответов.

Роль localStorage браузера играет JSON-файл (JsonFileStorage).
Для нескольких процессов можно использовать Redis (RedisStorage).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from redis.asyncio import ConnectionPool, Redis

from statportal.core.config import settings

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """Общий интерфейс хранилищ. Значения - JSON-сериализуемые объекты."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def keys(self, prefix: str = "") -> list[str]: ...

    async def clear(self) -> bool: ...


class JsonFileStorage:
    """
    Хранилище в JSON файле.

    Ошибки чтения/записи не пробрасываются: как и localStorage, хранилище
    деградирует до пустого состояния и пишет предупреждение в лог.
    Параметр expire игнорируется - срок жизни кэша проверяется по timestamp записи.
    """

    def __init__(self, storage_file: str | Path | None = None) -> None:
        self.storage_file = Path(storage_file or settings.STORAGE_FILE)
        self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if not self.storage_file.exists():
            self._data = {}
            return
        try:
            with open(self.storage_file, "r", encoding="utf-8") as fh:
                loaded = json.load(fh)
            self._data = loaded if isinstance(loaded, dict) else {}
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Не удалось прочитать хранилище %s: %s", self.storage_file, exc)
            self._data = {}

    def _save(self, data: dict[str, Any]) -> bool:
        """
        Сохраняет снимок data. Файл заменяется атомарно через временный файл,
        при ошибке прежнее содержимое файла не меняется.
        """
        try:
            payload = json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.warning("Значение не сериализуется в JSON, хранилище не изменено: %s", exc)
            return False

        tmp_file = self.storage_file.with_name(f"{self.storage_file.name}.tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_file, self.storage_file)
            return True
        except OSError as exc:
            logger.warning("Не удалось сохранить хранилище %s: %s", self.storage_file, exc)
            tmp_file.unlink(missing_ok=True)
            return False

    def _commit(self, data: dict[str, Any]) -> bool:
        if not self._save(data):
            return False
        self._data = data
        return True

    async def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        with self._lock:
            return self._commit({**self._data, key: value})

    async def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._data:
                return True
            data = dict(self._data)
            del data[key]
            return self._commit(data)

    async def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [key for key in self._data if key.startswith(prefix)]

    async def clear(self) -> bool:
        with self._lock:
            return self._commit({})


class MemoryStorage:
    """Хранилище в памяти процесса (без сохранения на диск)."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._data if key.startswith(prefix)]

    async def clear(self) -> bool:
        self._data.clear()
        return True


class RedisStorage:
    """Асинхронное хранилище в Redis. Значения хранятся как JSON-строки."""

    def __init__(self, redis_url: str | None = None, namespace: str = "statportal:") -> None:
        self.redis_url = redis_url or settings.REDIS_URL
        self.namespace = namespace
        self.redis: Optional[Redis] = None
        self._pool: Optional[ConnectionPool] = None

    async def connect(self) -> None:
        """Подключение к Redis"""
        if self.redis is None:
            self._pool = ConnectionPool.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
            )
            self.redis = Redis(connection_pool=self._pool)

    async def disconnect(self) -> None:
        """Отключение от Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def get(self, key: str) -> Optional[Any]:
        if not self.redis:
            await self.connect()
        value = await self.redis.get(self._key(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        """
        Установить значение по ключу

        Args:
            key: Ключ
            value: JSON-сериализуемое значение
            expire: Время жизни в секундах (опционально)
        """
        if not self.redis:
            await self.connect()
        json_str = json.dumps(value, ensure_ascii=False)
        return bool(await self.redis.set(self._key(key), json_str, ex=expire))

    async def delete(self, key: str) -> bool:
        if not self.redis:
            await self.connect()
        await self.redis.delete(self._key(key))
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        if not self.redis:
            await self.connect()
        found = []
        async for raw_key in self.redis.scan_iter(match=f"{self._key(prefix)}*"):
            found.append(raw_key[len(self.namespace):])
        return found

    async def clear(self) -> bool:
        for key in await self.keys():
            await self.delete(key)
        return True


def create_storage(backend: str | None = None) -> KeyValueStorage:
    """Создаёт хранилище по настройке CACHE_BACKEND (file / redis / memory)."""
    backend = (backend or settings.CACHE_BACKEND or "file").strip().lower()
    if backend == "redis":
        return RedisStorage()
    if backend == "memory":
        return MemoryStorage()
    if backend != "file":
        logger.warning("Неизвестный CACHE_BACKEND=%r, используем file", backend)
    return JsonFileStorage()
