"""
TTL-кэш GET-ответов поверх постоянного хранилища.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Mapping, Optional

from statportal.api.storage import KeyValueStorage
from statportal.core.config import settings
from statportal.core.constants import CACHE_KEY_PREFIX
from statportal.utils.cache_keys import build_cache_key, short_hash

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    Кэш ответов API.

    Запись хранится как {"data": ..., "timestamp": unix_time}. Запись старше
    TTL считается промахом (удаляется лениво при следующей записи/очистке).
    """

    def __init__(self, storage: KeyValueStorage, default_ttl: float | None = None) -> None:
        self.storage = storage
        self.default_ttl = float(default_ttl if default_ttl is not None else settings.DEFAULT_CACHE_TTL)

    async def get(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        ttl: float | None = None,
    ) -> Optional[Any]:
        key = build_cache_key(url, params)
        entry = await self.storage.get(key)
        if not isinstance(entry, dict) or "timestamp" not in entry:
            return None

        ttl = self.default_ttl if ttl is None else ttl
        age = time.time() - float(entry["timestamp"])
        if age >= ttl:
            logger.debug("Кэш устарел (%.1f c) для %s", age, url)
            return None

        logger.debug("Используем кэш для %s [%s]", url, short_hash(key))
        return entry.get("data")

    async def set(
        self,
        url: str,
        data: Any,
        params: Optional[Mapping[str, Any]] = None,
        ttl: float | None = None,
    ) -> bool:
        try:
            json.dumps(data)
        except (TypeError, ValueError):
            # Бинарные ответы (bytes) в кэш не попадают
            logger.debug("Ответ %s не сериализуется в JSON, не кэшируем", url)
            return False

        key = build_cache_key(url, params)
        expire = int(ttl if ttl is not None else self.default_ttl) or None
        return await self.storage.set(key, {"data": data, "timestamp": time.time()}, expire=expire)

    async def clear(self, pattern: str | None = None) -> int:
        """
        Удаляет записи кэша.

        Args:
            pattern: Если задан - удаляются только ключи, содержащие эту подстроку
                     (например, "news" или "admin/users")

        Returns:
            int: Количество удалённых записей
        """
        removed = 0
        for key in await self.storage.keys(CACHE_KEY_PREFIX):
            if pattern and pattern not in key:
                continue
            await self.storage.delete(key)
            removed += 1
        if removed:
            logger.debug("Очищено записей кэша: %s (pattern=%r)", removed, pattern)
        return removed
