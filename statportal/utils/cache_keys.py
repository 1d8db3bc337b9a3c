"""
Утилиты для формирования ключей кэша GET-ответов.
"""

import hashlib
import json
from typing import Any, Mapping, Optional

from statportal.core.constants import CACHE_KEY_PREFIX


def clean_params(params: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Убирает параметры со значением None.

    Пустые строки сохраняются: API портала трактует `search=""` как «без фильтра»,
    и ключ кэша должен совпадать с тем, что реально ушло в запрос.
    """
    if not params:
        return {}
    return {key: value for key, value in params.items() if value is not None}


def build_cache_key(url: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Формирует ключ кэша по URL и параметрам запроса.

    Args:
        url: Путь запроса относительно базового URL (например, "/news")
        params: Query-параметры

    Returns:
        str: Ключ в формате "api_cache_{url}_{json(params)}"
    """
    params_json = json.dumps(clean_params(params), sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)
    return f"{CACHE_KEY_PREFIX}{url}_{params_json}"


def build_state_key(prefix: str, params: Mapping[str, Any]) -> str:
    """
    Ключ кэша состояния пагинации: "{prefix}-{json(params)}".

    Используется PaginatedQuery, чтобы страницы с разными фильтрами
    не перетирали друг друга.
    """
    params_json = json.dumps(dict(params), sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)
    return f"{prefix}-{params_json}"


def short_hash(value: str) -> str:
    """Короткий sha256 для логов (ключи кэша бывают длинными)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]
