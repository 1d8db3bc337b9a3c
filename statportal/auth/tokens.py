"""
Работа с bearer-токеном: срок действия JWT и расчёт момента обновления.

Токен для клиента непрозрачен. Если это JWT с полем exp, обновление
планируется заранее, до истечения срока; иначе - с фиксированным периодом.
"""

from __future__ import annotations

import time
from typing import Optional

from jose import JWTError, jwt

MIN_REFRESH_DELAY = 5.0  # не обновлять чаще, чем раз в 5 секунд


def token_expiry(token: Optional[str]) -> Optional[float]:
    """
    Возвращает unix-время истечения JWT (claim exp) или None.

    Подпись не проверяется: клиенту нужен только срок действия,
    проверку выполняет сервер.
    """
    if not token or token.count(".") != 2:
        return None
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    try:
        return float(exp) if exp is not None else None
    except (TypeError, ValueError):
        return None


def is_token_expired(token: Optional[str], now: Optional[float] = None) -> bool:
    expiry = token_expiry(token)
    if expiry is None:
        return False
    return (now if now is not None else time.time()) >= expiry


def next_refresh_delay(
    token: Optional[str],
    interval: float,
    leeway: float,
    now: Optional[float] = None,
) -> float:
    """
    Через сколько секунд обновить токен.

    Берётся меньшее из периодического интервала и (exp - leeway - now),
    но не меньше MIN_REFRESH_DELAY.
    """
    delay = float(interval)
    expiry = token_expiry(token)
    if expiry is not None:
        current = now if now is not None else time.time()
        delay = min(delay, expiry - leeway - current)
    return max(delay, MIN_REFRESH_DELAY)
