"""
==============================================================================
AUTH SESSION
==============================================================================
Состояние авторизации клиента портала.

- Текущий пользователь и bearer-токен (через хранилище ApiClient)
- Восстановление сессии по сохранённому токену (initialize)
- Периодическое обновление токена, пока пользователь авторизован
- Перехват 401: одно тихое обновление токена и повтор исходного запроса
- Обновление токена выполняется одним запросом для всех ожидающих
- Проверки ролей и прав
==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from statportal.api.client import ApiClient, ApiResponse, RequestSpec
from statportal.api.exceptions import ApiError, AuthenticationError
from statportal.auth.tokens import next_refresh_delay
from statportal.core.config import settings
from statportal.core.constants import ROLE_PERMISSIONS, HTTPStatus, UserRole
from statportal.models.schemas import AuthResult, User
from statportal.services.auth_service import AuthService

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."


class AuthSession:
    """
    Сессия пользователя поверх ApiClient.

    Пример:
        async with ApiClient() as client:
            session = AuthSession(client)
            await session.initialize()
            result = await session.login("user@example.com", "secret123")
    """

    def __init__(
        self,
        client: ApiClient,
        auth_service: Optional[AuthService] = None,
        *,
        refresh_interval: Optional[float] = None,
        refresh_leeway: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.auth_service = auth_service or AuthService(client)
        self.refresh_interval = float(
            refresh_interval if refresh_interval is not None else settings.TOKEN_REFRESH_INTERVAL
        )
        self.refresh_leeway = float(refresh_leeway if refresh_leeway is not None else settings.TOKEN_REFRESH_LEEWAY)
        self._sleep = sleep
        self._clock = clock

        self.user: Optional[User] = None
        self.loading = True
        self.refreshing = False

        self._refresh_future: Optional[asyncio.Future] = None
        self._refresh_task: Optional[asyncio.Task] = None

        client.add_response_hook(self._retry_after_refresh)
        client.on_unauthorized(self._on_token_rejected)

    # ------------------------------------------------------------------
    # Состояние
    # ------------------------------------------------------------------
    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_name(self) -> str:
        return self.user.name if self.user else ""

    @property
    def user_email(self) -> str:
        return self.user.email if self.user else ""

    @property
    def user_role(self) -> Optional[str]:
        return self.user.role if self.user else None

    @property
    def user_avatar(self) -> Optional[str]:
        return self.user.avatar if self.user else None

    def has_role(self, role: Union[str, Iterable[str]]) -> bool:
        if not self.user:
            return False
        if isinstance(role, str):
            return self.user.role == role
        return self.user.role in set(role)

    def has_permission(self, permission: Union[str, Iterable[str]]) -> bool:
        """Администратор имеет все права; остальные - по таблице ROLE_PERMISSIONS."""
        if not self.user:
            return False
        if self.user.role == UserRole.ADMIN:
            return True
        granted = ROLE_PERMISSIONS.get(self.user.role, [])
        if isinstance(permission, str):
            return permission in granted
        return any(item in granted for item in permission)

    @property
    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN)

    @property
    def can_edit(self) -> bool:
        return self.has_role([UserRole.ADMIN, UserRole.EDITOR])

    def update_user(self, **fields: Any) -> Optional[User]:
        """Обновляет локальные данные пользователя (после сохранения профиля)."""
        if self.user is None:
            return None
        self.user = self.user.model_copy(update=fields)
        return self.user

    # ------------------------------------------------------------------
    # Вход / выход
    # ------------------------------------------------------------------
    async def initialize(self) -> bool:
        """
        Восстанавливает сессию по сохранённому токену.

        Returns:
            True, если пользователь авторизован
        """
        try:
            token = await self.client.get_auth_token()
            if not token:
                return False
            try:
                await self.fetch_current_user()
            except ApiError as exc:
                logger.warning("Auth initialization failed: %s", exc.message)
                await self.logout()
                return False
            self._start_refresh_loop()
            logger.info("Session restored for %s", self.user_email)
            return True
        finally:
            self.loading = False

    async def fetch_current_user(self) -> User:
        try:
            user = await self.auth_service.get_current_user()
        except AuthenticationError as exc:
            await self.logout()
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE, exc.status, payload=exc.payload) from exc
        self.user = user
        return user

    async def login(self, email: str, password: str) -> AuthResult:
        """Вход. Ошибки не выбрасываются, а возвращаются в AuthResult."""
        self.loading = True
        try:
            payload = await self.auth_service.login(email, password)
            return await self._apply_auth_payload(payload, "Login successful")
        except ApiError as exc:
            logger.warning("Login failed: %s", exc.message)
            await self.logout()
            return AuthResult(success=False, error=exc.message, status=exc.status or None)
        finally:
            self.loading = False

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        password_confirmation: str,
    ) -> AuthResult:
        """Регистрация с автоматическим входом."""
        self.loading = True
        try:
            payload = await self.auth_service.register(name, email, password, password_confirmation)
            return await self._apply_auth_payload(payload, "Registration successful")
        except ApiError as exc:
            logger.warning("Registration failed: %s", exc.message)
            await self.logout()
            return AuthResult(success=False, error=exc.message, status=exc.status or None)
        finally:
            self.loading = False

    async def _apply_auth_payload(self, payload: Any, message: str) -> AuthResult:
        await self.client.set_auth_token(payload.token)
        if payload.user is not None:
            self.user = payload.user
        else:
            await self.fetch_current_user()
        self._start_refresh_loop()
        logger.info("%s: %s", message, self.user_email)
        return AuthResult(success=True, user=self.user, message=message)

    async def logout(self) -> None:
        """Выход. Локальное состояние очищается всегда."""
        try:
            if await self.client.get_auth_token():
                await self.auth_service.logout()
        finally:
            await self.client.set_auth_token(None)
            if self.user is not None:
                logger.info("Logged out: %s", self.user_email)
            self._reset_local_state()

    def _reset_local_state(self) -> None:
        self.user = None
        self.loading = False
        self._stop_refresh_loop()

    def _on_token_rejected(self) -> None:
        # Клиент уже удалил токен после необработанного 401
        if self.user is not None:
            logger.warning("Token rejected by server, session cleared")
        self._reset_local_state()

    # ------------------------------------------------------------------
    # Обновление токена
    # ------------------------------------------------------------------
    async def refresh_token(self) -> bool:
        """
        Обновляет токен. Параллельные вызовы ждут один общий запрос.
        При неудаче выполняется выход.
        """
        if self._refresh_future is not None:
            return await asyncio.shield(self._refresh_future)

        future = asyncio.get_running_loop().create_future()
        self._refresh_future = future
        self.refreshing = True
        try:
            result = await self._do_refresh()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Исключение уже пробрасывается вызывающему, ожидающих может не быть
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self.refreshing = False
            self._refresh_future = None

    async def _do_refresh(self) -> bool:
        try:
            payload = await self.auth_service.refresh_token()
        except ApiError as exc:
            logger.warning("Token refresh failed: %s", exc.message)
            await self.logout()
            return False
        except ValidationError as exc:
            logger.warning("Token refresh returned an invalid payload: %s", exc)
            await self.logout()
            return False

        await self.client.set_auth_token(payload.token)
        if payload.user is not None:
            self.user = payload.user
        logger.debug("Token refreshed")
        return True

    async def _retry_after_refresh(
        self,
        client: ApiClient,
        spec: RequestSpec,
        error: ApiError,
    ) -> Optional[ApiResponse]:
        """Хук ответа: на 401 обновляет токен один раз и повторяет запрос."""
        if error.status != HTTPStatus.UNAUTHORIZED:
            return None
        if spec.auth_retried or spec.skip_auth_refresh or not self.is_authenticated:
            return None

        spec.auth_retried = True
        if not await self.refresh_token():
            return None
        logger.debug("Retrying %s %s with refreshed token", spec.method, spec.url)
        return await client.send(spec)

    def _start_refresh_loop(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop())

    def _stop_refresh_loop(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        # Выход может быть вызван из самого цикла обновления
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _refresh_loop(self) -> None:
        while self.is_authenticated:
            token = await self.client.get_auth_token()
            if not token:
                break
            delay = next_refresh_delay(token, self.refresh_interval, self.refresh_leeway, now=self._clock())
            logger.debug("Next token refresh in %.0fs", delay)
            await self._sleep(delay)
            if not self.is_authenticated:
                break
            try:
                await self.refresh_token()
            except Exception:
                # Цикл продолжает работу, следующая попытка по расписанию
                logger.exception("Unexpected error during scheduled token refresh")

    async def close(self) -> None:
        """Останавливает обновление токена и отключает перехват 401."""
        self._stop_refresh_loop()
        self.client.remove_response_hook(self._retry_after_refresh)
