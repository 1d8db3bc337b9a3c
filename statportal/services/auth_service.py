"""
Сервис аутентификации: вход, регистрация, профиль, сброс пароля.

Клиентская валидация повторяет правила сервера; при ошибках выбрасывается
ValidationFailed ещё до запроса.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from statportal.api.exceptions import ApiError, AuthenticationError, ValidationFailed
from statportal.core.constants import VALIDATION_MESSAGES
from statportal.models.schemas import AuthPayload, SessionCheck, User
from statportal.services.base import BaseService, unwrap
from statportal.utils.validators import (
    NAME_MIN_LENGTH,
    check_email,
    check_password_confirmation,
    is_valid_password,
    normalize_email,
    raise_if_errors,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password. Please check your credentials and try again."
EMAIL_TAKEN_MESSAGE = (
    "An account with this email already exists. Please use a different email or try logging in."
)
PROFILE_EMAIL_TAKEN_MESSAGE = "This email is already in use by another account"
WRONG_CURRENT_PASSWORD_MESSAGE = "Current password is incorrect"
INVALID_RESET_TOKEN_MESSAGE = "Invalid or expired reset token. Please request a new password reset."


def _email_taken(errors: dict[str, list[str]]) -> bool:
    return any("has already been taken" in message for message in errors.get("email", []))


def _check_name(errors: dict[str, list[str]], name: Optional[str]) -> None:
    if not name:
        errors["name"] = [VALIDATION_MESSAGES["name_required"]]
    elif len(name) < NAME_MIN_LENGTH:
        errors["name"] = [VALIDATION_MESSAGES["name_min"]]


def _check_new_password(errors: dict[str, list[str]], password: Optional[str]) -> None:
    if not password:
        errors["password"] = [VALIDATION_MESSAGES["password_required"]]
    elif not is_valid_password(password):
        errors["password"] = [VALIDATION_MESSAGES["password_min"]]


class AuthService(BaseService):
    """Запросы /auth/* к API портала."""

    async def login(self, email: str, password: str) -> AuthPayload:
        errors: dict[str, list[str]] = {}
        check_email(errors, email)
        if not password:
            errors["password"] = [VALIDATION_MESSAGES["password_required"]]
        raise_if_errors(errors)

        try:
            response = await self.client.post(
                "/auth/login",
                {"email": normalize_email(email), "password": password},
                skip_auth_refresh=True,
            )
        except AuthenticationError as exc:
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, exc.status, payload=exc.payload) from exc

        logger.info("Login successful: %s", normalize_email(email))
        return AuthPayload.model_validate(unwrap(response.data))

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        password_confirmation: str,
    ) -> AuthPayload:
        errors: dict[str, list[str]] = {}
        _check_name(errors, name)
        check_email(errors, email)
        _check_new_password(errors, password)
        check_password_confirmation(errors, password, password_confirmation)
        raise_if_errors(errors)

        try:
            response = await self.client.post(
                "/auth/register",
                {
                    "name": name.strip(),
                    "email": normalize_email(email),
                    "password": password,
                    "password_confirmation": password_confirmation,
                },
                skip_auth_refresh=True,
            )
        except ValidationFailed as exc:
            server_errors = dict(exc.errors)
            if _email_taken(server_errors):
                server_errors["email"] = [EMAIL_TAKEN_MESSAGE]
            raise ValidationFailed(server_errors, message=exc.message, payload=exc.payload) from exc

        logger.info("Registration successful: %s", normalize_email(email))
        return AuthPayload.model_validate(unwrap(response.data))

    async def get_current_user(self) -> User:
        response = await self.client.get("/auth/user")
        return self.parse_model(User, response.data, key="user")

    async def refresh_token(self) -> AuthPayload:
        response = await self.client.post("/auth/refresh", skip_auth_refresh=True)
        return AuthPayload.model_validate(unwrap(response.data))

    async def logout(self) -> str:
        """
        Выход на сервере. Никогда не выбрасывает исключение:
        если сервер недоступен, выход выполняется только локально.
        """
        try:
            await self.client.post("/auth/logout", skip_auth_refresh=True)
        except ApiError as exc:
            logger.warning("Server logout failed, but continuing with local logout: %s", exc.message)
            return "Logged out locally"
        return "Logged out successfully"

    async def update_profile(
        self,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        current_password: Optional[str] = None,
        password: Optional[str] = None,
        password_confirmation: Optional[str] = None,
    ) -> User:
        """
        Частичное обновление профиля. Проверяются только переданные поля;
        для смены пароля нужен текущий пароль и подтверждение.
        """
        errors: dict[str, list[str]] = {}
        if name is not None:
            _check_name(errors, name)
        if email is not None:
            check_email(errors, email)
        if password:
            if not current_password:
                errors["current_password"] = ["Current password is required to change password"]
            if not is_valid_password(password):
                errors["password"] = [VALIDATION_MESSAGES["password_min"]]
            check_password_confirmation(errors, password, password_confirmation)
        raise_if_errors(errors)

        payload: dict[str, Any] = {}
        if name is not None:
            payload["name"] = name.strip()
        if email is not None:
            payload["email"] = normalize_email(email)
        if current_password:
            payload["current_password"] = current_password
        if password:
            payload["password"] = password
        if password_confirmation:
            payload["password_confirmation"] = password_confirmation

        try:
            response = await self.client.put("/auth/profile", payload)
        except ValidationFailed as exc:
            server_errors = dict(exc.errors)
            if "current_password" in server_errors:
                server_errors["current_password"] = [WRONG_CURRENT_PASSWORD_MESSAGE]
            if _email_taken(server_errors):
                server_errors["email"] = [PROFILE_EMAIL_TAKEN_MESSAGE]
            raise ValidationFailed(server_errors, message=exc.message, payload=exc.payload) from exc

        return self.parse_model(User, response.data, key="user")

    async def request_password_reset(self, email: str) -> Any:
        errors: dict[str, list[str]] = {}
        check_email(errors, email)
        raise_if_errors(errors)

        response = await self.client.post(
            "/auth/password/reset", {"email": normalize_email(email)}, skip_auth_refresh=True
        )
        logger.info("Password reset instructions sent to %s", normalize_email(email))
        return response.data

    async def reset_password(
        self,
        token: str,
        email: str,
        password: str,
        password_confirmation: str,
    ) -> Any:
        errors: dict[str, list[str]] = {}
        if not token:
            errors["token"] = ["Reset token is required"]
        check_email(errors, email)
        _check_new_password(errors, password)
        check_password_confirmation(errors, password, password_confirmation)
        raise_if_errors(errors)

        try:
            response = await self.client.post(
                "/auth/password/update",
                {
                    "token": token,
                    "email": normalize_email(email),
                    "password": password,
                    "password_confirmation": password_confirmation,
                },
                skip_auth_refresh=True,
            )
        except ValidationFailed as exc:
            server_errors = dict(exc.errors)
            if "token" in server_errors:
                server_errors["token"] = [INVALID_RESET_TOKEN_MESSAGE]
            raise ValidationFailed(server_errors, message=exc.message, payload=exc.payload) from exc
        return response.data

    async def verify_email(self, token: str) -> Any:
        response = await self.client.post("/auth/email/verify", {"token": token})
        return response.data

    async def resend_email_verification(self) -> Any:
        response = await self.client.post("/auth/email/resend")
        return response.data

    async def is_authenticated(self) -> bool:
        """Локальная проверка: есть ли сохранённый токен."""
        return bool(await self.client.get_auth_token())

    async def validate_session(self) -> SessionCheck:
        try:
            response = await self.client.get("/auth/validate")
        except ApiError as exc:
            return SessionCheck(valid=False, error=exc.message)
        return SessionCheck(valid=True, data=response.data)
