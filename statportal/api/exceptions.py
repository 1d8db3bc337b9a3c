"""
Исключения клиента API портала.

Любая ошибка запроса приводится к ApiError с полями status / message / kind,
чтобы сервисы и состояние запросов обрабатывали их единообразно.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from statportal.core.constants import ERROR_MESSAGES, HTTPStatus


class ApiError(RuntimeError):
    """Ошибка работы с API портала (сеть, авторизация, валидация, сервер)."""

    kind = "api_error"

    def __init__(
        self,
        message: str,
        status: int = 0,
        *,
        errors: Optional[dict[str, list[str]]] = None,
        payload: Any = None,
        kind: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.errors = errors or {}
        self.payload = payload
        if kind:
            self.kind = kind

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "message": self.message, "type": self.kind}
        if self.errors:
            data["errors"] = self.errors
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"


class NetworkError(ApiError):
    """Запрос отправлен, но ответа нет (соединение, DNS, таймаут)."""

    kind = "network_error"

    def __init__(self, message: str = ERROR_MESSAGES["network_error"], *, timeout: bool = False) -> None:
        super().__init__(message, 0)
        self.timeout = timeout


class RequestCancelled(ApiError):
    """Запрос отменён более новым запросом или вручную."""

    kind = "cancelled"

    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message, 0)


class AuthenticationError(ApiError):
    pass


class PermissionDenied(ApiError):
    pass


class NotFound(ApiError):
    pass


class ValidationFailed(ApiError):
    """
    Ошибки валидации (422) - как от сервера, так и клиентские.

    errors: {поле: [сообщения]}
    """

    def __init__(self, errors: dict[str, Any], message: str = ERROR_MESSAGES["validation_error"], **kwargs: Any) -> None:
        normalized = {
            field: list(value) if isinstance(value, (list, tuple)) else [str(value)]
            for field, value in (errors or {}).items()
        }
        super().__init__(message, HTTPStatus.UNPROCESSABLE_ENTITY, errors=normalized, **kwargs)


class ServerError(ApiError):
    pass


_STATUS_CLASSES: dict[int, type[ApiError]] = {
    HTTPStatus.UNAUTHORIZED: AuthenticationError,
    HTTPStatus.FORBIDDEN: PermissionDenied,
    HTTPStatus.NOT_FOUND: NotFound,
}


def _response_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def error_from_response(response: httpx.Response) -> ApiError:
    """
    Создаёт исключение по HTTP-ответу с ошибочным статусом.

    Сообщение берётся из поля `message` тела ответа (формат Laravel),
    иначе используется стандартный текст для категории статуса.
    """
    status = response.status_code
    payload = _response_payload(response)
    server_message = payload.get("message") if isinstance(payload, dict) else None

    if status == HTTPStatus.UNPROCESSABLE_ENTITY:
        errors = payload.get("errors", {}) if isinstance(payload, dict) else {}
        return ValidationFailed(
            errors,
            message=server_message or ERROR_MESSAGES["validation_error"],
            payload=payload,
        )

    if status >= 500:
        return ServerError(server_message or ERROR_MESSAGES["server_error"], status, payload=payload)

    default_messages = {
        HTTPStatus.UNAUTHORIZED: ERROR_MESSAGES["unauthorized"],
        HTTPStatus.FORBIDDEN: ERROR_MESSAGES["forbidden"],
        HTTPStatus.NOT_FOUND: ERROR_MESSAGES["not_found"],
    }
    error_cls = _STATUS_CLASSES.get(status, ApiError)
    message = server_message or default_messages.get(status) or f"Request failed with status code {status}"
    return error_cls(message, status, payload=payload)


def normalize_error(error: BaseException) -> ApiError:
    """
    Приводит произвольное исключение к ApiError.

    - ApiError возвращается как есть
    - httpx.HTTPStatusError -> по статусу ответа
    - httpx.TimeoutException / TransportError -> NetworkError
    - остальное -> ApiError(kind="unknown_error")
    """
    if isinstance(error, ApiError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return error_from_response(error.response)
    if isinstance(error, httpx.TimeoutException):
        return NetworkError(timeout=True)
    if isinstance(error, httpx.TransportError):
        return NetworkError()
    return ApiError(str(error) or ERROR_MESSAGES["unknown_error"], 0, kind="unknown_error")
