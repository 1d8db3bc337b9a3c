"""
Сервис администрирования: пользователи, настройки системы, журналы,
экспорт, резервные копии, уведомления и модерация статей.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from statportal.core.constants import VALIDATION_MESSAGES, UserRole
from statportal.models.schemas import NewsArticle, Page, User
from statportal.services.base import MINUTE, BaseService
from statportal.utils.validators import (
    NAME_MIN_LENGTH,
    PASSWORD_MIN_LENGTH,
    TITLE_MIN_LENGTH,
    check_email,
    check_min_length,
    raise_if_errors,
)

logger = logging.getLogger(__name__)

USERS_TTL = 2 * MINUTE
STATISTICS_TTL = 5 * MINUTE
SETTINGS_TTL = 10 * MINUTE
ARTICLES_TTL = 2 * MINUTE

MESSAGE_MIN_LENGTH = 10

NAME_MESSAGE = "Name must be at least 2 characters long"
PASSWORD_MESSAGE = "Password must be at least 8 characters long"
MESSAGE_MESSAGE = "Message must be at least 10 characters long"

USERS_CACHE = "admin/users"
SETTINGS_CACHE = "admin/settings"
ARTICLES_CACHE = "admin/articles"

_UNSET: Any = object()


def _check_role(errors: dict[str, list[str]], role: Optional[str]) -> None:
    if role not in UserRole.ALL:
        errors["role"] = [VALIDATION_MESSAGES["role_invalid"]]


class AdminService(BaseService):
    """Запросы /admin/* к API портала (требуют роли admin)."""

    cache_family = USERS_CACHE

    # ------------------------------------------------------------------
    # Пользователи
    # ------------------------------------------------------------------
    async def users(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        search: str = "",
        role: str = "",
        status: str = "",
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page[User]:
        params = {
            "page": page,
            "per_page": self.page_size(per_page),
            "search": search,
            "role": role,
            "status": status,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }
        response = await self.client.get_with_cache("/admin/users", params=params, cache_duration=USERS_TTL)
        return self.parse_page(User, response.data)

    async def get_user(self, user_id: int) -> User:
        response = await self.client.get(f"/admin/users/{user_id}")
        return self.parse_model(User, response.data, key="user")

    async def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: str = UserRole.USER,
        status: str = "active",
    ) -> User:
        errors: dict[str, list[str]] = {}
        check_min_length(errors, "name", name, NAME_MIN_LENGTH, NAME_MESSAGE)
        check_email(errors, email)
        if not password or len(password) < PASSWORD_MIN_LENGTH:
            errors["password"] = [PASSWORD_MESSAGE]
        _check_role(errors, role)
        raise_if_errors(errors)

        response = await self.client.post(
            "/admin/users",
            {
                "name": name.strip(),
                "email": email.strip().lower(),
                "password": password,
                "role": role,
                "status": status,
            },
        )
        await self.invalidate(USERS_CACHE)
        logger.info("User created: %s (%s)", email.strip().lower(), role)
        return self.parse_model(User, response.data, key="user")

    async def update_user(
        self,
        user_id: int,
        *,
        name: Optional[str] = _UNSET,
        email: Optional[str] = _UNSET,
        role: Optional[str] = _UNSET,
        status: Optional[str] = _UNSET,
        password: Optional[str] = _UNSET,
    ) -> User:
        errors: dict[str, list[str]] = {}
        if name is not _UNSET:
            check_min_length(errors, "name", name, NAME_MIN_LENGTH, NAME_MESSAGE)
        if email is not _UNSET:
            check_email(errors, email)
        if role is not _UNSET:
            _check_role(errors, role)
        if password is not _UNSET and password and len(password) < PASSWORD_MIN_LENGTH:
            errors["password"] = [PASSWORD_MESSAGE]
        raise_if_errors(errors)

        payload: dict[str, Any] = {}
        if name is not _UNSET:
            payload["name"] = name.strip()
        if email is not _UNSET:
            payload["email"] = email.strip().lower()
        if role is not _UNSET:
            payload["role"] = role
        if status is not _UNSET:
            payload["status"] = status
        if password is not _UNSET and password:
            payload["password"] = password

        response = await self.client.put(f"/admin/users/{user_id}", payload)
        await self.invalidate(USERS_CACHE)
        return self.parse_model(User, response.data, key="user")

    async def delete_user(self, user_id: int) -> Any:
        response = await self.client.delete(f"/admin/users/{user_id}")
        await self.invalidate(USERS_CACHE)
        logger.info("User deleted: %s", user_id)
        return response.data

    async def update_user_role(self, user_id: int, role: str) -> Any:
        errors: dict[str, list[str]] = {}
        _check_role(errors, role)
        raise_if_errors(errors)

        response = await self.client.patch(f"/admin/users/{user_id}/role", {"role": role})
        await self.invalidate(USERS_CACHE)
        logger.info("User %s role changed to %s", user_id, role)
        return response.data

    async def suspend_user(self, user_id: int, reason: str = "") -> Any:
        response = await self.client.patch(f"/admin/users/{user_id}/suspend", {"reason": reason.strip()})
        await self.invalidate(USERS_CACHE)
        logger.info("User suspended: %s", user_id)
        return response.data

    async def activate_user(self, user_id: int) -> Any:
        response = await self.client.patch(f"/admin/users/{user_id}/activate")
        await self.invalidate(USERS_CACHE)
        logger.info("User activated: %s", user_id)
        return response.data

    async def user_activity(
        self,
        user_id: int,
        page: int = 1,
        per_page: int = 20,
        action: str = "",
        date_from: str = "",
        date_to: str = "",
    ) -> Any:
        response = await self.client.get(
            f"/admin/users/{user_id}/activity",
            params={
                "page": page,
                "per_page": per_page,
                "action": action,
                "date_from": date_from,
                "date_to": date_to,
            },
        )
        return response.data

    # ------------------------------------------------------------------
    # Система
    # ------------------------------------------------------------------
    async def system_statistics(self) -> Any:
        response = await self.client.get_with_cache("/admin/statistics", cache_duration=STATISTICS_TTL)
        return response.data

    async def system_settings(self) -> Any:
        response = await self.client.get_with_cache("/admin/settings", cache_duration=SETTINGS_TTL)
        return response.data

    async def update_system_settings(self, values: Mapping[str, Any]) -> Any:
        response = await self.client.put("/admin/settings", dict(values))
        await self.invalidate(SETTINGS_CACHE)
        logger.info("System settings updated: %s", ", ".join(sorted(values)))
        return response.data

    async def activity_logs(
        self,
        page: int = 1,
        per_page: int = 50,
        action: str = "",
        user_id: Union[int, str] = "",
        date_from: str = "",
        date_to: str = "",
    ) -> Any:
        response = await self.client.get(
            "/admin/activity-logs",
            params={
                "page": page,
                "per_page": per_page,
                "action": action,
                "user_id": user_id,
                "date_from": date_from,
                "date_to": date_to,
            },
        )
        return response.data

    async def export_data(
        self,
        export_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        destination: Union[str, Path] = ".",
    ) -> Path:
        """
        Экспорт данных в CSV. Файл сохраняется как <type>_export_<YYYY-MM-DD>.csv
        в каталоге destination.
        """
        response = await self.client.post(
            f"/admin/export/{export_type}",
            dict(filters or {}),
            headers={"Accept": "text/csv, application/octet-stream, */*"},
        )
        body = response.data
        if isinstance(body, str):
            body = body.encode("utf-8")
        elif not isinstance(body, (bytes, bytearray)):
            body = json.dumps(body, ensure_ascii=False).encode("utf-8")

        directory = Path(destination)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / f"{export_type}_export_{date.today().isoformat()}.csv"
        target.write_bytes(body)
        logger.info("Data exported: %s", target)
        return target

    async def create_backup(self) -> Any:
        response = await self.client.post("/admin/backup")
        logger.info("Backup created")
        return response.data

    async def backups(self) -> Any:
        response = await self.client.get("/admin/backups")
        return response.data

    async def send_notification(
        self,
        title: str,
        message: str,
        type: str = "info",
        recipients: Any = "all",
    ) -> Any:
        errors: dict[str, list[str]] = {}
        check_min_length(errors, "title", title, TITLE_MIN_LENGTH, VALIDATION_MESSAGES["title_min"])
        check_min_length(errors, "message", message, MESSAGE_MIN_LENGTH, MESSAGE_MESSAGE)
        raise_if_errors(errors)

        response = await self.client.post(
            "/admin/notifications",
            {"title": title.strip(), "message": message.strip(), "type": type, "recipients": recipients},
        )
        logger.info("Notification sent: %s", title.strip())
        return response.data

    # ------------------------------------------------------------------
    # Модерация статей
    # ------------------------------------------------------------------
    async def articles(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        search: str = "",
        status: str = "",
        category: str = "",
        author_id: Union[int, str] = "",
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page[NewsArticle]:
        params = {
            "page": page,
            "per_page": self.page_size(per_page),
            "search": search,
            "status": status,
            "category": category,
            "author_id": author_id,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }
        response = await self.client.get_with_cache("/admin/articles", params=params, cache_duration=ARTICLES_TTL)
        return self.parse_page(NewsArticle, response.data)

    async def approve_article(self, article_id: int) -> Any:
        response = await self.client.patch(f"/admin/articles/{article_id}/approve")
        await self.invalidate(ARTICLES_CACHE, "news")
        logger.info("Article approved and published: %s", article_id)
        return response.data

    async def reject_article(self, article_id: int, reason: str = "") -> Any:
        response = await self.client.patch(f"/admin/articles/{article_id}/reject", {"reason": reason.strip()})
        await self.invalidate(ARTICLES_CACHE, "news")
        logger.info("Article rejected: %s", article_id)
        return response.data
