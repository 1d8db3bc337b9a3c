"""
Services Package
================
Сервисы предметной области поверх ApiClient.
"""

from dataclasses import dataclass

from statportal.api.client import ApiClient

from .admin_service import AdminService
from .auth_service import AuthService
from .document_service import DocumentService
from .news_service import NewsService
from .stats_service import StatsService


@dataclass
class PortalServices:
    """Набор сервисов, разделяющих один клиент."""
    auth: AuthService
    news: NewsService
    documents: DocumentService
    admin: AdminService
    stats: StatsService

    @classmethod
    def create(cls, client: ApiClient) -> "PortalServices":
        return cls(
            auth=AuthService(client),
            news=NewsService(client),
            documents=DocumentService(client),
            admin=AdminService(client),
            stats=StatsService(client),
        )


__all__ = [
    'AdminService',
    'AuthService',
    'DocumentService',
    'NewsService',
    'PortalServices',
    'StatsService',
]
