"""
Сервис статистики для дашборда и аналитики.
"""

from __future__ import annotations

from typing import Any, Optional

from statportal.services.base import MINUTE, BaseService

DASHBOARD_TTL = 5 * MINUTE
USERS_TTL = 10 * MINUTE
CONTENT_TTL = 10 * MINUTE
ACTIVITY_TTL = 5 * MINUTE
CHART_TTL = 15 * MINUTE
ANALYTICS_TTL = 30 * MINUTE


class StatsService(BaseService):
    """Запросы /stats/*. Системные и realtime-данные не кэшируются."""

    cache_family = "stats"

    async def dashboard(self) -> Any:
        response = await self.client.get_with_cache("/stats/dashboard", cache_duration=DASHBOARD_TTL)
        return response.data

    async def users(self, timeframe: str = "30d") -> Any:
        response = await self.client.get_with_cache(
            "/stats/users", params={"timeframe": timeframe}, cache_duration=USERS_TTL
        )
        return response.data

    async def content(self, timeframe: str = "30d") -> Any:
        response = await self.client.get_with_cache(
            "/stats/content", params={"timeframe": timeframe}, cache_duration=CONTENT_TTL
        )
        return response.data

    async def activity(self, timeframe: str = "7d") -> Any:
        response = await self.client.get_with_cache(
            "/stats/activity", params={"timeframe": timeframe}, cache_duration=ACTIVITY_TTL
        )
        return response.data

    async def system(self) -> Any:
        response = await self.client.get("/stats/system")
        return response.data

    async def realtime(self) -> Any:
        response = await self.client.get("/stats/realtime")
        return response.data

    async def chart_data(
        self,
        metric: str,
        timeframe: str = "30d",
        granularity: str = "day",
        category: Optional[str] = None,
    ) -> Any:
        response = await self.client.get_with_cache(
            f"/stats/charts/{metric}",
            params={"timeframe": timeframe, "granularity": granularity, "category": category},
            cache_duration=CHART_TTL,
        )
        return response.data

    async def analytics(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Any:
        response = await self.client.get_with_cache(
            "/stats/analytics",
            params={"start_date": start_date, "end_date": end_date},
            cache_duration=ANALYTICS_TTL,
        )
        return response.data
