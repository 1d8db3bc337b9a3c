"""
Утилита для отслеживания статистики запросов к API (время ответа, успехи, ошибки).
"""

from dataclasses import dataclass, field


@dataclass
class RequestTiming:
    """Агрегированная статистика по одному типу запроса."""
    count: int = 0
    failures: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def average_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


@dataclass
class RequestStats:
    """
    Статистика запросов клиента.

    Attributes:
        requests: Статистика по имени запроса (например, "GET /news")
        cache_hits: Количество ответов, отданных из кэша
        cache_misses: Количество промахов кэша
    """
    requests: dict[str, RequestTiming] = field(default_factory=dict)
    cache_hits: int = 0
    cache_misses: int = 0

    def track(self, name: str, duration_ms: float, success: bool = True) -> None:
        """
        Учитывает выполненный запрос.

        Args:
            name: Имя запроса
            duration_ms: Длительность в миллисекундах
            success: Успешен ли запрос
        """
        timing = self.requests.setdefault(name, RequestTiming())
        timing.count += 1
        timing.total_ms += duration_ms
        timing.max_ms = max(timing.max_ms, duration_ms)
        if not success:
            timing.failures += 1

    def add_hit(self) -> None:
        self.cache_hits += 1

    def add_miss(self) -> None:
        self.cache_misses += 1

    def total_requests(self) -> int:
        return sum(timing.count for timing in self.requests.values())

    def total_failures(self) -> int:
        return sum(timing.failures for timing in self.requests.values())

    def hit_rate(self) -> float:
        """
        Процент попаданий в кэш (0.0 - 1.0).
        """
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return self.cache_hits / total

    def slowest(self, limit: int = 5) -> list[tuple[str, float]]:
        """Самые медленные запросы по среднему времени."""
        ranked = sorted(self.requests.items(), key=lambda item: item[1].average_ms, reverse=True)
        return [(name, timing.average_ms) for name, timing in ranked[:limit]]

    def reset(self) -> None:
        self.requests.clear()
        self.cache_hits = 0
        self.cache_misses = 0
