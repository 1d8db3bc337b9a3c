"""
==============================================================================
STATISTICS PORTAL CLIENT - CONFIGURATION
==============================================================================
Управление конфигурацией через переменные окружения.
Использует Pydantic Settings для валидации и загрузки из .env файла.
==============================================================================
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Класс для управления настройками клиента.

    Автоматически загружает переменные окружения из файла .env
    с валидацией типов и значений по умолчанию.

    Attributes:
        API_BASE_URL (str): Базовый URL REST API портала
        API_TIMEOUT (float): Таймаут HTTP-запросов в секундах
        API_RETRY_ATTEMPTS (int): Количество повторов при ошибках сети/5xx
        API_RETRY_DELAY (float): Базовая задержка перед повтором (сек), экспоненциальный рост
        CACHE_BACKEND (str): Хранилище кэша и токена: file или redis
        STORAGE_FILE (str): Путь к JSON-файлу хранилища (для CACHE_BACKEND=file)
        REDIS_URL (str): URL Redis (для CACHE_BACKEND=redis)
        DEFAULT_CACHE_TTL (float): Время жизни кэша GET-ответов по умолчанию (сек)
        TOKEN_REFRESH_INTERVAL (float): Период автообновления токена (сек)
        TOKEN_REFRESH_LEEWAY (float): За сколько секунд до истечения JWT обновлять токен
        DEFAULT_PAGE_SIZE (int): Размер страницы по умолчанию
        MAX_PAGE_SIZE (int): Максимальный размер страницы
        SEARCH_DEBOUNCE_MS (int): Задержка дебаунса поиска (мс)
        DEBUG_MODE (bool): Режим отладки с подробными логами
        DISABLE_SSL_VERIFY (bool): Отключить проверку SSL (не рекомендуется)
        LOG_LEVEL (str): Уровень логирования консоли
        LOG_DIR (str): Каталог файлов логов
    """
    API_BASE_URL: str = "http://localhost:8000/api"  # Базовый URL API (Laravel)
    API_TIMEOUT: float = 30.0  # Таймаут запросов (секунды)
    API_RETRY_ATTEMPTS: int = 3  # Количество повторов при ошибках сети/5xx
    API_RETRY_DELAY: float = 1.0  # Базовая задержка перед повтором (сек)

    CACHE_BACKEND: str = "file"  # file или redis
    STORAGE_FILE: str = "data/storage.json"  # Аналог localStorage браузера
    REDIS_URL: str = "redis://localhost:6379/0"
    DEFAULT_CACHE_TTL: float = 300.0  # 5 минут

    TOKEN_REFRESH_INTERVAL: float = 15 * 60.0  # Обновление токена каждые 15 минут
    TOKEN_REFRESH_LEEWAY: float = 60.0  # Запас до истечения JWT

    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100
    SEARCH_DEBOUNCE_MS: int = 300

    DEBUG_MODE: bool = False  # Режим отладки - подробные логи запросов
    DISABLE_SSL_VERIFY: bool = False  # Отключить проверку SSL (только если есть проблемы с сертификатами)
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra='ignore'  # Игнорировать лишние переменные в .env
    )


settings = Settings()
