"""
Единая настройка логирования для клиента и CLI.
"""

from __future__ import annotations

import logging
import logging.config
import time
from pathlib import Path
from typing import Iterable

from statportal.core.config import settings

LOG_FILE_NAME = "statportal.log"
MAX_TOTAL_SIZE = 50 * 1024 * 1024  # 50 МБ
MAX_FILE_AGE_DAYS = 30


class SuppressHttpxNoiseFilter(logging.Filter):
    """
    Фильтр убирает построчные сообщения httpx вида «HTTP Request: GET ...»,
    клиент пишет собственную строку с временем ответа.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        return not record.getMessage().startswith("HTTP Request:")


def setup_logging(level: str | None = None, log_dir: str | Path | None = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()
    directory = Path(log_dir or settings.LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "suppress_httpx": {
                "()": "statportal.core.logging_config.SuppressHttpxNoiseFilter",
            },
        },
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
            "short": {
                "format": "%(levelname)s: %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "short",
                "filters": ["suppress_httpx"],
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "DEBUG",
                "formatter": "standard",
                "filename": str(directory / LOG_FILE_NAME),
                "maxBytes": 5 * 1024 * 1024,  # 5 МБ на файл
                "backupCount": 10,
                "encoding": "utf-8",
                "delay": True,
                "filters": ["suppress_httpx"],
            },
        },
        "root": {
            "handlers": ["console", "file"],
            "level": "DEBUG" if settings.DEBUG_MODE else level,
        },
        "loggers": {
            "httpx": {
                "handlers": ["file"],
                "level": "WARNING",
                "propagate": False,
            },
            "httpcore": {
                "handlers": ["file"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(config)
    cleanup_logs(directory)


def cleanup_logs(directory: Path) -> None:
    """Удаляет старые логи и ограничивает общий объём."""
    now = time.time()
    max_age_seconds = MAX_FILE_AGE_DAYS * 24 * 60 * 60

    files = sorted(
        directory.glob(f"{LOG_FILE_NAME}*"),
        key=lambda f: f.stat().st_mtime if f.exists() else 0,
        reverse=True,
    )

    total_size = 0
    for file in files:
        try:
            stat = file.stat()
        except FileNotFoundError:
            continue

        if now - stat.st_mtime > max_age_seconds:
            file.unlink(missing_ok=True)
            continue

        total_size += stat.st_size
        if total_size > MAX_TOTAL_SIZE:
            file.unlink(missing_ok=True)


def list_log_files(directory: str | Path | None = None) -> Iterable[Path]:
    """Возвращает список файлов логов."""
    directory = Path(directory or settings.LOG_DIR)
    if not directory.exists():
        return []
    return directory.glob(f"{LOG_FILE_NAME}*")
