"""
Тесты настройки логирования.
"""

import logging
import os
import time

import pytest

from statportal.core.logging_config import (
    LOG_FILE_NAME,
    MAX_FILE_AGE_DAYS,
    SuppressHttpxNoiseFilter,
    cleanup_logs,
    list_log_files,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    for name in ("httpx", "httpcore"):
        quiet = logging.getLogger(name)
        quiet.handlers = []
        quiet.propagate = True
        quiet.setLevel(logging.NOTSET)


def make_record(message):
    return logging.LogRecord("httpx", logging.INFO, __file__, 1, message, None, None)


def test_filter_drops_httpx_request_lines():
    noise = SuppressHttpxNoiseFilter()
    assert noise.filter(make_record('HTTP Request: GET http://x "HTTP/1.1 200 OK"')) is False
    assert noise.filter(make_record("Retrying GET /news in 1.00s")) is True


def test_setup_logging_writes_to_file(tmp_path, restore_root_logger):
    setup_logging(level="warning", log_dir=tmp_path)

    logging.getLogger("statportal.test").warning("Сообщение в файл")
    for handler in logging.getLogger().handlers:
        handler.flush()

    log_file = tmp_path / LOG_FILE_NAME
    assert "Сообщение в файл" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING
    assert list(list_log_files(tmp_path)) == [log_file]


def test_cleanup_removes_old_logs(tmp_path):
    fresh = tmp_path / LOG_FILE_NAME
    old = tmp_path / f"{LOG_FILE_NAME}.3"
    fresh.write_text("new")
    old.write_text("old")
    stale = time.time() - (MAX_FILE_AGE_DAYS + 1) * 24 * 60 * 60
    os.utime(old, (stale, stale))

    cleanup_logs(tmp_path)

    assert fresh.exists()
    assert not old.exists()


def test_list_log_files_for_missing_directory(tmp_path):
    assert list(list_log_files(tmp_path / "absent")) == []
