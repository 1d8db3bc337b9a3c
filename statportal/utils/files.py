"""
Файловые утилиты: размер, расширение, MIME-тип.
"""

import mimetypes
from pathlib import Path
from typing import Any

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_file_size(size: int) -> str:
    """
    Человекочитаемый размер: 0 -> "0 Bytes", 1536 -> "1.5 KB".
    """
    if size <= 0:
        return "0 Bytes"
    index = 0
    while size >= 1024 ** (index + 1) and index < len(SIZE_UNITS) - 1:
        index += 1
    value = round(size / (1024 ** index), 2)
    # Убираем хвостовые нули: 10.0 -> 10
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[index]}"


def get_file_extension(filename: str) -> str:
    """Расширение без точки, пустая строка если его нет."""
    suffix = Path(filename).suffix
    return suffix[1:] if suffix else ""


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or "application/octet-stream"


def strip_extension(filename: str) -> str:
    """Имя файла без расширения (используется как заголовок по умолчанию)."""
    name = Path(filename).name
    return name.rsplit(".", 1)[0] if "." in name else name


def describe_file(source: Any) -> tuple[str, int, str]:
    """
    Возвращает (имя, размер, MIME-тип) для пути, bytes или кортежа
    (имя, bytes[, content_type]).
    """
    if isinstance(source, tuple):
        name, payload = source[0], source[1]
        content_type = source[2] if len(source) > 2 and source[2] else guess_content_type(name)
        return name, len(payload), content_type
    if isinstance(source, (str, Path)):
        path = Path(source)
        return path.name, path.stat().st_size, guess_content_type(path.name)
    if isinstance(source, (bytes, bytearray)):
        return "upload", len(source), "application/octet-stream"
    raise TypeError(f"Unsupported file source: {type(source).__name__}")
