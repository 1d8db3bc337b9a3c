"""
Клиентская валидация полей, повторяющая правила сервера.

Сервисы собирают ошибки в словарь {поле: [сообщения]} и, если он не пуст,
выбрасывают ValidationFailed до отправки запроса.
"""

import re
from typing import Any, Optional

from statportal.api.exceptions import ValidationFailed
from statportal.core.constants import FILE_UPLOAD_CONFIG, VALIDATION_MESSAGES
from statportal.utils.files import describe_file, format_file_size

EMAIL_RE = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")

PASSWORD_MIN_LENGTH = 8
NAME_MIN_LENGTH = 2
TITLE_MIN_LENGTH = 3
BODY_MIN_LENGTH = 10


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_RE.match(email) is not None


def is_valid_password(password: Optional[str]) -> bool:
    return bool(password) and len(password) >= PASSWORD_MIN_LENGTH


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return PHONE_RE.match(re.sub(r"\s+", "", phone)) is not None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def raise_if_errors(errors: dict[str, Any]) -> None:
    if errors:
        raise ValidationFailed(errors)


def check_email(errors: dict[str, list[str]], email: Optional[str], field: str = "email") -> None:
    if not email:
        errors[field] = [VALIDATION_MESSAGES["email_required"]]
    elif not is_valid_email(email.strip()):
        errors[field] = [VALIDATION_MESSAGES["email_pattern"]]


def check_password_confirmation(
    errors: dict[str, list[str]],
    password: Optional[str],
    confirmation: Optional[str],
) -> None:
    if not confirmation:
        errors["password_confirmation"] = [VALIDATION_MESSAGES["password_confirmation_required"]]
    elif password != confirmation:
        errors["password_confirmation"] = [VALIDATION_MESSAGES["password_mismatch"]]


def check_min_length(
    errors: dict[str, list[str]],
    field: str,
    value: Optional[str],
    min_length: int,
    message: str,
) -> None:
    if not value or len(value.strip()) < min_length:
        errors[field] = [message]


def validate_file(source: Any) -> tuple[bool, list[str]]:
    """
    Проверяет файл перед загрузкой: размер, MIME-тип, расширение.

    Args:
        source: путь к файлу, bytes или кортеж (имя, bytes, content_type)

    Returns:
        (valid, errors)
    """
    if source is None:
        return False, ["No file selected"]

    try:
        name, size, content_type = describe_file(source)
    except OSError as exc:
        return False, [f"File is not readable: {exc}"]

    errors: list[str] = []
    if size > FILE_UPLOAD_CONFIG["max_size"]:
        errors.append(f"File size must be less than {format_file_size(FILE_UPLOAD_CONFIG['max_size'])}")

    if content_type not in FILE_UPLOAD_CONFIG["allowed_types"]:
        errors.append("File type not allowed")

    extension = "." + name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if extension not in FILE_UPLOAD_CONFIG["allowed_extensions"]:
        errors.append("File extension not allowed")

    return not errors, errors
