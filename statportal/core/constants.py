"""
Константы портала: роли, права, статусы, ограничения загрузки и тексты ошибок.
"""

STORAGE_KEYS = {
    "AUTH_TOKEN": "insbu_auth_token",
    "USER_PREFERENCES": "insbu_user_preferences",
}

CACHE_KEY_PREFIX = "api_cache_"


class UserRole:
    """Роли пользователей портала"""
    ADMIN = "admin"
    EDITOR = "editor"
    USER = "user"

    ALL = (ADMIN, EDITOR, USER)


ROLE_PERMISSIONS = {
    UserRole.ADMIN: [
        "manage_users",
        "manage_roles",
        "create_news",
        "edit_news",
        "delete_news",
        "upload_documents",
        "delete_documents",
        "view_analytics",
        "manage_system",
    ],
    UserRole.EDITOR: [
        "create_news",
        "edit_news",
        "delete_news",
        "upload_documents",
        "delete_documents",
    ],
    UserRole.USER: [
        "view_news",
        "download_documents",
        "view_dashboard",
    ],
}


class NewsStatus:
    """Статусы новостей"""
    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    ARCHIVED = "archived"


NEWS_CATEGORIES = [
    "Economic Reports",
    "Census Data",
    "Agriculture",
    "Healthcare",
    "Education",
    "Infrastructure",
    "Trade",
    "Employment",
    "Social Statistics",
    "Methodology",
]

DOCUMENT_CATEGORIES = NEWS_CATEGORIES + ["Internal"]

FILE_UPLOAD_CONFIG = {
    "max_size": 10 * 1024 * 1024,  # 10 МБ
    "allowed_types": [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/csv",
        "image/jpeg",
        "image/png",
        "image/gif",
    ],
    "allowed_extensions": [".pdf", ".doc", ".docx", ".xls", ".xlsx", ".csv", ".jpg", ".jpeg", ".png", ".gif"],
}


class HTTPStatus:
    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500


ERROR_MESSAGES = {
    "network_error": "Network error. Please check your connection.",
    "unauthorized": "You are not authorized to perform this action.",
    "forbidden": "Access denied. Insufficient permissions.",
    "not_found": "The requested resource was not found.",
    "validation_error": "Please check your input and try again.",
    "server_error": "An internal server error occurred. Please try again later.",
    "unknown_error": "An unexpected error occurred",
}

VALIDATION_MESSAGES = {
    "email_required": "Email is required",
    "email_pattern": "Please enter a valid email address",
    "password_required": "Password is required",
    "password_min": "Password must be at least 8 characters",
    "password_confirmation_required": "Password confirmation is required",
    "password_mismatch": "Passwords do not match",
    "name_required": "Name is required",
    "name_min": "Name must be at least 2 characters",
    "title_min": "Title must be at least 3 characters long",
    "body_min": "Content must be at least 10 characters long",
    "category_required": "Category is required",
    "role_invalid": "Invalid role selected",
}
