"""
Сервис документов: список, загрузка с прогрессом, скачивание, пакетная загрузка.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from statportal.api.client import FileSource
from statportal.api.exceptions import ApiError, ValidationFailed
from statportal.core.constants import FILE_UPLOAD_CONFIG, VALIDATION_MESSAGES
from statportal.models.schemas import (
    BulkUploadItem,
    BulkUploadReport,
    BulkUploadSummary,
    Document,
    FileValidation,
    Page,
    UploadConfig,
)
from statportal.services.base import MINUTE, BaseService, unwrap
from statportal.utils.files import describe_file, format_file_size, strip_extension
from statportal.utils.validators import TITLE_MIN_LENGTH, check_min_length, raise_if_errors
from statportal.utils.validators import validate_file as check_file

logger = logging.getLogger(__name__)

LIST_TTL = 3 * MINUTE
DOCUMENT_TTL = 5 * MINUTE
CATEGORIES_TTL = 30 * MINUTE
RECENT_TTL = 5 * MINUTE
POPULAR_TTL = 10 * MINUTE
STATS_TTL = 10 * MINUTE

DEFAULT_BULK_CATEGORY = "General"
BULK_METADATA_FIELDS = ("title", "category", "description", "is_public", "tags")

_UNSET: Any = object()

ProgressCallback = Callable[[int, int, int], Any]
BulkProgressCallback = Callable[[int, str], Any]


def _source_name(file: FileSource) -> str:
    if isinstance(file, tuple):
        return file[0]
    if isinstance(file, (str, Path)):
        return Path(file).name
    return "upload"


class DocumentService(BaseService):
    """Запросы /documents к API портала."""

    cache_family = "documents"

    async def list(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        search: str = "",
        category: str = "",
        type: str = "",
        sort_by: str = "created_at",
        sort_order: str = "desc",
        *,
        use_cache: bool = True,
    ) -> Page[Document]:
        params = {
            "page": page,
            "per_page": self.page_size(per_page),
            "search": search,
            "category": category,
            "type": type,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }
        response = await self.client.get_with_cache(
            "/documents", params=params, cache_duration=LIST_TTL, use_cache=use_cache
        )
        return self.parse_page(Document, response.data)

    async def get(self, document_id: int) -> Document:
        response = await self.client.get_with_cache(f"/documents/{document_id}", cache_duration=DOCUMENT_TTL)
        return self.parse_model(Document, response.data)

    async def upload(
        self,
        file: FileSource,
        title: str,
        category: str,
        *,
        description: str = "",
        is_public: bool = True,
        tags: Union[str, Iterable[str]] = (),
        on_progress: Optional[ProgressCallback] = None,
    ) -> Document:
        """
        Загружает документ (multipart, поле "file").

        Сначала проверяется файл (размер, тип, расширение), затем метаданные.
        is_public уходит как '1'/'0', теги - строкой через запятую.
        """
        valid, file_errors = check_file(file)
        if not valid:
            raise ValidationFailed({"file": file_errors})

        errors: dict[str, list[str]] = {}
        check_min_length(errors, "title", title, TITLE_MIN_LENGTH, VALIDATION_MESSAGES["title_min"])
        if not category:
            errors["category"] = [VALIDATION_MESSAGES["category_required"]]
        raise_if_errors(errors)

        additional_data = {
            "title": title.strip(),
            "description": (description or "").strip(),
            "category": category,
            "is_public": "1" if is_public else "0",
            "tags": tags if isinstance(tags, str) else ",".join(tags),
        }
        response = await self.client.upload_file(
            "/documents", file, field="file", additional_data=additional_data, on_progress=on_progress
        )
        await self.invalidate()
        logger.info("Document uploaded: %s", title.strip())
        return self.parse_model(Document, response.data)

    async def update(
        self,
        document_id: int,
        *,
        title: Optional[str] = _UNSET,
        description: Optional[str] = _UNSET,
        category: Optional[str] = _UNSET,
        is_public: Optional[bool] = _UNSET,
        tags: Union[str, Iterable[str], None] = _UNSET,
    ) -> Document:
        errors: dict[str, list[str]] = {}
        if title is not _UNSET:
            check_min_length(errors, "title", title, TITLE_MIN_LENGTH, VALIDATION_MESSAGES["title_min"])
        if category is not _UNSET and not category:
            errors["category"] = [VALIDATION_MESSAGES["category_required"]]
        raise_if_errors(errors)

        payload: dict[str, Any] = {}
        if title is not _UNSET:
            payload["title"] = title.strip()
        if description is not _UNSET:
            payload["description"] = (description or "").strip()
        if category is not _UNSET:
            payload["category"] = category
        if is_public is not _UNSET:
            payload["is_public"] = is_public
        if tags is not _UNSET:
            payload["tags"] = [tags] if isinstance(tags, str) else list(tags or [])

        response = await self.client.put(f"/documents/{document_id}", payload)
        await self.invalidate()
        return self.parse_model(Document, response.data)

    async def delete(self, document_id: int) -> Any:
        response = await self.client.delete(f"/documents/{document_id}")
        await self.invalidate()
        logger.info("Document deleted: %s", document_id)
        return response.data

    async def download(
        self,
        document_id: int,
        destination: Union[str, Path] = ".",
        filename: Optional[str] = None,
    ) -> Path:
        """
        Скачивает документ. Без filename имя берётся из original_name документа.
        """
        if not filename:
            response = await self.client.get(f"/documents/{document_id}")
            info = unwrap(response.data)
            original = info.get("original_name") if isinstance(info, dict) else None
            filename = original or f"document-{document_id}"

        destination = Path(destination)
        if destination.is_dir():
            target = destination / filename
        else:
            target = destination
        return await self.client.download_file(f"/documents/{document_id}/download", target)

    async def categories(self) -> list[Any]:
        response = await self.client.get_with_cache("/documents/categories", cache_duration=CATEGORIES_TTL)
        data = response.data
        if isinstance(data, dict):
            data = data.get("data") or data.get("categories") or []
        return list(data or [])

    async def search(
        self,
        query: str,
        *,
        limit: int = 20,
        category: str = "",
        type: str = "",
        date_from: str = "",
        date_to: str = "",
    ) -> list[Document]:
        response = await self.client.get(
            "/documents/search",
            params={
                "q": query,
                "limit": limit,
                "category": category,
                "type": type,
                "date_from": date_from,
                "date_to": date_to,
            },
        )
        return self.parse_list(Document, response.data)

    async def recent(self, limit: int = 10) -> list[Document]:
        response = await self.client.get_with_cache(
            "/documents/recent", params={"limit": limit}, cache_duration=RECENT_TTL
        )
        return self.parse_list(Document, response.data)

    async def popular(self, limit: int = 10) -> list[Document]:
        response = await self.client.get_with_cache(
            "/documents/popular", params={"limit": limit}, cache_duration=POPULAR_TTL
        )
        return self.parse_list(Document, response.data)

    async def bulk_upload(
        self,
        files: list[FileSource],
        default_metadata: Optional[Mapping[str, Any]] = None,
        on_progress: Optional[BulkProgressCallback] = None,
    ) -> BulkUploadReport:
        """
        Загружает файлы по очереди. Ошибка одного файла не прерывает остальные.

        on_progress(percent, label) получает общий прогресс по всем файлам.
        """
        defaults = dict(default_metadata or {})
        total = len(files)
        results: list[BulkUploadItem] = []

        for completed, file in enumerate(files):
            name = _source_name(file)
            metadata: dict[str, Any] = {
                "title": strip_extension(name),
                "category": defaults.get("category") or DEFAULT_BULK_CATEGORY,
                "description": defaults.get("description") or "",
                "is_public": defaults.get("is_public", True),
            }
            metadata.update({key: value for key, value in defaults.items() if key in BULK_METADATA_FIELDS})

            def file_progress(percent: int, _loaded: int, _total: int, done: int = completed, label: str = name) -> None:
                if on_progress:
                    overall = (done / total + percent / 100 / total) * 100
                    on_progress(round(overall), label)

            try:
                document = await self.upload(file, on_progress=file_progress, **metadata)
                results.append(BulkUploadItem(file=name, success=True, data=document.model_dump(mode="json")))
            except ApiError as exc:
                logger.warning("Bulk upload failed for %s: %s", name, exc.message)
                results.append(BulkUploadItem(file=name, success=False, error=exc.message or "Upload failed"))

            if on_progress:
                on_progress(round((completed + 1) / total * 100), f"Completed {completed + 1}/{total}")

        successful = sum(1 for item in results if item.success)
        failed = len(results) - successful
        return BulkUploadReport(
            success=failed == 0,
            results=results,
            summary=BulkUploadSummary(total=total, successful=successful, failed=failed),
            message=f"Upload completed: {successful} successful, {failed} failed",
        )

    async def stats(self) -> Any:
        response = await self.client.get_with_cache("/documents/stats", cache_duration=STATS_TTL)
        return response.data

    async def can_access(self, document_id: int) -> bool:
        try:
            response = await self.client.get(f"/documents/{document_id}/access")
        except ApiError as exc:
            logger.debug("Document %s access check failed: %s", document_id, exc.message)
            return False
        data = unwrap(response.data)
        return bool(data.get("can_access")) if isinstance(data, dict) else False

    @staticmethod
    def upload_config() -> UploadConfig:
        return UploadConfig(
            max_size=FILE_UPLOAD_CONFIG["max_size"],
            max_size_formatted=format_file_size(FILE_UPLOAD_CONFIG["max_size"]),
            allowed_types=list(FILE_UPLOAD_CONFIG["allowed_types"]),
            allowed_extensions=list(FILE_UPLOAD_CONFIG["allowed_extensions"]),
        )

    @staticmethod
    def validate_file(file: FileSource) -> FileValidation:
        valid, errors = check_file(file)
        return FileValidation(valid=valid, errors=errors)

    @staticmethod
    def describe(file: FileSource) -> dict[str, Any]:
        """Имя, размер и MIME-тип файла для вывода пользователю."""
        name, size, content_type = describe_file(file)
        return {"name": name, "size": size, "size_formatted": format_file_size(size), "content_type": content_type}
