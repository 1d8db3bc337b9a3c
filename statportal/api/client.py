"""
==============================================================================
STATISTICS PORTAL API CLIENT
==============================================================================
HTTP клиент REST API портала поверх httpx.AsyncClient.

Возможности:
- Bearer-токен в заголовке Authorization (токен хранится в постоянном хранилище)
- Повторы при ошибках сети и 5xx с экспоненциальной задержкой
- TTL-кэш GET-ответов (get_with_cache), очистка по подстроке ключа
- Хуки ответа: сессия авторизации перехватывает 401 и обновляет токен
- Загрузка файлов с прогрессом, скачивание в файл, пакетные запросы
- Отмена устаревших запросов по ключу
==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import re
import ssl
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional, Union

import certifi
import httpx

from statportal.api.cache import ResponseCache
from statportal.api.exceptions import (
    ApiError,
    NetworkError,
    RequestCancelled,
    ServerError,
    error_from_response,
    normalize_error,
)
from statportal.api.storage import KeyValueStorage, RedisStorage, create_storage
from statportal.core.config import settings
from statportal.core.constants import STORAGE_KEYS, HTTPStatus
from statportal.utils.cache_keys import clean_params
from statportal.utils.files import guess_content_type
from statportal.utils.request_stats import RequestStats

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})
UPLOAD_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, int, int], Any]
FileSource = Union[str, Path, bytes, tuple]


@dataclass
class RequestSpec:
    """Описание запроса. Сохраняется, чтобы запрос можно было повторить."""
    method: str
    url: str
    params: Optional[dict[str, Any]] = None
    json: Any = None
    data: Optional[Mapping[str, Any]] = None
    files: Any = None
    content: Optional[bytes] = None
    headers: dict[str, str] = field(default_factory=dict)
    on_upload_progress: Optional[ProgressCallback] = None
    auth_retried: bool = False  # уже был повтор после обновления токена
    skip_auth_refresh: bool = False  # не перехватывать 401 (запросы самой авторизации)


@dataclass
class ApiResponse:
    """Ответ API с разобранным телом."""
    status: int
    data: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    from_cache: bool = False


@dataclass
class BatchItemResult:
    """Результат одного запроса из batch()."""
    request: dict[str, Any]
    success: bool
    data: Any = None
    error: Optional[ApiError] = None


ResponseHook = Callable[["ApiClient", RequestSpec, ApiError], Awaitable[Optional[ApiResponse]]]


class CancellableRequest:
    """
    Запрос, привязанный к ключу: новый запрос с тем же ключом отменяет предыдущий.
    """

    def __init__(self, client: "ApiClient", key: str) -> None:
        self._client = client
        self.key = key

    async def request(self, method: str, url: str, **kwargs: Any) -> ApiResponse:
        return await self._client.run_keyed(self.key, self._client.request(method, url, **kwargs))

    def cancel(self) -> None:
        self._client.cancel(self.key)


class ApiClient:
    """
    Асинхронный клиент REST API портала.

    Все ошибки наружу выходят как ApiError и его подклассы
    (NetworkError, AuthenticationError, ValidationFailed, ServerError, ...).
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        storage: KeyValueStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = float(timeout if timeout is not None else settings.API_TIMEOUT)
        self.retry_attempts = int(retry_attempts if retry_attempts is not None else settings.API_RETRY_ATTEMPTS)
        self.retry_delay = float(retry_delay if retry_delay is not None else settings.API_RETRY_DELAY)
        self.storage = storage if storage is not None else create_storage()
        self.cache = ResponseCache(self.storage)
        self.stats = RequestStats()
        self._sleep = sleep

        if settings.DISABLE_SSL_VERIFY:
            logger.warning("SSL verification is DISABLED. This is not recommended for production!")
            verify: Any = False
        else:
            # Используем certifi для корректной работы сертификатов
            verify = ssl.create_default_context(cafile=certifi.where())

        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            verify=verify,
            transport=transport,
            headers={
                "Accept": "application/json",
                "X-Requested-With": "XMLHttpRequest",
            },
        )

        self._token: Optional[str] = None
        self._token_loaded = False
        self._response_hooks: list[ResponseHook] = []
        self._unauthorized_callbacks: list[Callable[[], Any]] = []
        self._inflight: dict[str, asyncio.Task] = {}
        self._superseded: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Жизненный цикл
    # ------------------------------------------------------------------
    async def close(self) -> None:
        self.cancel_all()
        await self._http.aclose()
        if isinstance(self.storage, RedisStorage):
            await self.storage.disconnect()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Токен авторизации
    # ------------------------------------------------------------------
    async def get_auth_token(self) -> Optional[str]:
        if not self._token_loaded:
            stored = await self.storage.get(STORAGE_KEYS["AUTH_TOKEN"])
            self._token = stored if isinstance(stored, str) and stored else None
            self._token_loaded = True
        return self._token

    async def set_auth_token(self, token: Optional[str]) -> None:
        """Сохраняет токен (или удаляет при token=None)."""
        self._token = token or None
        self._token_loaded = True
        if token:
            await self.storage.set(STORAGE_KEYS["AUTH_TOKEN"], token)
        else:
            await self.storage.delete(STORAGE_KEYS["AUTH_TOKEN"])

    # ------------------------------------------------------------------
    # Хуки
    # ------------------------------------------------------------------
    def add_response_hook(self, hook: ResponseHook) -> None:
        """
        Регистрирует хук ошибки ответа.

        Хук получает (client, spec, error) и может вернуть ApiResponse,
        тогда ошибка считается обработанной (например, после обновления токена).
        """
        self._response_hooks.append(hook)

    def remove_response_hook(self, hook: ResponseHook) -> None:
        if hook in self._response_hooks:
            self._response_hooks.remove(hook)

    def on_unauthorized(self, callback: Callable[[], Any]) -> None:
        """Колбэк на необработанный 401 (токен уже удалён)."""
        self._unauthorized_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Отправка запросов
    # ------------------------------------------------------------------
    async def _build_headers(self, spec: RequestSpec) -> dict[str, str]:
        headers = dict(spec.headers)
        token = await self.get_auth_token()
        if token and "Authorization" not in headers:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    async def _progress_stream(body: bytes, callback: ProgressCallback) -> AsyncIterator[bytes]:
        total = len(body)
        loaded = 0
        for offset in range(0, total, UPLOAD_CHUNK_SIZE):
            chunk = body[offset:offset + UPLOAD_CHUNK_SIZE]
            loaded += len(chunk)
            yield chunk
            percent = round(loaded * 100 / total) if total else 100
            result = callback(percent, loaded, total)
            if asyncio.iscoroutine(result):
                await result

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        if content_type.startswith("text/"):
            return response.text
        return response.content

    async def send(self, spec: RequestSpec) -> ApiResponse:
        """Один HTTP-запрос без повторов и без хуков."""
        headers = await self._build_headers(spec)
        content: Any = spec.content
        if content is not None and spec.on_upload_progress is not None:
            content = self._progress_stream(content, spec.on_upload_progress)

        method = spec.method.upper()
        name = f"{method} {spec.url}"
        if settings.DEBUG_MODE:
            logger.debug("API Request: %s", name)

        started = time.perf_counter()
        try:
            response = await self._http.request(
                method,
                spec.url,
                params=clean_params(spec.params) or None,
                json=spec.json,
                data=spec.data,
                files=spec.files,
                content=content,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.stats.track(name, elapsed_ms, success=False)
            logger.warning("API Error: %s (%.0fms) timeout", name, elapsed_ms)
            raise NetworkError(timeout=True) from exc
        except httpx.TransportError as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.stats.track(name, elapsed_ms, success=False)
            logger.warning("API Error: %s (%.0fms) Network Error: %s", name, elapsed_ms, exc)
            raise NetworkError() from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        status = response.status_code

        if response.is_error:
            self.stats.track(name, elapsed_ms, success=False)
            logger.debug("API Error: %s (%.0fms) %s", name, elapsed_ms, status)
            if status == HTTPStatus.FORBIDDEN:
                logger.warning("Access forbidden - insufficient permissions: %s", name)
            elif status == HTTPStatus.NOT_FOUND:
                logger.warning("Resource not found: %s", spec.url)
            elif status >= 500:
                logger.error("Server error: %s %s", status, name)
            raise error_from_response(response)

        self.stats.track(name, elapsed_ms, success=True)
        logger.debug("API Response: %s (%.0fms) %s", name, elapsed_ms, status)
        return ApiResponse(
            status=status,
            data=self._parse_body(response),
            headers=dict(response.headers),
            elapsed_ms=elapsed_ms,
        )

    async def _dispatch(self, spec: RequestSpec) -> ApiResponse:
        """Запрос + обработка ошибки хуками (перехват 401)."""
        try:
            return await self.send(spec)
        except ApiError as error:
            failure = error
            for hook in list(self._response_hooks):
                try:
                    recovered = await hook(self, spec, failure)
                except ApiError as hook_error:
                    # Повторный запрос из хука тоже завершился ошибкой
                    failure = hook_error
                    continue
                if recovered is not None:
                    return recovered

            if failure.status == HTTPStatus.UNAUTHORIZED and not spec.skip_auth_refresh:
                # Токен недействителен - удаляем его, сессия должна заново войти
                if await self.get_auth_token():
                    await self.set_auth_token(None)
                    for callback in list(self._unauthorized_callbacks):
                        result = callback()
                        if asyncio.iscoroutine(result):
                            await result
            if failure is error:
                raise
            raise failure from error

    @staticmethod
    def _should_retry(error: ApiError) -> bool:
        if isinstance(error, RequestCancelled):
            return False
        if isinstance(error, NetworkError):
            # Таймауты не повторяем
            return not error.timeout
        return isinstance(error, ServerError)

    async def execute(self, spec: RequestSpec, *, retry: bool | None = None) -> ApiResponse:
        """
        Выполняет запрос с повторами.

        По умолчанию повторяются только идемпотентные методы
        (GET/HEAD/OPTIONS/PUT/DELETE). Задержка: retry_delay * 2**attempt.
        """
        if retry is None:
            retry = spec.method.upper() in IDEMPOTENT_METHODS

        attempt = 0
        while True:
            try:
                return await self._dispatch(spec)
            except ApiError as error:
                if not retry or attempt >= self.retry_attempts or not self._should_retry(error):
                    raise
                delay = self.retry_delay * (2 ** attempt)
                logger.warning(
                    "Retrying %s %s in %.2fs (attempt %s/%s): %s",
                    spec.method.upper(), spec.url, delay, attempt + 1, self.retry_attempts, error.message,
                )
                await self._sleep(delay)
                attempt += 1

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        data: Optional[Mapping[str, Any]] = None,
        files: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        retry: bool | None = None,
        skip_auth_refresh: bool = False,
    ) -> ApiResponse:
        spec = RequestSpec(
            method=method.upper(),
            url=url,
            params=dict(params) if params else None,
            json=json,
            data=data,
            files=files,
            headers=dict(headers or {}),
            skip_auth_refresh=skip_auth_refresh,
        )
        try:
            return await self.execute(spec, retry=retry)
        except ApiError:
            raise
        except Exception as exc:
            raise normalize_error(exc) from exc

    async def get(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", url, json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", url, json=json, **kwargs)

    async def patch(self, url: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("PATCH", url, json=json, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", url, **kwargs)

    # ------------------------------------------------------------------
    # Кэш
    # ------------------------------------------------------------------
    async def get_with_cache(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        cache_duration: float | None = None,
        use_cache: bool = True,
    ) -> ApiResponse:
        """
        GET с TTL-кэшем в постоянном хранилище.

        Args:
            url: Путь запроса
            params: Query-параметры (входят в ключ кэша)
            cache_duration: TTL в секундах (по умолчанию DEFAULT_CACHE_TTL)
            use_cache: False - не читать и не писать кэш
        """
        if use_cache:
            cached = await self.cache.get(url, params, ttl=cache_duration)
            if cached is not None:
                self.stats.add_hit()
                return ApiResponse(status=HTTPStatus.OK, data=cached, from_cache=True)
            self.stats.add_miss()

        response = await self.request("GET", url, params=params, retry=True)

        if use_cache and response.status == HTTPStatus.OK:
            await self.cache.set(url, response.data, params, ttl=cache_duration)
        return response

    async def clear_cache(self, pattern: str | None = None) -> int:
        return await self.cache.clear(pattern)

    # ------------------------------------------------------------------
    # Расширенные операции
    # ------------------------------------------------------------------
    async def post_optimistic(
        self,
        url: str,
        data: Any,
        *,
        on_optimistic_update: Optional[Callable[[Any], Any]] = None,
        on_rollback: Optional[Callable[[ApiError], Any]] = None,
    ) -> ApiResponse:
        """POST с оптимистичным обновлением: колбэк до запроса, откат при ошибке."""
        if on_optimistic_update:
            on_optimistic_update(data)
        try:
            return await self.request("POST", url, json=data, retry=True)
        except ApiError as error:
            if on_rollback:
                on_rollback(error)
            raise

    async def batch(self, requests: list[dict[str, Any]]) -> list[BatchItemResult]:
        """
        Выполняет запросы параллельно. Ошибки отдельных запросов не пробрасываются.

        Каждый запрос - словарь {"method", "url", "params", "json"}.
        """
        async def run(item: dict[str, Any]) -> ApiResponse:
            options = {key: value for key, value in item.items() if key not in ("method", "url")}
            return await self.request(item.get("method", "GET"), item["url"], **options)

        outcomes = await asyncio.gather(*(run(item) for item in requests), return_exceptions=True)

        results = []
        for item, outcome in zip(requests, outcomes):
            if isinstance(outcome, BaseException):
                results.append(BatchItemResult(request=item, success=False, error=normalize_error(outcome)))
            else:
                results.append(BatchItemResult(request=item, success=True, data=outcome.data))
        return results

    @staticmethod
    def _read_file_source(file: FileSource, filename: str | None, content_type: str | None) -> tuple:
        if isinstance(file, tuple):
            return file
        if isinstance(file, (str, Path)):
            path = Path(file)
            name = filename or path.name
            return (name, path.read_bytes(), content_type or guess_content_type(name))
        return (filename or "upload", bytes(file), content_type or "application/octet-stream")

    async def upload_file(
        self,
        url: str,
        file: FileSource,
        *,
        field: str = "file",
        additional_data: Optional[Mapping[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> ApiResponse:
        """
        Загружает файл multipart/form-data с отслеживанием прогресса.

        on_progress(percent, loaded_bytes, total_bytes) вызывается по мере отправки тела.
        Загрузка повторяется при ошибках сети/5xx.
        """
        file_tuple = self._read_file_source(file, filename, content_type)
        form = {key: str(value) for key, value in (additional_data or {}).items()}

        # Собираем multipart-тело один раз, чтобы повтор отправлял те же байты
        prepared = httpx.Request("POST", f"{self.base_url}{url}", data=form, files={field: file_tuple})
        body = prepared.read()

        spec = RequestSpec(
            method="POST",
            url=url,
            content=body,
            headers={
                "Content-Type": prepared.headers["Content-Type"],
                "Content-Length": str(len(body)),
            },
            on_upload_progress=on_progress,
        )
        return await self.execute(spec, retry=True)

    @staticmethod
    def _filename_from_disposition(disposition: str) -> Optional[str]:
        match = re.search(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", disposition or "", re.IGNORECASE)
        return match.group(1).strip() if match else None

    async def download_file(
        self,
        url: str,
        destination: str | Path,
        *,
        filename: str | None = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Path:
        """
        Скачивает бинарный ответ в файл.

        Если destination - каталог, имя файла берётся из filename,
        заголовка Content-Disposition или последнего сегмента URL.
        """
        destination = Path(destination)
        spec = RequestSpec(method="GET", url=url, params=dict(params) if params else None)
        headers = await self._build_headers(spec)
        headers["Accept"] = "*/*"

        try:
            async with self._http.stream("GET", url, params=clean_params(params) or None, headers=headers) as response:
                if response.is_error:
                    await response.aread()
                    raise error_from_response(response)

                if destination.is_dir():
                    name = (
                        filename
                        or self._filename_from_disposition(response.headers.get("content-disposition", ""))
                        or url.rstrip("/").split("/")[-1]
                        or "download"
                    )
                    target = destination / name
                else:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    target = destination

                # Недокачанный файл не должен оказаться на месте целевого
                partial = target.with_name(target.name + ".part")
                try:
                    with open(partial, "wb") as fh:
                        async for chunk in response.aiter_bytes():
                            fh.write(chunk)
                    partial.replace(target)
                except BaseException:
                    partial.unlink(missing_ok=True)
                    raise
        except httpx.HTTPError as exc:
            raise normalize_error(exc) from exc

        logger.info("Файл сохранён: %s", target)
        return target

    async def health(self) -> dict[str, Any]:
        """Проверка доступности API (GET /health)."""
        try:
            response = await self.request("GET", "/health", retry=False)
            return {"healthy": True, "status": response.status, "data": response.data}
        except ApiError as error:
            return {"healthy": False, "error": error.message}

    # ------------------------------------------------------------------
    # Отмена запросов
    # ------------------------------------------------------------------
    def cancellable(self, key: str) -> CancellableRequest:
        return CancellableRequest(self, key)

    async def run_keyed(self, key: str, coro: Awaitable[ApiResponse]) -> ApiResponse:
        """Запускает корутину под ключом, отменяя предыдущую с тем же ключом."""
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            self._superseded.add(previous)
            previous.cancel()

        task = asyncio.ensure_future(coro)
        self._inflight[key] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._superseded:
                self._superseded.discard(task)
                raise RequestCancelled("Request cancelled due to new request") from None
            raise
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    def cancel(self, key: str) -> None:
        task = self._inflight.pop(key, None)
        if task is not None and not task.done():
            self._superseded.add(task)
            task.cancel()

    def cancel_all(self) -> None:
        for key in list(self._inflight):
            self.cancel(key)
