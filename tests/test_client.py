"""
Тесты ApiClient: заголовки, повторы, кэш, загрузка/скачивание, отмена.
"""

import asyncio

import httpx
import pytest

from statportal.api.exceptions import (
    AuthenticationError,
    NetworkError,
    NotFound,
    PermissionDenied,
    RequestCancelled,
    ServerError,
    ValidationFailed,
)
from statportal.core.constants import STORAGE_KEYS
from tests.helpers import bearer


# ============================================================================
# Заголовки и токен
# ============================================================================

async def test_default_headers_and_bearer_token(client, api, storage):
    api.json("GET", "/news", {"data": []})
    await client.set_auth_token("abc123")

    await client.get("/news")

    request = api.last("GET", "/news")
    assert request.headers["Accept"] == "application/json"
    assert "Content-Type" not in request.headers
    assert request.headers["X-Requested-With"] == "XMLHttpRequest"
    assert bearer(request) == "abc123"
    assert await storage.get(STORAGE_KEYS["AUTH_TOKEN"]) == "abc123"


async def test_no_authorization_header_without_token(client, api):
    api.json("GET", "/news", {"data": []})
    await client.get("/news")
    assert "Authorization" not in api.last("GET", "/news").headers


async def test_token_is_loaded_from_storage(client, api, storage):
    await storage.set(STORAGE_KEYS["AUTH_TOKEN"], "persisted")
    api.json("GET", "/news", {})
    await client.get("/news")
    assert bearer(api.last("GET", "/news")) == "persisted"


async def test_clearing_token_removes_it_from_storage(client, storage):
    await client.set_auth_token("abc")
    await client.set_auth_token(None)
    assert await client.get_auth_token() is None
    assert await storage.get(STORAGE_KEYS["AUTH_TOKEN"]) is None


async def test_none_params_are_not_sent(client, api):
    api.json("GET", "/stats/charts/users", {})
    await client.get("/stats/charts/users", params={"timeframe": "30d", "category": None})
    params = api.last("GET", "/stats/charts/users").url.params
    assert params["timeframe"] == "30d"
    assert "category" not in params


# ============================================================================
# Повторы
# ============================================================================

async def test_server_errors_are_retried_with_exponential_backoff(client, api, sleeps):
    api.json("GET", "/stats/dashboard", {"message": "down"}, status=503)

    with pytest.raises(ServerError) as exc_info:
        await client.get("/stats/dashboard")

    assert exc_info.value.status == 503
    assert api.count("GET", "/stats/dashboard") == 4
    assert sleeps.delays == [1.0, 2.0, 4.0]


async def test_retry_succeeds_after_transient_failure(client, api, sleeps):
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    api.add("GET", "/news", fail, httpx.Response(200, json={"data": [1]}))

    response = await client.get("/news")

    assert response.data == {"data": [1]}
    assert api.count("GET", "/news") == 2
    assert sleeps.delays == [1.0]


async def test_timeouts_are_not_retried(client, api, sleeps):
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    api.add("GET", "/news", timeout)

    with pytest.raises(NetworkError) as exc_info:
        await client.get("/news")

    assert exc_info.value.timeout is True
    assert exc_info.value.kind == "network_error"
    assert api.count("GET", "/news") == 1
    assert sleeps.delays == []


async def test_client_errors_are_not_retried(client, api):
    api.json("GET", "/news/99", {"message": "Missing"}, status=404)

    with pytest.raises(NotFound) as exc_info:
        await client.get("/news/99")

    assert exc_info.value.message == "Missing"
    assert api.count("GET", "/news/99") == 1


async def test_post_is_not_retried_by_default(client, api):
    api.json("POST", "/news", {}, status=502)
    with pytest.raises(ServerError):
        await client.post("/news", {"title": "x"})
    assert api.count("POST", "/news") == 1


async def test_validation_errors_carry_field_messages(client, api):
    api.json("POST", "/news", {"message": "Invalid", "errors": {"title": ["Too short"]}}, status=422)

    with pytest.raises(ValidationFailed) as exc_info:
        await client.post("/news", {"title": "x"})

    error = exc_info.value
    assert error.status == 422
    assert error.errors == {"title": ["Too short"]}
    assert error.to_dict()["errors"] == {"title": ["Too short"]}


async def test_stats_track_requests(client, api):
    api.json("GET", "/news", {})
    api.json("GET", "/missing", {}, status=404)

    await client.get("/news")
    with pytest.raises(NotFound):
        await client.get("/missing")

    assert client.stats.requests["GET /news"].count == 1
    assert client.stats.requests["GET /missing"].failures == 1
    assert client.stats.total_requests() == 2


# ============================================================================
# Кэш
# ============================================================================

async def test_get_with_cache_returns_cached_response(client, api):
    api.json("GET", "/news", {"data": ["a"]})

    first = await client.get_with_cache("/news", params={"page": 1})
    second = await client.get_with_cache("/news", params={"page": 1})

    assert first.from_cache is False
    assert second.from_cache is True
    assert second.data == {"data": ["a"]}
    assert api.count("GET", "/news") == 1
    assert client.stats.cache_hits == 1
    assert client.stats.cache_misses == 1


async def test_cache_is_keyed_by_params(client, api):
    api.json("GET", "/news", {"data": []})
    await client.get_with_cache("/news", params={"page": 1})
    await client.get_with_cache("/news", params={"page": 2})
    assert api.count("GET", "/news") == 2


async def test_use_cache_false_bypasses_cache(client, api):
    api.json("GET", "/news", {"data": []})
    await client.get_with_cache("/news")
    await client.get_with_cache("/news", use_cache=False)
    assert api.count("GET", "/news") == 2


async def test_expired_entry_is_a_miss(client, api):
    api.json("GET", "/news", {"data": []})
    await client.get_with_cache("/news", cache_duration=0)
    await client.get_with_cache("/news", cache_duration=0)
    assert api.count("GET", "/news") == 2


async def test_only_200_responses_are_cached(client, api):
    api.json("GET", "/stats/realtime", {"queued": True}, status=202)
    await client.get_with_cache("/stats/realtime")
    await client.get_with_cache("/stats/realtime")
    assert api.count("GET", "/stats/realtime") == 2


async def test_clear_cache_by_pattern(client, api):
    api.json("GET", "/news", {})
    api.json("GET", "/documents", {})
    await client.get_with_cache("/news")
    await client.get_with_cache("/documents")

    removed = await client.clear_cache("news")
    await client.get_with_cache("/news")
    await client.get_with_cache("/documents")

    assert removed == 1
    assert api.count("GET", "/news") == 2
    assert api.count("GET", "/documents") == 1


# ============================================================================
# 401 без сессии
# ============================================================================

async def test_unhandled_unauthorized_clears_token(client, api):
    api.json("GET", "/auth/user", {"message": "Unauthenticated."}, status=401)
    calls = []
    client.on_unauthorized(lambda: calls.append(True))
    await client.set_auth_token("stale")

    with pytest.raises(AuthenticationError):
        await client.get("/auth/user")

    assert await client.get_auth_token() is None
    assert calls == [True]


async def test_skip_auth_refresh_keeps_token(client, api):
    api.json("POST", "/auth/logout", {}, status=401)
    await client.set_auth_token("token")

    with pytest.raises(AuthenticationError):
        await client.post("/auth/logout", skip_auth_refresh=True)

    assert await client.get_auth_token() == "token"


# ============================================================================
# Расширенные операции
# ============================================================================

async def test_batch_reports_each_result(client, api):
    api.json("GET", "/news", {"data": []})
    api.json("GET", "/documents", {"message": "Forbidden"}, status=403)

    results = await client.batch([
        {"method": "GET", "url": "/news"},
        {"method": "GET", "url": "/documents"},
    ])

    assert [item.success for item in results] == [True, False]
    assert results[0].data == {"data": []}
    assert results[1].error.status == 403


async def test_post_optimistic_rolls_back_on_error(client, api):
    api.json("POST", "/news", {"message": "Invalid", "errors": {"title": ["bad"]}}, status=422)
    applied, rolled_back = [], []

    with pytest.raises(ValidationFailed):
        await client.post_optimistic(
            "/news",
            {"title": "x"},
            on_optimistic_update=applied.append,
            on_rollback=rolled_back.append,
        )

    assert applied == [{"title": "x"}]
    assert len(rolled_back) == 1


async def test_upload_file_reports_progress(client, api):
    api.json("POST", "/documents", {"id": 5, "title": "Report"}, status=201)
    progress = []
    payload = b"x" * (200 * 1024)

    response = await client.upload_file(
        "/documents",
        ("report.pdf", payload, "application/pdf"),
        additional_data={"title": "Report", "is_public": "1"},
        on_progress=lambda percent, loaded, total: progress.append((percent, loaded, total)),
    )

    assert response.status == 201
    request = api.last("POST", "/documents")
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b'name="title"' in request.content
    assert b'filename="report.pdf"' in request.content
    assert progress[-1][0] == 100
    assert progress[-1][1] == progress[-1][2] == len(request.content)
    assert [item[0] for item in progress] == sorted(item[0] for item in progress)


async def test_upload_file_is_retried_on_server_error(client, api, sleeps):
    api.add(
        "POST",
        "/documents",
        httpx.Response(500, json={}),
        httpx.Response(201, json={"id": 1}),
    )

    response = await client.upload_file("/documents", ("a.csv", b"a,b\n1,2", "text/csv"))

    assert response.data == {"id": 1}
    assert api.count("POST", "/documents") == 2
    assert sleeps.delays == [1.0]


async def test_download_file_into_directory(client, api, tmp_path):
    api.add(
        "GET",
        "/documents/3/download",
        httpx.Response(
            200,
            content=b"%PDF-1.4 data",
            headers={"Content-Type": "application/pdf", "Content-Disposition": 'attachment; filename="annual.pdf"'},
        ),
    )

    target = await client.download_file("/documents/3/download", tmp_path)

    assert target == tmp_path / "annual.pdf"
    assert target.read_bytes() == b"%PDF-1.4 data"


async def test_download_file_error_status(client, api, tmp_path):
    api.json("GET", "/documents/4/download", {"message": "Access denied"}, status=403)
    with pytest.raises(PermissionDenied) as exc_info:
        await client.download_file("/documents/4/download", tmp_path / "file.pdf")
    assert exc_info.value.status == 403
    assert not (tmp_path / "file.pdf").exists()


class BrokenStream(httpx.AsyncByteStream):
    """Отдаёт часть тела и обрывает соединение."""

    async def __aiter__(self):
        yield b"partial-bytes"
        raise httpx.ReadError("connection lost")


async def test_interrupted_download_leaves_no_file(client, api, tmp_path):
    api.add("GET", "/documents/5/download", lambda request: httpx.Response(200, stream=BrokenStream()))
    target = tmp_path / "report.pdf"

    with pytest.raises(NetworkError):
        await client.download_file("/documents/5/download", target)

    assert not target.exists()
    assert list(tmp_path.iterdir()) == []


async def test_interrupted_download_keeps_previous_file(client, api, tmp_path):
    api.add("GET", "/documents/5/download", lambda request: httpx.Response(200, stream=BrokenStream()))
    target = tmp_path / "report.pdf"
    target.write_bytes(b"old version")

    with pytest.raises(NetworkError):
        await client.download_file("/documents/5/download", target)

    assert target.read_bytes() == b"old version"
    assert not (tmp_path / "report.pdf.part").exists()


async def test_health(client, api):
    api.json("GET", "/health", {"status": "ok"})
    assert await client.health() == {"healthy": True, "status": 200, "data": {"status": "ok"}}


async def test_health_reports_failure(client, api):
    api.json("GET", "/health", {"message": "Maintenance"}, status=503)
    result = await client.health()
    assert result["healthy"] is False
    assert result["error"] == "Maintenance"


async def test_newer_keyed_request_cancels_older(client, api):
    gate = asyncio.Event()

    async def search(request):
        if request.url.params["q"] == "slow":
            await gate.wait()
        return httpx.Response(200, json={"q": request.url.params["q"]})

    api.add("GET", "/news/search", search)
    keyed = client.cancellable("search")

    first = asyncio.create_task(keyed.request("GET", "/news/search", params={"q": "slow"}))
    await asyncio.sleep(0.01)
    second = await keyed.request("GET", "/news/search", params={"q": "fast"})

    assert second.data == {"q": "fast"}
    with pytest.raises(RequestCancelled):
        await first
