"""
Тесты командной строки.
"""

import json

import pytest

from statportal.cli import build_parser, run_command
from tests.helpers import paginated, user_payload


def parse(*argv):
    return build_parser().parse_args(list(argv))


def test_parser_news_list_options():
    args = parse("news", "list", "--page", "2", "--search", "census", "--no-cache")
    assert args.command == "news"
    assert args.action == "list"
    assert args.page == 2
    assert args.search == "census"
    assert args.no_cache is True


def test_parser_rejects_unknown_category(capsys):
    with pytest.raises(SystemExit):
        parse("documents", "upload", "a.pdf", "--title", "T", "--category", "Astrology")
    assert "invalid choice" in capsys.readouterr().err


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        parse()


async def test_login_command(client, api, capsys):
    api.json("POST", "/auth/login", {"token": "t", "user": user_payload(role="editor")})

    code = await run_command(parse("login", "--email", "test@example.com", "--password", "secret123"), client)

    assert code == 0
    assert "Test User <test@example.com> (editor)" in capsys.readouterr().out
    assert await client.get_auth_token() == "t"


async def test_login_command_failure(client, api, capsys):
    api.json("POST", "/auth/login", {"message": "Unauthenticated."}, status=401)

    code = await run_command(parse("login", "--email", "test@example.com", "--password", "wrong-pass"), client)

    assert code == 1
    assert "Invalid email or password" in capsys.readouterr().err


async def test_whoami_without_login(client, capsys):
    assert await run_command(parse("whoami"), client) == 1
    assert "Не выполнен вход" in capsys.readouterr().err


async def test_whoami_prints_user(client, api, capsys):
    await client.set_auth_token("stored")
    api.json("GET", "/auth/user", {"user": user_payload()})

    assert await run_command(parse("whoami"), client) == 0
    assert json.loads(capsys.readouterr().out)["email"] == "test@example.com"


async def test_news_list_command(client, api, capsys):
    api.json("GET", "/news", paginated([{"id": 1, "title": "Census"}], total=1))

    assert await run_command(parse("news", "list"), client) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["total"] == 1
    assert output["data"][0]["title"] == "Census"


async def test_api_errors_are_printed(client, api, capsys):
    api.json("GET", "/documents", {"message": "Access denied"}, status=403)

    assert await run_command(parse("documents", "list"), client) == 1
    assert "Ошибка: Access denied" in capsys.readouterr().err


async def test_cache_clear_command(client, api, capsys):
    api.json("GET", "/news", {"data": []})
    await client.get_with_cache("/news")

    assert await run_command(parse("cache", "clear", "--pattern", "news"), client) == 0
    assert "Удалено записей кэша: 1" in capsys.readouterr().out


async def test_health_command(client, api, capsys):
    api.json("GET", "/health", {"message": "Down"}, status=503)

    assert await run_command(parse("health"), client) == 1
    assert json.loads(capsys.readouterr().out) == {"healthy": False, "error": "Down"}
