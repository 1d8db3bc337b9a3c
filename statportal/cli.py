"""
Командная строка клиента портала статистики.

Использование:
    statportal login --email user@example.com
    statportal whoami
    statportal news list --search census
    statportal documents upload report.pdf --title "Annual report" --category Trade
    statportal documents download 42 --output downloads/
    statportal stats dashboard
    statportal cache clear --pattern news
    statportal health
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from typing import Any, Optional, Sequence

from statportal import __version__
from statportal.api.client import ApiClient
from statportal.api.exceptions import ApiError
from statportal.auth.session import AuthSession
from statportal.core.config import settings
from statportal.core.constants import DOCUMENT_CATEGORIES, NEWS_CATEGORIES
from statportal.core.logging_config import setup_logging
from statportal.services import PortalServices

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _print_error(error: ApiError) -> None:
    print(f"Ошибка: {error.message}", file=sys.stderr)
    for field, messages in error.errors.items():
        for message in messages:
            print(f"  {field}: {message}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="statportal", description="Клиент REST API портала статистики")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--base-url", default=None, help=f"Базовый URL API (по умолчанию {settings.API_BASE_URL})")
    parser.add_argument("--log-level", default=None, help="Уровень логирования (DEBUG, INFO, ...)")
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Вход в портал")
    login.add_argument("--email", required=True)
    login.add_argument("--password", default=None, help="Пароль (если не указан - запрашивается)")

    commands.add_parser("logout", help="Выход из портала")
    commands.add_parser("whoami", help="Текущий пользователь")

    news = commands.add_parser("news", help="Новости").add_subparsers(dest="action", required=True)
    news_list = news.add_parser("list", help="Список новостей")
    news_list.add_argument("--page", type=int, default=1)
    news_list.add_argument("--per-page", type=int, default=None)
    news_list.add_argument("--search", default="")
    news_list.add_argument("--category", default="", choices=[""] + NEWS_CATEGORIES)
    news_list.add_argument("--status", default="")
    news_list.add_argument("--no-cache", action="store_true")

    documents = commands.add_parser("documents", help="Документы").add_subparsers(dest="action", required=True)
    documents_list = documents.add_parser("list", help="Список документов")
    documents_list.add_argument("--page", type=int, default=1)
    documents_list.add_argument("--per-page", type=int, default=None)
    documents_list.add_argument("--search", default="")
    documents_list.add_argument("--category", default="")
    documents_list.add_argument("--no-cache", action="store_true")

    upload = documents.add_parser("upload", help="Загрузить документ")
    upload.add_argument("file")
    upload.add_argument("--title", required=True)
    upload.add_argument("--category", required=True, choices=DOCUMENT_CATEGORIES)
    upload.add_argument("--description", default="")
    upload.add_argument("--tags", default="", help="Теги через запятую")
    upload.add_argument("--private", action="store_true", help="Документ не публичный")

    download = documents.add_parser("download", help="Скачать документ")
    download.add_argument("document_id", type=int)
    download.add_argument("--output", default=".", help="Каталог или путь к файлу")
    download.add_argument("--filename", default=None)

    stats = commands.add_parser("stats", help="Статистика").add_subparsers(dest="action", required=True)
    stats.add_parser("dashboard", help="Сводка для дашборда")

    cache = commands.add_parser("cache", help="Кэш ответов").add_subparsers(dest="action", required=True)
    cache_clear = cache.add_parser("clear", help="Очистить кэш")
    cache_clear.add_argument("--pattern", default=None, help="Подстрока ключа (например, news)")

    commands.add_parser("health", help="Проверка доступности API")
    return parser


def _upload_progress(percent: int, loaded: int, total: int) -> None:
    print(f"\rЗагрузка: {percent}% ({loaded}/{total} байт)", end="", file=sys.stderr, flush=True)
    if percent >= 100:
        print(file=sys.stderr)


async def run_command(args: argparse.Namespace, client: ApiClient) -> int:
    services = PortalServices.create(client)
    session = AuthSession(client, services.auth)
    try:
        if args.command == "login":
            password = args.password or getpass.getpass("Пароль: ")
            result = await session.login(args.email, password)
            if not result.success:
                print(f"Ошибка входа: {result.error}", file=sys.stderr)
                return 1
            print(f"Вход выполнен: {session.user_name} <{session.user_email}> ({session.user_role})")
            return 0

        if args.command == "logout":
            await session.logout()
            print("Выход выполнен")
            return 0

        await session.initialize()

        if args.command == "whoami":
            if not session.is_authenticated:
                print("Не выполнен вход", file=sys.stderr)
                return 1
            _print_json(session.user)
            return 0

        if args.command == "news":
            page = await services.news.list(
                page=args.page,
                per_page=args.per_page,
                search=args.search,
                category=args.category,
                status=args.status,
                use_cache=not args.no_cache,
            )
            _print_json(page)
            return 0

        if args.command == "documents":
            if args.action == "list":
                page = await services.documents.list(
                    page=args.page,
                    per_page=args.per_page,
                    search=args.search,
                    category=args.category,
                    use_cache=not args.no_cache,
                )
                _print_json(page)
            elif args.action == "upload":
                document = await services.documents.upload(
                    args.file,
                    args.title,
                    args.category,
                    description=args.description,
                    is_public=not args.private,
                    tags=[tag.strip() for tag in args.tags.split(",") if tag.strip()],
                    on_progress=_upload_progress,
                )
                _print_json(document)
            elif args.action == "download":
                target = await services.documents.download(args.document_id, args.output, args.filename)
                print(f"Сохранено: {target}")
            return 0

        if args.command == "stats":
            _print_json(await services.stats.dashboard())
            return 0

        if args.command == "cache":
            removed = await client.clear_cache(args.pattern)
            print(f"Удалено записей кэша: {removed}")
            return 0

        if args.command == "health":
            status = await client.health()
            _print_json(status)
            return 0 if status.get("healthy") else 1

        logger.error("Неизвестная команда: %s", args.command)
        return 2
    except ApiError as error:
        _print_error(error)
        return 1
    finally:
        await session.close()


async def _main(args: argparse.Namespace) -> int:
    async with ApiClient(args.base_url) as client:
        return await run_command(args, client)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level)
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.info("Прервано пользователем")
        return 130


if __name__ == "__main__":
    sys.exit(main())
