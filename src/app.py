"""Application entry point for the periscope monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from playwright.async_api import async_playwright
from rich.console import Console
from rich.table import Table

import settings
from adapters.control_server import ControlServer, send_command
from adapters.log_notifier import LogNotifier
from adapters.playwright_tree import PlaywrightContentTree, launch_page
from adapters.sqlite_store import SQLiteKeywordStore
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_notifier import TelegramSavedMessagesNotifier
from core.errors import ContextLostError
from core.monitor import build_engine

NAME = "PERISCOPE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/periscope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _open_store() -> SQLiteKeywordStore:
    store = SQLiteKeywordStore(settings.DB_PATH)
    store.init_db()
    if settings.SEED_KEYWORDS and not store.has_keywords():
        store.set_keywords(settings.SEED_KEYWORDS)
        logging.getLogger(__name__).info("Seeded %s keywords from config.json", len(settings.SEED_KEYWORDS))
    return store


async def _build_notifier():
    """Select the notification adapter; returns (notifier, telegram_client_or_None)."""

    method = settings.NOTIFICATION_METHOD
    if method == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when notification_method=bot")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("notifications.bot_chat_id is required for bot notifications")
        return TelegramBotNotifier(bot_token=bot_token, chat_id=str(settings.BOT_CHAT_ID)), None
    if method == "saved_messages":
        from client import build_client

        client = build_client(settings.PROJECT_ROOT)
        # Telethon prompts for phone/code on first use and reuses the session after.
        await client.start()
        return TelegramSavedMessagesNotifier(client), client
    if method == "log":
        return LogNotifier(), None
    raise RuntimeError("notification_method must be 'log', 'saved_messages' or 'bot'")


async def _run_async() -> None:
    logger = logging.getLogger(__name__)
    store = _open_store()
    notifier, telegram_client = await _build_notifier()
    logger.info("Selected notification method - %s", settings.NOTIFICATION_METHOD)

    async with async_playwright() as playwright:
        context, page = await launch_page(
            playwright,
            settings.PAGE_URL,
            settings.USER_DATA_DIR,
            headless=settings.HEADLESS,
        )
        tree = PlaywrightContentTree(page, settings.SELECTORS)
        await tree.setup()

        engine = build_engine(
            tree,
            store,
            notifier,
            monitor_config=settings.MONITOR,
            dedup_config=settings.DEDUP,
            selectors=settings.SELECTORS,
            notification_config=settings.NOTIFICATIONS,
        )
        server = ControlServer(engine.handle_command, settings.CONTROL_HOST, settings.CONTROL_PORT)
        await server.start()

        closed = asyncio.Event()
        page.on("close", lambda _page: closed.set())

        # The persisted switch is only read at startup; later toggles arrive
        # through the control channel.
        if store.get_active():
            engine.start()
        else:
            logger.info("Monitor is off. Run `periscope ctl start` to begin.")

        try:
            await closed.wait()
        finally:
            logger.info("Page closed, shutting down")
            engine.stop()
            await server.close()
            await context.close()
            if telegram_client is not None:
                await telegram_client.disconnect()


def _run() -> None:
    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting periscope on %s", settings.PAGE_URL)
    try:
        asyncio.run(_run_async())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted, bye")


def _render_status(console: Console, response: dict) -> None:
    status = response.get("status") or {}
    table = Table(title="periscope", show_header=False)
    table.add_column("key", style="bold")
    table.add_column("value")
    for key, value in status.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


def _ctl(action: str) -> None:
    console = Console()
    command_type = "getStatus" if action == "status" else action

    if action in {"start", "stop"}:
        _open_store().set_active(action == "start")

    try:
        response = asyncio.run(
            send_command({"type": command_type}, settings.CONTROL_HOST, settings.CONTROL_PORT)
        )
    except ContextLostError as exc:
        console.print(f"[yellow]Monitor is not running[/yellow] ({exc})")
        if action in {"start", "stop"}:
            console.print("The switch was saved and applies on the next `periscope run`.")
        return

    if not response.get("success"):
        console.print(f"[red]{response.get('error', 'command failed')}[/red]")
        return
    _render_status(console, response)


def _keywords(action: str, values: list[str]) -> None:
    console = Console()
    store = _open_store()
    if action == "set":
        store.set_keywords(values)
    keywords = store.read_keywords()
    if not keywords:
        console.print("No keywords configured.")
        return
    for index, keyword in enumerate(keywords, start=1):
        kind = "combined" if " " in keyword else "single"
        console.print(f"{index}. {keyword} [dim]({kind})[/dim]")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="periscope")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Open the chat page and start the monitor")

    ctl_parser = subparsers.add_parser("ctl", help="Send a command to a running monitor")
    ctl_parser.add_argument("action", choices=["start", "stop", "restart", "status"])

    keywords_parser = subparsers.add_parser("keywords", help="List or replace the keyword list")
    keywords_parser.add_argument("action", choices=["list", "set"])
    keywords_parser.add_argument("values", nargs="*", help='Keywords; quote phrases like "server down"')

    args = parser.parse_args(argv)
    if args.command == "ctl":
        _ctl(args.action)
        return
    if args.command == "keywords":
        _keywords(args.action, args.values)
        return
    _run()


if __name__ == "__main__":
    main()
