"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed via a bot chat.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from adapters.notification_formatting import format_notification
from core.models import Notification


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout

    def _endpoint(self) -> str:
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _build_payload(self, notification: Notification) -> dict:
        return {
            "chat_id": self._chat_id,
            "text": format_notification(notification, mode="html"),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
            # Interaction-required alerts ring; the rest arrive silently.
            "disable_notification": not notification.require_interaction,
        }

    def _post(self, payload: dict) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Bot API error {e.code}: {body}") from e

    async def send(self, notification: Notification) -> None:
        """Send the formatted notification via the Bot API."""

        # urllib blocks, so the request runs off the event loop thread.
        await asyncio.to_thread(self._post, self._build_payload(notification))
