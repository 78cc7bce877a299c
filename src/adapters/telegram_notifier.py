"""Telegram notification adapter for Saved Messages.

Formats a human-readable Markdown message and sends it to Saved Messages.
"""

from __future__ import annotations

from telethon import errors

from adapters.notification_formatting import format_notification
from core.errors import ContextLostError
from core.models import Notification


class TelegramSavedMessagesNotifier:
    """Notifier adapter that sends messages to the user's Saved Messages."""

    def __init__(self, client) -> None:
        self._client = client

    async def send(self, notification: Notification) -> None:
        """Send the formatted notification to Saved Messages."""

        if not self._client.is_connected():
            raise ContextLostError("Telegram client is disconnected")
        message = format_notification(notification, mode="markdown")
        try:
            await self._client.send_message("me", message, parse_mode="Markdown")
        except errors.FloodWaitError as e:
            raise RuntimeError(f"Telegram rate limit, retry after {e.seconds}s") from e
