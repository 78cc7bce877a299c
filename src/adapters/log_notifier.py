"""Notifier that only writes matches to the log."""

from __future__ import annotations

import logging

from adapters.notification_formatting import format_notification
from core.models import Notification

LOGGER = logging.getLogger(__name__)


class LogNotifier:
    async def send(self, notification: Notification) -> None:
        LOGGER.warning("%s", format_notification(notification, mode="plain"))
