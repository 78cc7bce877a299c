"""Telethon client for the Saved Messages notifier.

Only built when notification_method=saved_messages. The monitor never reads
Telegram; the client exists purely to deliver alerts to the account owner.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient

LOGGER = logging.getLogger(__name__)


def build_client(session_dir: Optional[str] = None) -> TelegramClient:
    """Return an unstarted client configured from API_ID/API_HASH.

    The .session file lands in ``session_dir`` (project root by default) so
    `periscope run` works from any working directory.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    if not api_id or not api_hash:
        raise RuntimeError("saved_messages notifications need API_ID and API_HASH in .env")

    session = os.getenv("SESSION_NAME", "periscope")
    if session_dir and not os.path.isabs(session):
        session = os.path.join(session_dir, session)

    LOGGER.info("Preparing Telegram client for alert delivery")
    return TelegramClient(session, int(api_id), api_hash)
