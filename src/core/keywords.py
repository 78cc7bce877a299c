"""Cached, read-only accessor over the external keyword store."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from core.errors import ContextLostError
from core.matcher import normalize_keywords
from core.ports import KeywordStore
from core.session import MonitorSession

LOGGER = logging.getLogger(__name__)


class KeywordSource:
    """Serve the keyword list, re-reading the store at most once per TTL.

    When the store is unreachable the last known list is served; with no
    cache at all an empty list is returned and the context-loss callback fires
    so the monitor can start its recovery sequence.
    """

    def __init__(
        self,
        session: MonitorSession,
        store: KeywordStore,
        ttl: float,
        on_context_lost: Optional[Callable[[], None]] = None,
    ) -> None:
        self._session = session
        self._store = store
        self._ttl = ttl
        self._cached: Optional[list[str]] = None
        self._fetched_at: Optional[float] = None
        self.on_context_lost = on_context_lost

    async def get_keywords(self) -> list[str]:
        now = self._session.now()
        if self._cached is not None and self._fetched_at is not None and now - self._fetched_at < self._ttl:
            return self._cached

        try:
            keywords = await self._store.get_keywords()
        except ContextLostError as exc:
            if self._cached is not None:
                LOGGER.info("Keyword store unreachable (%s), using cached keywords", exc)
                return self._cached
            LOGGER.info("Keyword store unreachable (%s) and nothing cached", exc)
            if self.on_context_lost is not None:
                self.on_context_lost()
            return []

        self._cached = normalize_keywords(keywords)
        self._fetched_at = now
        return self._cached

    async def probe(self) -> Optional[bool]:
        """Return True when the store answers; None keeps a Retryable going."""

        try:
            return True if await self._store.ping() else None
        except ContextLostError:
            return None

    def invalidate(self) -> None:
        self._fetched_at = None
