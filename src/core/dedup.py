"""Deduplication helpers (core domain)."""

from __future__ import annotations

import hashlib
import logging
import math

from core.config import DedupConfig
from core.normalizer import normalize_for_fingerprint
from core.session import MonitorSession

LOGGER = logging.getLogger(__name__)


def time_bucket(timestamp: float, bucket_seconds: float) -> int:
    return int(math.floor(timestamp / bucket_seconds))


def compute_fingerprint(normalized_text: str, timestamp: float, bucket_seconds: float) -> str:
    """Return a fingerprint hash of the text and its time bucket."""

    payload = f"{normalize_for_fingerprint(normalized_text)}\n{time_bucket(timestamp, bucket_seconds)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DedupCache:
    """Bounded, insertion-ordered set of fingerprints.

    Shared by the mutation watcher and the full scan so overlapping selectors
    and host re-renders never produce a second notification.
    """

    def __init__(self, session: MonitorSession, config: DedupConfig) -> None:
        if config.cap < 2:
            raise ValueError("dedup cap must be >= 2")
        self._session = session
        self._config = config
        # dict keeps insertion order; values are unused.
        self._seen: dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._seen

    def should_process(self, text: str, timestamp: float) -> bool:
        """Return True exactly once per (text, time bucket) that is not stale."""

        fingerprint = compute_fingerprint(text, timestamp, self._config.bucket_seconds)
        if fingerprint in self._seen:
            LOGGER.debug("Dedup skip (already processed): %s", text[:50])
            return False

        last_match_at = self._session.last_match_at
        if last_match_at is not None and timestamp < last_match_at - self._config.staleness_seconds:
            LOGGER.debug("Dedup skip (stale by %.0fs): %s", last_match_at - timestamp, text[:50])
            return False

        self._seen[fingerprint] = None
        if len(self._seen) > self._config.cap:
            self._evict()
        return True

    def clear(self) -> None:
        self._seen.clear()

    def _evict(self) -> None:
        before = len(self._seen)
        keep = list(self._seen)[before // 2 :]
        self._seen = dict.fromkeys(keep)
        LOGGER.debug("Dedup cache evicted %s fingerprints (kept %s)", before - len(keep), len(keep))
