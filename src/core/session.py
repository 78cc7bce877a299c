"""Process-wide state for one monitored page instance.

Every component receives the session explicitly; nothing in the core reads
module-level state.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from core.models import Phase
from core.ports import Subscription

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class MonitorSession:
    """Lifecycle phase, timestamps and the single live watcher handle."""

    def __init__(self, max_retries: int, clock: Clock = time.monotonic) -> None:
        self.clock = clock
        self.phase = Phase.IDLE
        self.retry_count = 0
        self.max_retries = max_retries
        now = clock()
        self.last_heartbeat_at = now
        self.last_full_scan_at: Optional[float] = None
        self.last_match_at: Optional[float] = None
        self.last_cache_reset_at = now
        self.location: Optional[str] = None
        self.matches_dispatched = 0
        # Bumped on every teardown so in-flight work can detect it went stale.
        self.epoch = 0
        self._watcher: Optional[Subscription] = None

    def now(self) -> float:
        return self.clock()

    def set_phase(self, phase: Phase) -> None:
        if phase is self.phase:
            return
        LOGGER.info("Monitor phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    @property
    def watcher(self) -> Optional[Subscription]:
        return self._watcher

    @property
    def watching(self) -> bool:
        return self._watcher is not None and self._watcher.alive

    def bind_watcher(self, handle: Subscription) -> None:
        """Take ownership of ``handle``, releasing any previous subscription."""

        if self._watcher is not None and self._watcher is not handle:
            LOGGER.debug("Releasing previous watcher before binding a new one")
            self.release_watcher()
        self._watcher = handle

    def release_watcher(self) -> None:
        handle, self._watcher = self._watcher, None
        if handle is not None:
            handle.release()

    def confirm_heartbeat(self) -> None:
        self.last_heartbeat_at = self.clock()

    def heartbeat_overdue(self, timeout: float) -> bool:
        return self.clock() - self.last_heartbeat_at > timeout

    def is_current(self, epoch: int) -> bool:
        """True when work started at ``epoch`` may still act on the page."""

        return epoch == self.epoch and self.phase in (Phase.INITIALIZING, Phase.ACTIVE)

    def invalidate(self) -> None:
        self.epoch += 1

    def status(self) -> dict:
        return {
            "phase": self.phase.value,
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
            "watching": self.watching,
            "lastHeartbeatAt": self.last_heartbeat_at,
            "lastFullScanAt": self.last_full_scan_at,
            "lastMatchAt": self.last_match_at,
            "matchesDispatched": self.matches_dispatched,
            "location": self.location,
        }
