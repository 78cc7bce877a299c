"""Bounded retry helper shared by discovery, recovery and re-initialization."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class Retryable(Generic[T]):
    """Bounded attempts with a fixed delay between them.

    ``run`` drives the whole loop for short in-line waits (container lookup,
    store probes). ``consume``/``reset`` expose the same budget to callers
    that schedule their own timers, such as the monitor's retrying phase.
    An action "fails" by returning None or raising one of ``retry_on``.
    """

    def __init__(
        self,
        name: str,
        attempts: int,
        delay: float,
        *,
        retry_on: Tuple[Type[BaseException], ...] = (),
        on_exhausted: Optional[Callable[[], None]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.name = name
        self.attempts = attempts
        self.delay = delay
        self._retry_on = retry_on
        self._on_exhausted = on_exhausted
        self._sleep = sleep
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.used >= self.attempts

    @property
    def remaining(self) -> int:
        return max(self.attempts - self.used, 0)

    def reset(self) -> None:
        self.used = 0

    def consume(self) -> bool:
        """Record one failed attempt; return True while budget remains."""

        self.used += 1
        if self.exhausted:
            self._exhaust()
            return False
        return True

    async def run(self, action: Callable[[int], Awaitable[Optional[T]]]) -> Optional[T]:
        """Call ``action(attempt)`` until it yields a value or the budget ends."""

        self.reset()
        while True:
            attempt = self.used + 1
            try:
                result = await action(attempt)
            except self._retry_on as exc:
                LOGGER.debug("%s attempt %s/%s raised %s", self.name, attempt, self.attempts, exc)
                result = None
            if result is not None:
                return result
            self.used += 1
            if self.exhausted:
                self._exhaust()
                return None
            LOGGER.info("%s not ready, retry %s/%s", self.name, self.used, self.attempts)
            await self._sleep(self.delay)

    def _exhaust(self) -> None:
        LOGGER.info("%s gave up after %s attempts", self.name, self.attempts)
        if self._on_exhausted is not None:
            self._on_exhausted()
