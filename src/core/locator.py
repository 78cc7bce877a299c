"""Container discovery over a prioritized selector list."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core.errors import ContainerNotFound, HostTreeError
from core.ports import ContentTree, NodeRef
from core.retry import Retryable, Sleep

LOGGER = logging.getLogger(__name__)


class ContainerLocator:
    """Find the transcript root, most specific selector first."""

    def __init__(
        self,
        tree: ContentTree,
        selectors: Sequence[str],
        attempts: int,
        delay: float,
        sleep: Optional[Sleep] = None,
    ) -> None:
        if not selectors:
            raise ValueError("at least one container selector is required")
        self._tree = tree
        self._selectors = tuple(selectors)
        kwargs = {"sleep": sleep} if sleep is not None else {}
        self._retry: Retryable[NodeRef] = Retryable("Container lookup", attempts, delay, **kwargs)

    @property
    def selectors(self) -> tuple[str, ...]:
        return self._selectors

    async def locate(self) -> NodeRef:
        """Return the first matching root or raise ContainerNotFound."""

        root = await self._retry.run(self._attempt)
        if root is None:
            raise ContainerNotFound(self._selectors, self._retry.attempts)
        return root

    async def _attempt(self, attempt: int) -> Optional[NodeRef]:
        for selector in self._selectors:
            try:
                root = await self._tree.query(selector)
            except HostTreeError as exc:
                # The page is mid-navigation; treat as a miss for this selector.
                LOGGER.debug("Container query %r failed: %s", selector, exc)
                continue
            if root is not None:
                LOGGER.info("Found chat container: %s (attempt %s)", selector, attempt)
                return root
        return None
