"""Ports (interfaces) used by the monitoring engine.

Ports define the minimal contracts for the host page, the keyword store and
notification adapters so that the core can be reused with different browsers
and backends.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol, Sequence

from core.models import NodeSnapshot, Notification

BatchHandler = Callable[[Sequence[NodeSnapshot]], Awaitable[object]]
PageEventHandler = Callable[[str], None]


class NodeRef(Protocol):
    """Opaque handle to a located container node."""

    selector: str


class Subscription(Protocol):
    """Live subscription to "nodes added" batches under one root."""

    @property
    def alive(self) -> bool:
        ...

    def release(self) -> None:
        """Stop delivering batches. Must take effect synchronously."""
        ...


class ContentTree(Protocol):
    """Read-only view of the host page plus mutation subscriptions.

    Query methods raise HostTreeError when the page cannot answer.
    """

    async def query(self, selector: str) -> Optional[NodeRef]:
        ...

    async def snapshot_messages(self) -> list[NodeSnapshot]:
        ...

    async def subscribe(self, root: NodeRef, on_batch: BatchHandler) -> Subscription:
        ...

    async def is_visible(self) -> bool:
        ...

    async def location(self) -> str:
        ...

    def add_event_listener(self, handler: PageEventHandler) -> None:
        """Receive page events: "visible", "online", "navigated"."""
        ...


class KeywordStore(Protocol):
    """Persistent keyed store owning the keyword list and the on/off flag.

    Read failures surface as ContextLostError.
    """

    async def get_keywords(self) -> list[str]:
        ...

    async def ping(self) -> bool:
        ...

    def get_active(self) -> bool:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the pipeline."""

    async def send(self, notification: Notification) -> None:
        ...
