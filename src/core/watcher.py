"""Incremental change observation on the located transcript root."""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

from core.errors import ContextLostError
from core.models import CandidateText, NodeSnapshot, ScanReport
from core.ports import ContentTree, NodeRef, Subscription
from core.processor import TextPipeline
from core.session import MonitorSession

LOGGER = logging.getLogger(__name__)


def _candidate_nodes(node: NodeSnapshot) -> List[NodeSnapshot]:
    # A message node with its own text stands for its whole subtree; nested
    # message nodes are only read when the added node carries no text.
    if node.is_message and (node.text or node.fallback_text):
        return [node]
    return list(node.descendants)


def extract_candidates(
    nodes: Iterable[NodeSnapshot],
    timestamp: float,
    observed_at: Optional[datetime] = None,
) -> List[CandidateText]:
    """Flatten added nodes into non-empty candidate texts, in delivery order."""

    observed_at = observed_at or datetime.now()
    candidates: List[CandidateText] = []
    for node in nodes:
        for item in _candidate_nodes(node):
            text = item.text or item.fallback_text
            if not text:
                continue
            candidates.append(
                CandidateText(
                    text=text,
                    node_id=item.node_id,
                    sender_hint=item.sender_hint,
                    timestamp=timestamp,
                    observed_at=observed_at,
                )
            )
    return candidates


class MutationWatcher:
    """Own the single "nodes added" subscription and feed the pipeline.

    The watcher does not know about keywords or notifications; it only turns
    batches into candidates and hands them to the pipeline.
    """

    def __init__(
        self,
        session: MonitorSession,
        tree: ContentTree,
        pipeline: TextPipeline,
        on_context_lost: Optional[Callable[[], None]] = None,
    ) -> None:
        self._session = session
        self._tree = tree
        self._pipeline = pipeline
        self.on_context_lost = on_context_lost

    async def attach(self, root: NodeRef) -> Optional[Subscription]:
        """Subscribe under ``root``; returns None if the session moved on meanwhile."""

        self._session.release_watcher()
        epoch = self._session.epoch
        handle = await self._tree.subscribe(root, functools.partial(self.handle_batch, epoch=epoch))
        if epoch != self._session.epoch:
            handle.release()
            return None
        self._session.bind_watcher(handle)
        LOGGER.info("Observer started on %s", root.selector)
        return handle

    async def handle_batch(self, nodes: Sequence[NodeSnapshot], epoch: Optional[int] = None) -> ScanReport:
        """Process one batch; batches from a subscription bound at an older epoch are ignored."""

        report = ScanReport(reason="mutation")
        if epoch is None:
            epoch = self._session.epoch
        if not self._session.is_current(epoch):
            return report

        self._session.confirm_heartbeat()
        try:
            candidates = extract_candidates(nodes, self._session.now())
            if not candidates:
                return report
            report = await self._pipeline.process_all(candidates, epoch, reason="mutation")
        except ContextLostError as exc:
            LOGGER.info("Context lost while processing a mutation batch: %s", exc)
            if self.on_context_lost is not None:
                self.on_context_lost()
        except Exception:
            LOGGER.exception("Error in mutation batch")
        if report.matches:
            LOGGER.debug("Mutation batch: %s candidates, %s matches", len(report.outcomes), len(report.matches))
        return report
