"""Periodic full re-scan of the transcript.

Mutation delivery is not complete: the host can swap whole subtrees without
the fine-grained "added" events the watcher expects. The full scan walks
every message node currently on the page and runs it through the same
pipeline and dedup cache, so content the watcher already handled stays
silent.
"""

from __future__ import annotations

import logging
from datetime import datetime

from core.errors import ContextLostError, HostTreeError
from core.models import Phase, ScanReport
from core.ports import ContentTree
from core.processor import TextPipeline
from core.session import MonitorSession
from core.watcher import extract_candidates

LOGGER = logging.getLogger(__name__)


class FullScanFallback:
    def __init__(self, session: MonitorSession, tree: ContentTree, pipeline: TextPipeline) -> None:
        self._session = session
        self._tree = tree
        self._pipeline = pipeline

    async def scan(self, reason: str) -> ScanReport:
        epoch = self._session.epoch
        try:
            nodes = await self._tree.snapshot_messages()
        except HostTreeError as exc:
            LOGGER.info("Full scan (%s) skipped, page not readable: %s", reason, exc)
            return ScanReport(reason=reason)

        candidates = extract_candidates(nodes, self._session.now(), datetime.now())
        report = await self._pipeline.process_all(candidates, epoch, reason=reason)
        if epoch == self._session.epoch:
            self._session.last_full_scan_at = self._session.now()
        LOGGER.info(
            "Scan complete (%s): scanned=%s, matched=%s, errors=%s",
            reason,
            len(candidates),
            len(report.matches),
            report.errors,
        )
        return report

    async def periodic(self) -> ScanReport:
        """Timer entry point: scan only while active and visible."""

        if self._session.phase is not Phase.ACTIVE:
            return ScanReport(reason="periodic")
        try:
            visible = await self._tree.is_visible()
        except (HostTreeError, ContextLostError) as exc:
            LOGGER.debug("Visibility check failed: %s", exc)
            return ScanReport(reason="periodic")
        if not visible:
            return ScanReport(reason="periodic")
        LOGGER.info("Performing periodic full scan")
        return await self.scan("periodic")
