"""Core text processing pipeline.

The pipeline enforces a strict order for every candidate text:
1) Clean the raw text into its canonical form
2) Fast-exit for empty results
3) Content-level dedup (fingerprint + staleness)
4) Keyword matching
5) Drop the result if the monitor was stopped or restarted meanwhile
6) Dispatch one notification

This module is integration-agnostic. It only relies on ports for keywords
and notifications, and reports each candidate as a PipelineOutcome instead of
raising.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from core.config import NotificationConfig
from core.dedup import DedupCache
from core.errors import ContextLostError, PipelineError
from core.keywords import KeywordSource
from core.matcher import match
from core.models import CandidateText, MatchResult, Notification, PipelineOutcome, ScanReport
from core.normalizer import clean_message_text
from core.ports import NotifierPort
from core.session import MonitorSession

LOGGER = logging.getLogger(__name__)

UNKNOWN_SENDER = "Unknown Sender"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def build_notification(result: MatchResult, config: NotificationConfig) -> Notification:
    """Turn a match into the {title, body, require_interaction} request."""

    observed_at = result.observed_at or datetime.now()
    timestamp = observed_at.astimezone().strftime("%H:%M:%S %d-%m-%Y")
    lines = [
        f"From: {result.sender_hint or UNKNOWN_SENDER}",
        f"Keyword: {result.matched_keyword}",
        f"Message: {_truncate(result.normalized_text, config.snippet_chars)}",
        f"Time: {timestamp}",
    ]
    return Notification(
        title=config.title,
        body="\n".join(lines),
        require_interaction=config.require_interaction,
    )


class TextPipeline:
    """Orchestrates cleanup, dedup, matching and notification dispatch."""

    def __init__(
        self,
        session: MonitorSession,
        dedup: DedupCache,
        keywords: KeywordSource,
        notifier: NotifierPort,
        notification_config: NotificationConfig,
        on_context_lost: Optional[Callable[[], None]] = None,
    ) -> None:
        self._session = session
        self._dedup = dedup
        self._keywords = keywords
        self._notifier = notifier
        self._notification_config = notification_config
        self.on_context_lost = on_context_lost

    async def process(self, candidate: CandidateText, epoch: int) -> PipelineOutcome:
        """Process one candidate text through the pipeline."""

        try:
            normalized = clean_message_text(candidate.text)
        except PipelineError as exc:
            LOGGER.debug("Skipping malformed candidate from %s: %s", candidate.node_id or "?", exc)
            return PipelineOutcome(PipelineOutcome.ERROR, candidate=candidate, error=exc)

        if not normalized:
            return PipelineOutcome(PipelineOutcome.EMPTY, candidate=candidate)

        if not self._dedup.should_process(normalized, candidate.timestamp):
            return PipelineOutcome(PipelineOutcome.DUPLICATE, candidate=candidate)

        keywords = await self._keywords.get_keywords()
        result = match(
            normalized,
            keywords,
            timestamp=candidate.timestamp,
            sender_hint=candidate.sender_hint,
            observed_at=candidate.observed_at,
        )
        if result is None:
            return PipelineOutcome(PipelineOutcome.NO_MATCH, candidate=candidate)

        # The keyword read may have yielded to a stop or restart.
        if not self._session.is_current(epoch):
            LOGGER.debug("Dropping stale match for %r", result.matched_keyword)
            return PipelineOutcome(PipelineOutcome.DROPPED, candidate=candidate, match=result)

        LOGGER.info("Match found: %s | %s", result.matched_keyword, result.normalized_text[:100])
        self._session.last_match_at = result.timestamp
        self._session.matches_dispatched += 1
        await self._dispatch(result)
        return PipelineOutcome(PipelineOutcome.MATCHED, candidate=candidate, match=result)

    async def process_all(self, candidates: Iterable[CandidateText], epoch: int, reason: str) -> ScanReport:
        """Run candidates in order; one bad candidate never aborts the rest."""

        report = ScanReport(reason=reason)
        for candidate in candidates:
            try:
                outcome = await self.process(candidate, epoch)
            except Exception as exc:
                LOGGER.warning("Pipeline failed for candidate %s", candidate.node_id or "?", exc_info=True)
                outcome = PipelineOutcome(PipelineOutcome.ERROR, candidate=candidate, error=PipelineError(str(exc)))
            report.outcomes.append(outcome)
        return report

    async def _dispatch(self, result: MatchResult) -> None:
        notification = build_notification(result, self._notification_config)
        # Sends are not retried; the fingerprint is already recorded.
        try:
            await self._notifier.send(notification)
        except ContextLostError as exc:
            LOGGER.info("Notification channel unreachable: %s", exc)
            if self.on_context_lost is not None:
                self.on_context_lost()
        except Exception:
            LOGGER.exception("Error sending notification")
