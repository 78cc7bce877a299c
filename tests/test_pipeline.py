from __future__ import annotations

import asyncio
from datetime import datetime

from core.config import DedupConfig, NotificationConfig
from core.dedup import DedupCache
from core.keywords import KeywordSource
from core.models import CandidateText, MatchResult, Phase, PipelineOutcome
from core.processor import TextPipeline, build_notification
from core.session import MonitorSession

from fakes import FakeNotifier, FakeStore, ManualClock


def _pipeline(keywords=("urgent", "server down"), notifier=None):
    session = MonitorSession(max_retries=5, clock=ManualClock())
    session.set_phase(Phase.ACTIVE)
    dedup = DedupCache(session, DedupConfig())
    source = KeywordSource(session, FakeStore(keywords), ttl=5.0)
    notifier = notifier or FakeNotifier()
    pipeline = TextPipeline(session, dedup, source, notifier, NotificationConfig())
    return pipeline, session, notifier


def _candidate(text, sender=None, timestamp=1000.0) -> CandidateText:
    return CandidateText(
        text=text,
        node_id="n1",
        sender_hint=sender,
        timestamp=timestamp,
        observed_at=datetime(2024, 3, 5, 14, 7, 9),
    )


def test_match_dispatches_one_notification() -> None:
    pipeline, session, notifier = _pipeline()

    outcome = asyncio.run(pipeline.process(_candidate("Is the   server down?", sender="alice"), session.epoch))

    assert outcome.status == PipelineOutcome.MATCHED
    assert outcome.match.matched_keyword == "server down"
    assert len(notifier.sent) == 1
    body = notifier.sent[0].body
    assert "From: alice" in body
    assert "Keyword: server down" in body
    assert "Message: Is the server down?" in body
    assert session.last_match_at == 1000.0
    assert session.matches_dispatched == 1


def test_duplicate_text_is_not_notified_twice() -> None:
    pipeline, session, notifier = _pipeline()

    async def scenario():
        first = await pipeline.process(_candidate("urgent: disk full"), session.epoch)
        second = await pipeline.process(_candidate("urgent:  disk full"), session.epoch)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.matched
    assert second.status == PipelineOutcome.DUPLICATE
    assert len(notifier.sent) == 1


def test_empty_and_unmatched_texts() -> None:
    pipeline, session, notifier = _pipeline()

    async def scenario():
        empty = await pipeline.process(_candidate("  10:31 AM10:31 AM "), session.epoch)
        miss = await pipeline.process(_candidate("all good here"), session.epoch)
        return empty, miss

    empty, miss = asyncio.run(scenario())
    assert empty.status == PipelineOutcome.EMPTY
    assert miss.status == PipelineOutcome.NO_MATCH
    assert notifier.sent == []


def test_stale_epoch_drops_the_match() -> None:
    pipeline, session, notifier = _pipeline()
    epoch = session.epoch
    session.invalidate()

    outcome = asyncio.run(pipeline.process(_candidate("urgent"), epoch))

    assert outcome.status == PipelineOutcome.DROPPED
    assert notifier.sent == []
    assert session.matches_dispatched == 0


def test_notifier_failure_is_logged_not_raised() -> None:
    pipeline, session, _ = _pipeline(notifier=FakeNotifier(error=RuntimeError("smtp down")))

    outcome = asyncio.run(pipeline.process(_candidate("urgent"), session.epoch))

    assert outcome.matched


def test_process_all_isolates_bad_candidates() -> None:
    pipeline, session, notifier = _pipeline()
    candidates = [_candidate(None), _candidate("urgent one"), _candidate("server is down")]

    report = asyncio.run(pipeline.process_all(candidates, session.epoch, reason="test"))

    assert [outcome.status for outcome in report.outcomes] == [
        PipelineOutcome.ERROR,
        PipelineOutcome.MATCHED,
        PipelineOutcome.MATCHED,
    ]
    assert report.errors == 1
    assert len(report.matches) == 2
    assert len(notifier.sent) == 2


def test_build_notification_truncates_long_messages() -> None:
    result = MatchResult(
        normalized_text="x" * 150,
        matched_keyword="x",
        timestamp=0.0,
        observed_at=datetime(2024, 3, 5, 14, 7, 9),
    )

    notification = build_notification(result, NotificationConfig(snippet_chars=20))

    assert notification.title == "Keyword Match Found"
    assert notification.require_interaction
    lines = notification.body.split("\n")
    assert lines[0] == "From: Unknown Sender"
    assert lines[2] == "Message: " + "x" * 17 + "..."
    assert lines[3] == "Time: 14:07:09 05-03-2024"
