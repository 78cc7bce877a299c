from __future__ import annotations

import asyncio
from datetime import datetime

from core.config import DedupConfig, NotificationConfig
from core.dedup import DedupCache
from core.errors import HostTreeError
from core.keywords import KeywordSource
from core.models import NodeSnapshot, Phase, PipelineOutcome
from core.processor import TextPipeline
from core.scanner import FullScanFallback
from core.session import MonitorSession
from core.watcher import MutationWatcher, extract_candidates

from fakes import FakeNode, FakeNotifier, FakeStore, FakeTree, ManualClock, message


class _Parts:
    def __init__(self, tree: FakeTree, store: FakeStore, notifier: FakeNotifier) -> None:
        self.session = MonitorSession(max_retries=5, clock=ManualClock())
        self.session.set_phase(Phase.ACTIVE)
        self.dedup = DedupCache(self.session, DedupConfig())
        keywords = KeywordSource(self.session, store, ttl=5.0)
        self.pipeline = TextPipeline(self.session, self.dedup, keywords, notifier, NotificationConfig())
        self.watcher = MutationWatcher(self.session, tree, self.pipeline)
        self.scanner = FullScanFallback(self.session, tree, self.pipeline)


def test_extract_candidates_prefers_node_text_over_descendants() -> None:
    wrapper = NodeSnapshot(
        node_id="wrap",
        text="Today",
        is_message=False,
        descendants=(message("first", node_id="m1", sender="bob"), message("second", node_id="m2")),
    )
    bubble = NodeSnapshot(
        node_id="b1",
        text="Alice urgent: db is down",
        is_message=True,
        descendants=(message("urgent: db is down", node_id="t1"),),
    )
    fallback = NodeSnapshot(node_id="m3", text="", is_message=True, fallback_text="from fallback")
    empty_bubble = NodeSnapshot(node_id="b2", text="", is_message=True, descendants=(message("inner"),))
    blank = message("", node_id="m4")

    candidates = extract_candidates([wrapper, bubble, fallback, empty_bubble, blank], 5.0, datetime(2024, 1, 1))

    assert [c.text for c in candidates] == ["first", "second", "Alice urgent: db is down", "from fallback", "inner"]
    assert candidates[0].sender_hint == "bob"
    assert {c.timestamp for c in candidates} == {5.0}


def test_node_from_page_payload() -> None:
    node = NodeSnapshot.from_dict(
        {
            "nodeId": "7",
            "text": "  hello ",
            "isMessage": True,
            "senderHint": "",
            "descendants": [{"nodeId": "8", "text": "child", "isMessage": True}],
        }
    )
    assert node.text == "hello"
    assert node.sender_hint is None
    assert node.descendants[0].node_id == "8"


def test_attach_keeps_a_single_live_subscription() -> None:
    tree = FakeTree()
    parts = _Parts(tree, FakeStore(["urgent"]), FakeNotifier())

    async def scenario() -> None:
        await parts.watcher.attach(FakeNode(".bubbles"))
        await parts.watcher.attach(FakeNode(".bubbles"))

    asyncio.run(scenario())

    assert len(tree.subscriptions) == 2
    assert tree.subscriptions[0].released
    assert tree.live_subscriptions == [tree.subscriptions[1]]
    assert parts.session.watcher is tree.subscriptions[1]


def test_batch_matches_and_confirms_heartbeat() -> None:
    tree = FakeTree()
    notifier = FakeNotifier()
    parts = _Parts(tree, FakeStore(["urgent"]), notifier)
    clock = parts.session.clock

    async def scenario():
        await parts.watcher.attach(FakeNode(".bubbles"))
        clock.advance(30)
        return await tree.push([message("URGENT: restart db"), message("nothing here")])

    reports = asyncio.run(scenario())

    assert len(reports[0].matches) == 1
    assert len(notifier.sent) == 1
    assert parts.session.last_heartbeat_at == clock()


def test_batch_is_ignored_when_not_active() -> None:
    tree = FakeTree()
    notifier = FakeNotifier()
    parts = _Parts(tree, FakeStore(["urgent"]), notifier)
    parts.session.set_phase(Phase.IDLE)

    report = asyncio.run(parts.watcher.handle_batch([message("urgent")]))

    assert report.outcomes == []
    assert notifier.sent == []


def test_batch_survives_keyword_store_errors() -> None:
    class BrokenStore(FakeStore):
        async def get_keywords(self) -> list[str]:
            raise RuntimeError("corrupt")

    notifier = FakeNotifier()
    parts = _Parts(FakeTree(), BrokenStore(), notifier)

    report = asyncio.run(parts.watcher.handle_batch([message("urgent a"), message("urgent b")]))

    assert report.errors == 2
    assert notifier.sent == []


def test_full_scan_shares_dedup_with_watcher() -> None:
    tree = FakeTree(messages=[message("server down in eu-west")])
    notifier = FakeNotifier()
    parts = _Parts(tree, FakeStore(["server down"]), notifier)

    async def scenario():
        await parts.watcher.handle_batch([message("server down in eu-west")])
        return await parts.scanner.scan("periodic")

    report = asyncio.run(scenario())

    assert report.outcomes[0].status == PipelineOutcome.DUPLICATE
    assert len(notifier.sent) == 1
    assert parts.session.last_full_scan_at is not None


def test_full_scan_skips_unreadable_page() -> None:
    class ClosedTree(FakeTree):
        async def snapshot_messages(self):
            raise HostTreeError("page closed")

    parts = _Parts(ClosedTree(), FakeStore(["x"]), FakeNotifier())

    report = asyncio.run(parts.scanner.scan("periodic"))

    assert report.outcomes == []
    assert parts.session.last_full_scan_at is None


def test_periodic_scan_waits_for_visibility() -> None:
    tree = FakeTree(messages=[message("urgent")])
    tree.visible = False
    notifier = FakeNotifier()
    parts = _Parts(tree, FakeStore(["urgent"]), notifier)

    asyncio.run(parts.scanner.periodic())
    assert notifier.sent == []

    tree.visible = True
    asyncio.run(parts.scanner.periodic())
    assert len(notifier.sent) == 1


def test_batches_from_a_replaced_subscription_are_ignored() -> None:
    tree = FakeTree()
    notifier = FakeNotifier()
    parts = _Parts(tree, FakeStore(["urgent"]), notifier)

    async def scenario():
        await parts.watcher.attach(FakeNode(".bubbles"))
        parts.session.invalidate()
        await parts.watcher.attach(FakeNode(".bubbles"))
        old, new = tree.subscriptions
        late = await old.on_batch([message("urgent: from the old observer")])
        fresh = await new.on_batch([message("urgent: from the new observer")])
        return late, fresh

    late, fresh = asyncio.run(scenario())

    assert late.outcomes == []
    assert len(fresh.matches) == 1
    assert len(notifier.sent) == 1
