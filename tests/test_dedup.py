from __future__ import annotations

import pytest

from core.config import DedupConfig
from core.dedup import DedupCache, compute_fingerprint, time_bucket
from core.session import MonitorSession


def _cache(**overrides) -> tuple[DedupCache, MonitorSession]:
    session = MonitorSession(max_retries=5, clock=lambda: 0.0)
    return DedupCache(session, DedupConfig(**overrides)), session


def test_same_text_in_same_bucket_is_processed_once() -> None:
    cache, _ = _cache()
    assert cache.should_process("server down", 120.0)
    assert not cache.should_process("server down", 150.0)
    assert not cache.should_process("  SERVER   down ", 170.0)
    assert len(cache) == 1


def test_same_text_in_a_later_bucket_is_processed_again() -> None:
    cache, _ = _cache()
    assert cache.should_process("server down", 10.0)
    assert cache.should_process("server down", 70.0)


def test_fingerprint_depends_on_text_and_bucket() -> None:
    assert time_bucket(59.9, 60) == 0
    assert time_bucket(60.0, 60) == 1
    assert compute_fingerprint("A  b", 1.0, 60) == compute_fingerprint("a b", 59.0, 60)
    assert compute_fingerprint("a b", 1.0, 60) != compute_fingerprint("a b", 61.0, 60)
    assert compute_fingerprint("a b", 1.0, 60) != compute_fingerprint("a c", 1.0, 60)


def test_stale_text_is_rejected_without_being_remembered() -> None:
    cache, session = _cache(staleness_seconds=300)
    session.last_match_at = 1000.0
    assert not cache.should_process("old news", 600.0)
    assert len(cache) == 0
    assert cache.should_process("fresh news", 800.0)


def test_staleness_is_ignored_before_the_first_match() -> None:
    cache, _ = _cache(staleness_seconds=1)
    assert cache.should_process("anything", 0.0)


def test_eviction_keeps_the_newest_half() -> None:
    cache, _ = _cache(cap=4)
    for index in range(5):
        assert cache.should_process(f"message {index}", 0.0)

    assert len(cache) <= 4
    assert compute_fingerprint("message 4", 0.0, 60) in cache
    assert compute_fingerprint("message 3", 0.0, 60) in cache
    assert compute_fingerprint("message 0", 0.0, 60) not in cache
    # Evicted content counts as new again.
    assert cache.should_process("message 0", 0.0)


def test_size_never_exceeds_cap() -> None:
    cache, _ = _cache(cap=10)
    for index in range(100):
        cache.should_process(f"line {index}", 0.0)
        assert len(cache) <= 10


def test_clear_forgets_everything() -> None:
    cache, _ = _cache()
    cache.should_process("server down", 0.0)
    cache.clear()
    assert len(cache) == 0
    assert cache.should_process("server down", 0.0)


def test_rejects_tiny_cap() -> None:
    session = MonitorSession(max_retries=1)
    with pytest.raises(ValueError):
        DedupCache(session, DedupConfig(cap=1))
