from __future__ import annotations

import asyncio

import pytest

from adapters.sqlite_store import SQLiteKeywordStore
from core.errors import ContextLostError


def test_keywords_round_trip_in_order(tmp_path) -> None:
    store = SQLiteKeywordStore(str(tmp_path / "periscope.db"))
    store.init_db()
    assert not store.has_keywords()

    store.set_keywords(["urgent", "  ", "server down"])

    assert store.has_keywords()
    assert asyncio.run(store.get_keywords()) == ["urgent", "server down"]

    store.set_keywords(["only"])
    assert store.read_keywords() == ["only"]


def test_active_flag_defaults_off(tmp_path) -> None:
    store = SQLiteKeywordStore(str(tmp_path / "periscope.db"))
    store.init_db()
    assert store.get_active() is False

    store.set_active(True)
    assert store.get_active() is True
    store.set_active(False)
    assert store.get_active() is False


def test_ping(tmp_path) -> None:
    store = SQLiteKeywordStore(str(tmp_path / "periscope.db"))
    store.init_db()
    assert asyncio.run(store.ping()) is True


def test_missing_schema_reads_as_context_loss(tmp_path) -> None:
    store = SQLiteKeywordStore(str(tmp_path / "empty.db"))

    with pytest.raises(ContextLostError):
        store.read_keywords()
    with pytest.raises(ContextLostError):
        asyncio.run(store.ping())
    assert store.get_active() is False
