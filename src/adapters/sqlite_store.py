"""SQLite keyword store adapter.

Implements the core KeywordStore port using a simple SQLite database. The
external settings surface writes here; the engine only reads.
"""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from typing import Iterable

from core.errors import ContextLostError


class SQLiteKeywordStore:
    """Thin SQLite wrapper that satisfies the KeywordStore contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - keywords: ordered keyword list
        - flags: small key/value table for persisted switches (active)
        """

        with self._connect() as conn:
            # Fields:
            # - position: display/evaluation order (PRIMARY KEY)
            # - keyword: raw keyword as entered; phrases keep their spaces
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS keywords (
                    position INTEGER PRIMARY KEY,
                    keyword TEXT NOT NULL
                )
                """
            )
            # Fields:
            # - key: flag name (PRIMARY KEY)
            # - value: integer 0/1
            # - updated_at: last write, for debugging
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS flags (
                    key TEXT PRIMARY KEY,
                    value INTEGER NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

    def read_keywords(self) -> list[str]:
        """Return the keyword list in stored order."""

        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT keyword FROM keywords ORDER BY position").fetchall()
        except sqlite3.Error as exc:
            raise ContextLostError(f"Keyword store unavailable: {exc}") from exc
        return [row["keyword"] for row in rows]

    def set_keywords(self, keywords: Iterable[str]) -> None:
        """Replace the keyword list."""

        values = [(index, keyword.strip()) for index, keyword in enumerate(keywords) if keyword.strip()]
        with self._connect() as conn:
            conn.execute("DELETE FROM keywords")
            conn.executemany("INSERT INTO keywords (position, keyword) VALUES (?, ?)", values)

    def has_keywords(self) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM keywords LIMIT 1").fetchone()
        return row is not None

    def get_active(self) -> bool:
        """Return the persisted on/off switch (defaults to off)."""

        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM flags WHERE key = 'active'").fetchone()
        except sqlite3.Error:
            return False
        return bool(row["value"]) if row else False

    def set_active(self, active: bool) -> None:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO flags (key, value, updated_at)
                VALUES ('active', ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (int(active), now.isoformat()),
            )

    async def get_keywords(self) -> list[str]:
        return await asyncio.to_thread(self.read_keywords)

    async def ping(self) -> bool:
        def _ping() -> bool:
            try:
                with self._connect() as conn:
                    conn.execute("SELECT 1 FROM keywords LIMIT 1").fetchone()
            except sqlite3.Error as exc:
                raise ContextLostError(f"Keyword store unavailable: {exc}") from exc
            return True

        return await asyncio.to_thread(_ping)
