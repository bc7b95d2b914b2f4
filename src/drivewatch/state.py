"""Durable key-value state: watermark property, TTL cache and tick lease."""
from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime
from pathlib import Path

from .errors import PersistenceFailure
from .util import format_watermark, parse_timestamp

log = logging.getLogger(__name__)

LAST_CHECK_TIME_KEY = "lastCheckTime"


class StateStore:
    def __init__(self, db_path: Path, clock=time.time) -> None:
        self.db_path = db_path
        self.clock = clock
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.ensure_schema()

    def close(self) -> None:
        self.conn.close()

    def ensure_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS properties(
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS cache(
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL,
              expires_at REAL NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS leases(
              name TEXT PRIMARY KEY,
              holder TEXT NOT NULL,
              expires_at REAL NOT NULL
            )
            """
        )
        self.conn.commit()

    # properties

    def get_property(self, key: str) -> str | None:
        cur = self.conn.execute("SELECT value FROM properties WHERE key = ?", (key,))
        row = cur.fetchone()
        return row["value"] if row else None

    def set_property(self, key: str, value: str) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO properties(key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )

    def delete_property(self, key: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM properties WHERE key = ?", (key,))

    # cache

    def cache_get(self, key: str) -> str | None:
        cur = self.conn.execute("SELECT value, expires_at FROM cache WHERE key = ?", (key,))
        row = cur.fetchone()
        if row is None:
            return None
        if row["expires_at"] <= self.clock():
            self.cache_remove(key)
            return None
        return row["value"]

    def cache_put(self, key: str, value: str, ttl_seconds: float) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO cache(key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                  value=excluded.value,
                  expires_at=excluded.expires_at
                """,
                (key, value, self.clock() + ttl_seconds),
            )

    def cache_remove(self, key: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM cache WHERE key = ?", (key,))

    # leases

    def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        """Take the named lease unless another holder has an unexpired one."""
        now = self.clock()
        with self.conn:
            self.conn.execute("DELETE FROM leases WHERE name = ? AND expires_at <= ?", (name, now))
            cur = self.conn.execute(
                "INSERT OR IGNORE INTO leases(name, holder, expires_at) VALUES (?, ?, ?)",
                (name, holder, now + ttl_seconds),
            )
            return cur.rowcount == 1

    def release_lease(self, name: str, holder: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM leases WHERE name = ? AND holder = ?", (name, holder))


class WatermarkStore:
    """Last processed modification time, one durable property."""

    def __init__(self, store: StateStore, key: str = LAST_CHECK_TIME_KEY) -> None:
        self.store = store
        self.key = key

    def get(self) -> datetime | None:
        raw = self.store.get_property(self.key)
        if raw is None:
            return None
        try:
            return parse_timestamp(raw)
        except ValueError:
            log.warning(f"Ignoring unparseable {self.key} value: {raw!r}")
            return None

    def set(self, value: datetime) -> None:
        try:
            self.store.set_property(self.key, format_watermark(value))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to persist {self.key}: {exc}") from exc

    def clear(self) -> None:
        self.store.delete_property(self.key)
