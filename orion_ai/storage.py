"""
Persistent key-value storage backed by SQLite.

A tiny ``kv(key, value)`` table in ``Asset/orion.db`` plays the part of a
browser's localStorage: string keys, string values, synchronous access.
Higher layers store JSON documents under these keys:

* ``current-user``        — the logged-in username (plain string)
* ``users``               — ``{username: password}`` mapping
* ``history:<username>``  — JSON array of chat sessions

There is no schema versioning and no cross-process locking: two processes
writing the same key simply overwrite each other (last writer wins).
"""

import json
import logging
import sqlite3

from .errors import StorageUnavailable
from .paths import asset_path

log = logging.getLogger("orion_ai")

DB_PATH = asset_path("orion.db")

KEY_CURRENT_USER = "current-user"
KEY_USERS = "users"


def history_key(username: str) -> str:
    """Return the storage key holding *username*'s session list."""
    return f"history:{username}"


class KeyValueStore:
    """String → string store in a single SQLite table.

    Every public method raises :class:`StorageUnavailable` when the
    underlying database cannot be used.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or DB_PATH
        try:
            self._conn: sqlite3.Connection = sqlite3.connect(
                self._db_path, check_same_thread=False,
            )
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS kv ("
                " key   TEXT PRIMARY KEY,"
                " value TEXT NOT NULL)"
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StorageUnavailable(
                f"Cannot open storage at {self._db_path}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Raw string access
    # ------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key=?", (key,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot read {key!r}: {exc}") from exc
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, value),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot write {key!r}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM kv WHERE key=?", (key,))
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot remove {key!r}: {exc}") from exc

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def get_json(self, key: str, default=None):
        """Return the decoded JSON value at *key*.

        Missing keys and malformed JSON both return *default*.
        """
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            log.warning("[STORE] Malformed JSON under %r ignored.", key)
            return default

    def set_json(self, key: str, value) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
