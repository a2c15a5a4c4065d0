"""Key-value persistence for mission progress."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from .missions import HINT_LEVELS, Cursor

SCHEMA_VERSION = 1
KEY_PREFIX = "mission_progress_"


class ProgressStorage(Protocol):
    """Minimal key-value interface the session persists through."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage for tests and throwaway sessions."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class ProgressStore:
    """SQLite-backed key-value storage."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create the key-value table."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        now = datetime.now(UTC).isoformat()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )

    def delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        """Return stored keys starting with `prefix`, sorted."""
        rows = self._conn.execute(
            "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [str(row["key"]) for row in rows]

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


@dataclass(frozen=True)
class ProgressRecord:
    """Persisted progress for one adventure."""

    adventure_id: str
    cursor: Cursor
    hints_used: dict[str, int] = field(default_factory=dict)
    saved_at: str = ""


def progress_key(adventure_id: str) -> str:
    return f"{KEY_PREFIX}{adventure_id}"


def encode_progress(record: ProgressRecord) -> str:
    """Serialize a record to its JSON storage form."""
    saved_at = record.saved_at or datetime.now(UTC).isoformat()
    return json.dumps(
        {
            "adventure_id": record.adventure_id,
            "mission_index": record.cursor.mission_index,
            "task_index": record.cursor.task_index,
            "hints_used": dict(sorted(record.hints_used.items())),
            "saved_at": saved_at,
        }
    )


def decode_progress(raw: str, adventure_id: str) -> ProgressRecord:
    """Parse stored JSON; raise `ValueError` when the payload is malformed."""
    payload: object = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("Progress record must be a JSON object.")
    if payload.get("adventure_id") != adventure_id:
        raise ValueError(f"Progress record belongs to {payload.get('adventure_id')!r}, not {adventure_id!r}.")
    mission_index = _coerce_int(payload.get("mission_index"))
    task_index = _coerce_int(payload.get("task_index"))
    if mission_index is None or task_index is None:
        raise ValueError("Progress record needs integer mission_index and task_index.")

    hints_raw = payload.get("hints_used", {})
    if not isinstance(hints_raw, dict):
        raise ValueError("hints_used must be an object.")
    hints_used: dict[str, int] = {}
    for task_id, level_raw in hints_raw.items():
        level = _coerce_int(level_raw)
        if level is not None and level in HINT_LEVELS:
            hints_used[str(task_id)] = level

    saved_at = payload.get("saved_at", "")
    return ProgressRecord(
        adventure_id=adventure_id,
        cursor=Cursor(mission_index, task_index),
        hints_used=hints_used,
        saved_at=saved_at if isinstance(saved_at, str) else "",
    )


def _coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce a stored value to int."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default
