"""Raw inbound event archive backing anti-delete recovery."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.utils.helpers import ensure_dir, get_archive_path

DEFAULT_RETENTION_DAYS = 30
PURGE_INTERVAL_SECONDS = 3600


class InboundArchive:
    """SQLite-backed archive keyed by chat_id/message_id.

    Every raw event is stored before any filtering happens; recording the
    same message twice overwrites the earlier row.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        self.db_path = db_path or (get_archive_path() / "inbound.db")
        self.retention_days = max(1, int(retention_days))
        ensure_dir(self.db_path.parent)

        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_schema()
        self._last_purge_at = 0.0

    def _create_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS inbound_events (
                    chat_id TEXT NOT NULL,
                    message_id TEXT NOT NULL,
                    participant TEXT,
                    from_me INTEGER NOT NULL DEFAULT 0,
                    message_type TEXT,
                    payload TEXT NOT NULL,
                    timestamp INTEGER,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (chat_id, message_id)
                )
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_inbound_events_created
                ON inbound_events (created_at)
                """
            )
            self._conn.commit()

    def record_inbound(self, raw_event: Any) -> None:
        """Upsert one raw event; events without a chat or message id are skipped."""
        if not isinstance(raw_event, Mapping):
            return
        key = raw_event.get("key") or {}
        chat_id = str(key.get("remoteJid") or "").strip()
        message_id = str(key.get("id") or "").strip()
        if not chat_id or not message_id:
            return

        message = raw_event.get("message") or {}
        message_type = next(iter(message), None) if isinstance(message, Mapping) else None
        timestamp = raw_event.get("messageTimestamp")
        created_at = datetime.now(UTC).isoformat()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO inbound_events (
                    chat_id, message_id, participant, from_me, message_type, payload, timestamp, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (chat_id, message_id) DO UPDATE SET
                    participant = excluded.participant,
                    from_me = excluded.from_me,
                    message_type = excluded.message_type,
                    payload = excluded.payload,
                    timestamp = excluded.timestamp
                """,
                (
                    chat_id,
                    message_id,
                    str(key["participant"]) if key.get("participant") else None,
                    1 if key.get("fromMe") else 0,
                    message_type,
                    json.dumps(raw_event, default=str, ensure_ascii=False),
                    int(timestamp) if isinstance(timestamp, (int, float)) else None,
                    created_at,
                ),
            )
            self._conn.commit()
            self._maybe_purge_locked()

    def lookup_message(self, chat_id: str, message_id: str) -> dict[str, Any] | None:
        """Return the archived raw event, e.g. to restore a deleted message."""
        if not chat_id or not message_id:
            return None
        with self._lock:
            row = self._conn.execute(
                """
                SELECT payload FROM inbound_events
                WHERE chat_id = ? AND message_id = ?
                LIMIT 1
                """,
                (str(chat_id), str(message_id)),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["payload"])

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM inbound_events").fetchone()
        return int(row["n"])

    def purge_older_than(self, days: int) -> int:
        cutoff = (datetime.now(UTC) - timedelta(days=max(1, int(days)))).isoformat()
        with self._lock:
            cur = self._conn.execute("DELETE FROM inbound_events WHERE created_at < ?", (cutoff,))
            self._conn.commit()
        return int(cur.rowcount or 0)

    def _maybe_purge_locked(self) -> None:
        now = time.monotonic()
        if now - self._last_purge_at < PURGE_INTERVAL_SECONDS:
            return
        self._last_purge_at = now
        try:
            deleted = self.purge_older_than(self.retention_days)
            if deleted:
                logger.debug(f"inbound archive purged {deleted} rows")
        except Exception as e:
            logger.warning(f"inbound archive purge failed: {e}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()
