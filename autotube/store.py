"""SQLite persistence for productions, the publish schedule, settings, and events."""

import json
import sqlite3
import threading
from datetime import datetime, timedelta
from pathlib import Path

from .config import BACKUPS_DIR, DB_PATH, iso_utc, utc_now
from .log import get_logger
from .models import ProductionItem, PublishEntry, PUBLISHED, PUBLISHING, SCHEDULED

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS productions (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'processing',
        priority INTEGER NOT NULL DEFAULT 50,
        scheduled_publish_time TEXT,
        current_stage TEXT,
        brief TEXT NOT NULL,
        artifacts TEXT,
        timeline TEXT,
        error TEXT,
        created_at TEXT NOT NULL,
        ready_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS publish_schedule (
        id TEXT PRIMARY KEY,
        production_id TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        publish_time TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'scheduled',
        priority INTEGER NOT NULL DEFAULT 50,
        metadata TEXT,
        external_id TEXT,
        url TEXT,
        published_at TEXT,
        error TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (production_id) REFERENCES productions(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_schedule_due ON publish_schedule(status, publish_time)",
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS automation_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_type TEXT NOT NULL,
        status TEXT NOT NULL,
        data TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS analytics_reports (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entry_id TEXT NOT NULL,
        external_id TEXT,
        title TEXT,
        views INTEGER DEFAULT 0,
        likes INTEGER DEFAULT 0,
        comments INTEGER DEFAULT 0,
        performance_score INTEGER DEFAULT 0,
        grade TEXT,
        analyzed_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_analytics_time ON analytics_reports(analyzed_at)",
]


def _loads(raw, default):
    if not raw:
        return default
    return json.loads(raw)


class Store:
    """One SQLite connection shared by the pipeline, queue, and scheduler.

    All statements run under a re-entrant lock, so scheduler worker threads
    never interleave a stage write with a status-transition write.
    """

    def __init__(self, path: Path | str = DB_PATH):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            for stmt in SCHEMA:
                self._conn.execute(stmt)

    # ─────────────────────────────────────────────────
    # Low-level helpers
    # ─────────────────────────────────────────────────
    def _execute(self, sql: str, params=()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    def _all(self, sql: str, params=()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _one(self, sql: str, params=()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def ping(self) -> bool:
        try:
            self._one("SELECT 1")
            return True
        except sqlite3.Error:
            return False

    def close(self):
        with self._lock:
            self._conn.close()

    # ─────────────────────────────────────────────────
    # Productions
    # ─────────────────────────────────────────────────
    def save_production(self, item: ProductionItem):
        d = item.to_dict()
        self._execute(
            """
            INSERT INTO productions (
                id, title, status, priority, scheduled_publish_time, current_stage,
                brief, artifacts, timeline, error, created_at, ready_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                status = excluded.status,
                priority = excluded.priority,
                scheduled_publish_time = excluded.scheduled_publish_time,
                current_stage = excluded.current_stage,
                artifacts = excluded.artifacts,
                timeline = excluded.timeline,
                error = excluded.error,
                ready_at = excluded.ready_at
            """,
            (
                d["id"], d["title"], d["status"], d["priority"],
                d["scheduled_publish_time"], d["current_stage"],
                json.dumps(d["brief"], ensure_ascii=False),
                json.dumps(d["artifacts"], ensure_ascii=False),
                json.dumps(d["timeline"]),
                d["error"], d["created_at"], d["ready_at"],
            ),
        )

    @staticmethod
    def _production_from_row(row: sqlite3.Row) -> ProductionItem:
        return ProductionItem.from_dict({
            "id": row["id"],
            "status": row["status"],
            "priority": row["priority"],
            "scheduled_publish_time": row["scheduled_publish_time"],
            "current_stage": row["current_stage"],
            "brief": _loads(row["brief"], {}),
            "artifacts": _loads(row["artifacts"], {}),
            "timeline": _loads(row["timeline"], {}),
            "error": row["error"],
            "created_at": row["created_at"],
            "ready_at": row["ready_at"],
        })

    def get_production(self, production_id: str) -> ProductionItem | None:
        row = self._one("SELECT * FROM productions WHERE id = ?", (production_id,))
        return self._production_from_row(row) if row else None

    def list_productions(self, status: str | None = None) -> list[ProductionItem]:
        sql = "SELECT * FROM productions"
        params = ()
        if status:
            sql += " WHERE status = ?"
            params = (status,)
        sql += " ORDER BY priority DESC, created_at ASC, rowid ASC"
        return [self._production_from_row(r) for r in self._all(sql, params)]

    # ─────────────────────────────────────────────────
    # Publish schedule
    # ─────────────────────────────────────────────────
    def insert_entry(self, entry: PublishEntry):
        """Insert a new entry; a second entry for one production raises IntegrityError."""
        self._execute(
            """
            INSERT INTO publish_schedule (
                id, production_id, title, publish_time, status, priority,
                metadata, external_id, url, published_at, error, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id, entry.production_id, entry.title, entry.publish_time,
                entry.status, entry.priority,
                json.dumps(entry.metadata, ensure_ascii=False),
                entry.external_id, entry.url, entry.published_at, entry.error,
                entry.created_at,
            ),
        )

    def update_entry(self, entry: PublishEntry):
        self._execute(
            """
            UPDATE publish_schedule SET
                publish_time = ?, status = ?, priority = ?, external_id = ?,
                url = ?, published_at = ?, error = ?
            WHERE id = ?
            """,
            (
                entry.publish_time, entry.status, entry.priority, entry.external_id,
                entry.url, entry.published_at, entry.error, entry.id,
            ),
        )

    def claim_entry(self, entry_id: str, from_statuses=(SCHEDULED,)) -> bool:
        """Atomically move an entry to 'publishing'. False if another writer got there first."""
        marks = ", ".join("?" for _ in from_statuses)
        cur = self._execute(
            f"UPDATE publish_schedule SET status = ? WHERE id = ? AND status IN ({marks})",
            (PUBLISHING, entry_id, *from_statuses),
        )
        return cur.rowcount == 1

    @staticmethod
    def _entry_from_row(row: sqlite3.Row) -> PublishEntry:
        data = dict(row)
        data["metadata"] = _loads(data.get("metadata"), {})
        return PublishEntry.from_dict(data)

    def get_entry(self, entry_id: str) -> PublishEntry | None:
        row = self._one("SELECT * FROM publish_schedule WHERE id = ?", (entry_id,))
        return self._entry_from_row(row) if row else None

    def get_entry_for_production(self, production_id: str) -> PublishEntry | None:
        row = self._one(
            "SELECT * FROM publish_schedule WHERE production_id = ?", (production_id,)
        )
        return self._entry_from_row(row) if row else None

    def entries(self, status: str | None = None) -> list[PublishEntry]:
        sql = "SELECT * FROM publish_schedule"
        params = ()
        if status:
            sql += " WHERE status = ?"
            params = (status,)
        sql += " ORDER BY publish_time ASC, rowid ASC"
        return [self._entry_from_row(r) for r in self._all(sql, params)]

    def active_entries(self) -> list[PublishEntry]:
        """Entries still held by the in-memory queue: scheduled, paused, failed."""
        rows = self._all(
            """
            SELECT * FROM publish_schedule
            WHERE status IN ('scheduled', 'paused', 'failed')
            ORDER BY publish_time ASC, rowid ASC
            """
        )
        return [self._entry_from_row(r) for r in rows]

    def due_entries(self, now: datetime | None = None) -> list[PublishEntry]:
        """Scheduled entries whose publish time is at or before now (indexed)."""
        now = now or utc_now()
        rows = self._all(
            """
            SELECT * FROM publish_schedule
            WHERE status = ? AND publish_time <= ?
            ORDER BY publish_time ASC, rowid ASC
            """,
            (SCHEDULED, iso_utc(now)),
        )
        return [self._entry_from_row(r) for r in rows]

    def upcoming_entries(self, now: datetime | None = None, days: int = 7) -> list[PublishEntry]:
        now = now or utc_now()
        rows = self._all(
            """
            SELECT * FROM publish_schedule
            WHERE status = ? AND publish_time BETWEEN ? AND ?
            ORDER BY publish_time ASC, rowid ASC
            """,
            (SCHEDULED, iso_utc(now), iso_utc(now + timedelta(days=days))),
        )
        return [self._entry_from_row(r) for r in rows]

    def recently_published(self, now: datetime | None = None, days: int = 7) -> list[PublishEntry]:
        now = now or utc_now()
        rows = self._all(
            """
            SELECT * FROM publish_schedule
            WHERE status = ? AND published_at >= ?
            ORDER BY published_at DESC
            """,
            (PUBLISHED, iso_utc(now - timedelta(days=days))),
        )
        return [self._entry_from_row(r) for r in rows]

    # ─────────────────────────────────────────────────
    # Settings + automation events
    # ─────────────────────────────────────────────────
    def get_setting(self, key: str, default: str | None = None) -> str | None:
        row = self._one("SELECT value FROM settings WHERE key = ?", (key,))
        return row["value"] if row else default

    def set_setting(self, key: str, value: str):
        self._execute(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, str(value), iso_utc(utc_now())),
        )

    def log_event(self, event_type: str, status: str, data: dict | None = None):
        self._execute(
            "INSERT INTO automation_events (event_type, status, data, created_at) VALUES (?, ?, ?, ?)",
            (event_type, status, json.dumps(data or {}, default=str), iso_utc(utc_now())),
        )

    def recent_events(self, limit: int = 20, event_type: str | None = None) -> list[dict]:
        sql = "SELECT * FROM automation_events"
        params: tuple = ()
        if event_type:
            sql += " WHERE event_type = ?"
            params = (event_type,)
        sql += " ORDER BY id DESC LIMIT ?"
        rows = self._all(sql, params + (limit,))
        return [{**dict(r), "data": _loads(r["data"], {})} for r in rows]

    def clean_old_events(self, now: datetime | None = None, days: int = 90) -> int:
        now = now or utc_now()
        cur = self._execute(
            "DELETE FROM automation_events WHERE created_at < ?",
            (iso_utc(now - timedelta(days=days)),),
        )
        return cur.rowcount

    # ─────────────────────────────────────────────────
    # Analytics
    # ─────────────────────────────────────────────────
    def save_analytics(self, report: dict):
        self._execute(
            """
            INSERT INTO analytics_reports (
                entry_id, external_id, title, views, likes, comments,
                performance_score, grade, analyzed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                report["entry_id"], report.get("external_id"), report.get("title"),
                report.get("views", 0), report.get("likes", 0), report.get("comments", 0),
                report.get("performance_score", 0), report.get("grade"),
                report.get("analyzed_at") or iso_utc(utc_now()),
            ),
        )

    def recent_analytics(self, now: datetime | None = None, days: int = 7) -> list[dict]:
        now = now or utc_now()
        rows = self._all(
            """
            SELECT * FROM analytics_reports WHERE analyzed_at >= ?
            ORDER BY performance_score DESC, analyzed_at DESC
            """,
            (iso_utc(now - timedelta(days=days)),),
        )
        return [dict(r) for r in rows]

    def clean_old_analytics(self, now: datetime | None = None, days: int = 90) -> int:
        now = now or utc_now()
        cur = self._execute(
            "DELETE FROM analytics_reports WHERE analyzed_at < ?",
            (iso_utc(now - timedelta(days=days)),),
        )
        return cur.rowcount

    # ─────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────
    def backup(self, dest_dir: Path = BACKUPS_DIR) -> Path:
        """Copy the live database with SQLite's online backup API."""
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / f"backup_{utc_now():%Y%m%d_%H%M%S}.db"
        target = sqlite3.connect(str(dest))
        try:
            with self._lock:
                self._conn.backup(target)
        finally:
            target.close()
        get_logger().info("Database backed up to: %s", dest)
        return dest

    def stats(self) -> dict:
        def count(sql, params=()):
            return self._one(sql, params)[0]

        stats = {
            "productions": count("SELECT COUNT(*) FROM productions"),
            "scheduled": count("SELECT COUNT(*) FROM publish_schedule WHERE status = 'scheduled'"),
            "published": count("SELECT COUNT(*) FROM publish_schedule WHERE status = 'published'"),
            "failed": count("SELECT COUNT(*) FROM publish_schedule WHERE status = 'failed'"),
            "analytics": count("SELECT COUNT(*) FROM analytics_reports"),
            "events": count("SELECT COUNT(*) FROM automation_events"),
        }
        if self.path != ":memory:" and Path(self.path).exists():
            stats["db_size_mb"] = round(Path(self.path).stat().st_size / 1024 / 1024, 2)
        return stats
