"""Publish queue — time-ordered entries, drained sequentially to YouTube.

The in-memory list holds every entry that is still actionable (scheduled,
paused, or failed) sorted by publish time, ties broken by insertion order.
The store keeps the full history; published entries leave the list.
The list is re-read from the store before drains and operator actions, and
each upload first claims its entry with a conditional update, so a CLI and a
running scheduler can share one database without double uploads.
"""

import itertools
import sqlite3
import threading
from collections import Counter
from datetime import datetime, timedelta

from .config import AUTOMATION_DEFAULTS, iso_utc, parse_iso, utc_now
from .errors import ValidationError
from .log import get_logger, log
from .models import (
    FAILED, PAUSED, PUBLISHED, PUBLISHING, READY, SCHEDULED,
    ProductionItem, PublishEntry, new_id,
)
from .store import Store
from .upload import publish_production

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
ON_TIME_MINUTES = 5


def next_optimal_time(current: datetime, days: list[str], hours: list[int]) -> datetime | None:
    """Next slot on an optimal day and hour strictly after current.

    Returns None when current already sits on an optimal day and hour.
    """
    if not days or not hours:
        return None
    hours = sorted(hours)
    on_optimal_day = DAY_NAMES[current.weekday()] in days
    if on_optimal_day and current.hour in hours:
        return None

    if on_optimal_day:
        for hour in hours:
            if hour > current.hour:
                return current.replace(hour=hour, minute=0, second=0, microsecond=0)

    for i in range(1, 8):
        candidate = current + timedelta(days=i)
        if DAY_NAMES[candidate.weekday()] in days:
            return candidate.replace(hour=hours[0], minute=0, second=0, microsecond=0)
    return None


def publishing_frequency(published: list[PublishEntry]) -> str:
    if len(published) < 2:
        return "Insufficient data"
    dates = sorted(parse_iso(e.published_at) for e in published)
    span_days = max((dates[-1] - dates[0]).total_seconds() / 86400, 1.0)
    per_day = len(published) / span_days
    if per_day >= 1:
        return f"{per_day:.1f} videos per day"
    if per_day >= 0.14:
        return f"{per_day * 7:.1f} videos per week"
    return f"{per_day * 30:.1f} videos per month"


class PublishQueue:
    def __init__(
        self,
        store: Store,
        uploader=None,
        privacy_status: str = "private",
        optimal_days: list[str] | None = None,
        optimal_hours: list[int] | None = None,
    ):
        """
        uploader: callable(item, entry) -> {"external_id", "url"}; raises on failure.
        Defaults to the YouTube transport.
        """
        self.store = store
        self.privacy_status = privacy_status
        self.uploader = uploader or self._youtube_upload
        self.optimal_days = optimal_days or AUTOMATION_DEFAULTS["optimal_days"]
        self.optimal_hours = optimal_hours or AUTOMATION_DEFAULTS["optimal_hours"]
        self._lock = threading.RLock()
        self._seq = itertools.count()
        self._order: dict[str, int] = {}
        self._entries: list[PublishEntry] = []
        for entry in store.active_entries():
            self._add(entry)
        self._sort()

    def _youtube_upload(self, item: ProductionItem, entry: PublishEntry) -> dict:
        return publish_production(item, entry, privacy=self.privacy_status)

    # ─────────────────────────────────────────────────
    # In-memory ordering
    # ─────────────────────────────────────────────────
    def _add(self, entry: PublishEntry):
        self._order[entry.id] = next(self._seq)
        self._entries.append(entry)

    def _remove(self, entry_id: str):
        self._entries = [e for e in self._entries if e.id != entry_id]
        self._order.pop(entry_id, None)

    def _sort(self):
        self._entries.sort(key=lambda e: (e.publish_time, self._order[e.id]))

    def _find(self, ref: str) -> PublishEntry | None:
        for entry in self._entries:
            if entry.id == ref or entry.production_id == ref:
                return entry
        return None

    def _require(self, ref: str) -> PublishEntry:
        self.refresh()
        entry = self._find(ref)
        if entry is None:
            raise ValidationError(f"Content not found in publish queue: {ref}")
        return entry

    def _sync_production_time(self, entry: PublishEntry):
        item = self.store.get_production(entry.production_id)
        if item is not None and item.scheduled_publish_time != entry.publish_time:
            item.scheduled_publish_time = entry.publish_time
            self.store.save_production(item)

    def __len__(self):
        return len(self._entries)

    def entries(self) -> list[PublishEntry]:
        return list(self._entries)

    # ─────────────────────────────────────────────────
    # Core operations
    # ─────────────────────────────────────────────────
    def enqueue(
        self, item: ProductionItem, publish_time: str | None = None, now: datetime | None = None
    ) -> PublishEntry:
        """Schedule a ready item. Non-ready or already-queued items raise ValidationError."""
        if item.status != READY:
            raise ValidationError(f"Production {item.id} is {item.status}, not ready")
        if self.store.get_entry_for_production(item.id) is not None:
            raise ValidationError(f"Production {item.id} is already in the publish queue")

        now = now or utc_now()
        entry = PublishEntry(
            id=new_id("pub"),
            production_id=item.id,
            title=item.title,
            publish_time=iso_utc(parse_iso(publish_time or item.scheduled_publish_time)),
            priority=item.priority,
            created_at=iso_utc(now),
            metadata={
                "seo_title": item.brief.seo.title,
                "tags": item.brief.seo.tags,
                "simulated_stages": item.simulated_stages(),
            },
        )
        with self._lock:
            try:
                self.store.insert_entry(entry)
            except sqlite3.IntegrityError as e:
                raise ValidationError(f"Production {item.id} is already in the publish queue") from e
            self._add(entry)
            self._sort()
        log(f"Scheduled for publishing: {entry.title} at {entry.publish_time}")
        return entry

    def refresh(self):
        """Re-read actionable entries from the store.

        Other processes (the CLI next to a running scheduler) enqueue, pause
        and publish through their own queue; the store is the shared truth.
        Known entries are updated in place, new ones appended, and entries
        no longer actionable dropped.
        """
        with self._lock:
            stored = {e.id: e for e in self.store.active_entries()}
            for entry in list(self._entries):
                fresh = stored.pop(entry.id, None)
                if fresh is None:
                    self._remove(entry.id)
                    continue
                for name in ("status", "publish_time", "priority", "error", "external_id", "url", "published_at"):
                    setattr(entry, name, getattr(fresh, name))
            for entry in stored.values():
                self._add(entry)
            self._sort()

    def due_items(self, now: datetime | None = None):
        """Yield scheduled entries with publish_time <= now, earliest first."""
        cutoff = iso_utc(now or utc_now())
        for entry in list(self._entries):
            if entry.publish_time > cutoff:
                break
            if entry.status == SCHEDULED:
                yield entry

    def publish(self, entry: PublishEntry, now: datetime | None = None, force: bool = False) -> PublishEntry:
        """One upload attempt. Failures land on the entry, never raise.

        The entry is claimed in the store first, so only one process uploads
        it. Only scheduled entries are claimed unless force is set (operator
        publish of a paused or failed entry).
        """
        allowed = (SCHEDULED, PAUSED, FAILED) if force else (SCHEDULED,)
        with self._lock:
            entry = self._find(entry.id) or entry
            if not self.store.claim_entry(entry.id, allowed):
                stored = self.store.get_entry(entry.id)
                if stored is None:
                    raise ValidationError(f"Content not found: {entry.id}")
                get_logger().info("Skipping %s: it is %s", entry.title, stored.status)
                self.refresh()
                return self._find(entry.id) or stored
            entry.status = PUBLISHING

            log(f"Publishing content: {entry.title}")
            try:
                item = self.store.get_production(entry.production_id)
                if item is None:
                    raise ValidationError(f"Unknown production: {entry.production_id}")
                result = self.uploader(item, entry)
            except Exception as e:
                get_logger().error("Failed to publish %s: %s", entry.title, e)
                entry.status = FAILED
                entry.error = str(e)
                self.store.update_entry(entry)
                self.store.log_event("publish", "error", {"entry_id": entry.id, "error": str(e)})
                return entry

            entry.status = PUBLISHED
            entry.external_id = result.get("external_id")
            entry.url = result.get("url")
            entry.published_at = iso_utc(now or utc_now())
            entry.error = None
            self.store.update_entry(entry)
            self._remove(entry.id)
            self.store.log_event("publish", "success", {"entry_id": entry.id, "url": entry.url})
            log(f"Successfully published: {entry.title} -> {entry.url}")
            return entry

    def drain(self, now: datetime | None = None) -> int:
        """Publish every due entry in order, one at a time. Returns the success count."""
        now = now or utc_now()
        with self._lock:
            self.refresh()
            due = self.store.due_entries(now)
            if not due:
                return 0
            log(f"Processing {len(due)} due publications...")
            published = 0
            for entry in due:
                if self.publish(entry, now).status == PUBLISHED:
                    published += 1
        log(f"Drain complete: {published}/{len(due)} published")
        return published

    # ─────────────────────────────────────────────────
    # Operator actions
    # ─────────────────────────────────────────────────
    def publish_by_id(self, ref: str, now: datetime | None = None) -> PublishEntry:
        """Publish an entry now, by entry id or production id."""
        with self._lock:
            self.refresh()
            entry = self._find(ref)
            if entry is None:
                stored = self.store.get_entry(ref) or self.store.get_entry_for_production(ref)
                if stored is None:
                    raise ValidationError(f"Content not found: {ref}")
                raise ValidationError(f"Already {stored.status}: {ref}")
            return self.publish(entry, now, force=True)

    def pause(self, ref: str) -> PublishEntry:
        with self._lock:
            entry = self._require(ref)
            if entry.status != SCHEDULED:
                raise ValidationError(f"Only scheduled entries can be paused ({entry.status})")
            entry.status = PAUSED
            self.store.update_entry(entry)
        log(f"Paused scheduled content: {entry.title}")
        return entry

    def resume(self, ref: str, new_time: str | datetime | None = None) -> PublishEntry:
        with self._lock:
            entry = self._require(ref)
            if entry.status != PAUSED:
                raise ValidationError(f"Only paused entries can be resumed ({entry.status})")
            self._reschedule(entry, new_time)
        log(f"Resumed scheduled content: {entry.title} at {entry.publish_time}")
        return entry

    def retry(self, ref: str, new_time: str | datetime | None = None) -> PublishEntry:
        with self._lock:
            entry = self._require(ref)
            if entry.status != FAILED:
                raise ValidationError(f"Only failed entries can be retried ({entry.status})")
            self._reschedule(entry, new_time)
        log(f"Rescheduled failed content: {entry.title} at {entry.publish_time}")
        return entry

    def _reschedule(self, entry: PublishEntry, new_time):
        if new_time is not None:
            if isinstance(new_time, str):
                new_time = parse_iso(new_time)
            entry.publish_time = iso_utc(new_time)
        entry.status = SCHEDULED
        entry.error = None
        self.store.update_entry(entry)
        self._sort()
        self._sync_production_time(entry)

    def emergency_publish(
        self, ref: str, delay_minutes: int = 0, now: datetime | None = None
    ) -> PublishEntry:
        """Publish immediately, or pull the entry forward to now + delay_minutes."""
        now = now or utc_now()
        log(f"Emergency publish requested: {ref}")
        with self._lock:
            entry = self._require(ref)
            if delay_minutes <= 0:
                return self.publish(entry, now, force=True)
            self._reschedule(entry, now + timedelta(minutes=delay_minutes))
        log(f"Emergency scheduled for: {entry.publish_time}")
        return entry

    # ─────────────────────────────────────────────────
    # Planning
    # ─────────────────────────────────────────────────
    def upcoming(self, days: int = 7, now: datetime | None = None) -> list[PublishEntry]:
        now = now or utc_now()
        start, end = iso_utc(now), iso_utc(now + timedelta(days=days))
        self.refresh()
        return [
            e for e in self._entries
            if e.status == SCHEDULED and start <= e.publish_time <= end
        ]

    def optimize_publish_times(self, now: datetime | None = None) -> int:
        """Move future scheduled entries forward onto optimal day/hour slots."""
        cutoff = iso_utc(now or utc_now())
        moved = 0
        with self._lock:
            self.refresh()
            for entry in list(self._entries):
                if entry.status != SCHEDULED or entry.publish_time <= cutoff:
                    continue
                better = next_optimal_time(
                    parse_iso(entry.publish_time), self.optimal_days, self.optimal_hours
                )
                if better is None:
                    continue
                entry.publish_time = iso_utc(better)
                self.store.update_entry(entry)
                self._sync_production_time(entry)
                moved += 1
                log(f"Optimized publish time for: {entry.title} -> {entry.publish_time}")
            self._sort()
        return moved

    def reprioritize(self, priority_fn, now: datetime | None = None) -> int:
        """Recompute priority for scheduled entries; ordering stays by time.

        priority_fn: callable(item, publish_time, now) -> int
        """
        now = now or utc_now()
        changed = 0
        with self._lock:
            self.refresh()
            for entry in self._entries:
                if entry.status != SCHEDULED:
                    continue
                item = self.store.get_production(entry.production_id)
                if item is None:
                    continue
                priority = max(0, min(100, int(priority_fn(item, entry.publish_time, now))))
                if priority == entry.priority:
                    continue
                entry.priority = priority
                item.priority = priority
                self.store.update_entry(entry)
                self.store.save_production(item)
                changed += 1
        return changed

    def report(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        self.refresh()
        all_entries = self.store.entries()
        counts = Counter(e.status for e in all_entries)
        published = [e for e in all_entries if e.status == PUBLISHED and e.published_at]

        return {
            "queue_status": {
                "total": len(all_entries),
                "active": len(self._entries),
                **{status: counts.get(status, 0) for status in (SCHEDULED, PAUSED, PUBLISHING, PUBLISHED, FAILED)},
            },
            "upcoming": [e.to_dict() for e in self.upcoming(7, now)],
            "recent": [e.to_dict() for e in self.store.recently_published(now, 7)],
            "performance": self._performance(published),
            "generated_at": iso_utc(now),
        }

    @staticmethod
    def _performance(published: list[PublishEntry]) -> dict:
        if not published:
            return {"total_published": 0, "on_time_rate": 0.0, "average_delay_minutes": 0.0,
                    "frequency": "Insufficient data"}
        delays = [
            abs((parse_iso(e.published_at) - parse_iso(e.publish_time)).total_seconds()) / 60
            for e in published
        ]
        on_time = sum(1 for d in delays if d <= ON_TIME_MINUTES)
        return {
            "total_published": len(published),
            "on_time_rate": round(on_time / len(published) * 100, 1),
            "average_delay_minutes": round(sum(delays) / len(delays), 1),
            "frequency": publishing_frequency(published),
        }
