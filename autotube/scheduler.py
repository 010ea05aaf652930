"""Automation scheduler — cron-triggered generation, publishing, analytics, upkeep.

Runs either as an APScheduler BackgroundScheduler (`run`) or one tick at a
time from system cron (`tick` -> run_pending). Task bodies never raise to
the scheduler; every run is recorded as an automation event.
"""

import shutil
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .analytics import analyze_entries, insights
from .brief import generate_brief
from .config import BACKUPS_DIR, get_automation_settings, iso_utc, parse_iso, utc_now
from .errors import AutotubeError, ValidationError
from .log import get_logger, log
from .models import FAILED, PUBLISHED, READY
from .production import ProductionPipeline, recompute_priority
from .publish_queue import PublishQueue
from .store import Store

LAST_GENERATION_KEY = "last_content_generation"
LAST_RUN_PREFIX = "last_run:"
BUFFER_WINDOW_DAYS = 3
WORK_DIR_RETENTION_DAYS = 7
RETENTION_DAYS = 90

# weekday() values for Monday, Wednesday, Friday
THREE_PER_WEEK_DAYS = (0, 2, 4)
MIN_DAYS_BETWEEN = {"daily": 1, "every-2-days": 2, "3-per-week": 2, "weekly": 7}


def _iso_or_none(dt: datetime | None) -> str | None:
    return iso_utc(dt) if dt else None


@dataclass
class ScheduledTask:
    name: str
    cron: str
    func: Callable[[datetime], object]
    enabled: bool = True
    running: bool = False  # observability only
    last_run_at: datetime | None = None
    last_status: str | None = None
    trigger: CronTrigger = field(init=False, repr=False)

    def __post_init__(self):
        self.trigger = CronTrigger.from_crontab(self.cron, timezone=timezone.utc)

    def next_fire_time(self, after: datetime) -> datetime | None:
        """First firing strictly after `after`."""
        return self.trigger.get_next_fire_time(None, after + timedelta(microseconds=1))

    def is_due(self, now: datetime) -> bool:
        """A firing fell between the last run (or the previous minute) and now."""
        anchor = self.last_run_at or (now - timedelta(minutes=1))
        fire = self.next_fire_time(anchor)
        return fire is not None and fire <= now


class AutomationScheduler:
    def __init__(
        self,
        store: Store,
        pipeline: ProductionPipeline,
        queue: PublishQueue,
        brief_source: Callable[[], object] | None = None,
        settings: dict | None = None,
        analyzer: Callable[[list], list[dict]] | None = None,
        backups_dir: Path = BACKUPS_DIR,
    ):
        self.store = store
        self.pipeline = pipeline
        self.queue = queue
        self.settings = settings or get_automation_settings()
        self.brief_source = brief_source or self._claude_brief
        self.analyzer = analyzer or analyze_entries
        self.backups_dir = backups_dir
        self.paused = False
        self._lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None

        bodies = {
            "daily-content-generation": self.generate_content,
            "publish-queue-processing": self.drain_queue,
            "daily-analytics": self.collect_analytics,
            "weekly-strategy-review": self.weekly_review,
            "daily-optimization": self.daily_optimization,
            "storage-maintenance": self.storage_maintenance,
            "health-check": self.health_check,
        }
        schedules = self.settings["schedules"]
        self.tasks: dict[str, ScheduledTask] = {}
        for name, func in bodies.items():
            task = ScheduledTask(name=name, cron=schedules[name], func=func)
            last = store.get_setting(LAST_RUN_PREFIX + name)
            if last:
                task.last_run_at = parse_iso(last)
            self.tasks[name] = task

    def _claude_brief(self):
        return generate_brief(
            channel_context=self.settings.get("channel_context", ""),
            topics=self.settings.get("topics") or [],
            store=self.store,
        )

    # ─────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────
    def start(self):
        if self._scheduler is not None:
            return
        self._scheduler = BackgroundScheduler(timezone=timezone.utc)
        for task in self.tasks.values():
            self._scheduler.add_job(
                self.run_task,
                task.trigger,
                args=[task.name],
                id=task.name,
                name=task.name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        self._scheduler.start()
        log(f"Automation started with {len(self.tasks)} scheduled tasks")

    def stop(self):
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=True)
        self._scheduler = None
        log("Automation stopped")

    def pause(self):
        self.paused = True
        log("Automation paused")

    def resume(self):
        self.paused = False
        log("Automation resumed")

    def _task(self, name: str) -> ScheduledTask:
        task = self.tasks.get(name)
        if task is None:
            raise ValidationError(f"Unknown task: {name}")
        return task

    def enable(self, name: str):
        self._task(name).enabled = True

    def disable(self, name: str):
        self._task(name).enabled = False

    # ─────────────────────────────────────────────────
    # Running tasks
    # ─────────────────────────────────────────────────
    def _record(self, event_type: str, status: str, data: dict):
        try:
            self.store.log_event(event_type, status, data)
        except sqlite3.Error as e:
            get_logger().error("Could not record %s event: %s", event_type, e)

    def _claim(self, name: str, task: ScheduledTask) -> bool:
        if self.paused or not task.enabled:
            get_logger().debug("Skipping %s (paused or disabled)", name)
            return False
        with self._lock:
            if task.running:
                get_logger().warning("Skipping %s: previous run still in progress", name)
                return False
            task.running = True
        return True

    def _execute(self, name: str, task: ScheduledTask, now: datetime) -> bool:
        try:
            result = task.func(now)
            task.last_status = "success"
            self._record(name, "success", result if isinstance(result, dict) else {})
            return True
        except Exception as e:
            get_logger().error("Task %s failed: %s", name, e)
            task.last_status = "error"
            self._record(name, "error", {"error": str(e)})
            return False
        finally:
            task.running = False
            task.last_run_at = now
            try:
                self.store.set_setting(LAST_RUN_PREFIX + name, iso_utc(now))
            except sqlite3.Error as e:
                get_logger().error("Could not persist last run of %s: %s", name, e)

    def run_task(self, name: str, now: datetime | None = None) -> bool:
        """Run one task body. Returns True when it ran and succeeded."""
        task = self._task(name)
        if not self._claim(name, task):
            return False
        return self._execute(name, task, now or utc_now())

    def run_pending(self, now: datetime | None = None) -> list[str]:
        """Fire every enabled task whose trigger is due.

        Returns the names of the tasks whose body ran, failed runs included.
        Tasks skipped because a previous run is still in flight are left out.
        """
        now = now or utc_now()
        if self.paused:
            return []
        fired = []
        for name, task in self.tasks.items():
            if task.enabled and task.is_due(now) and self._claim(name, task):
                self._execute(name, task, now)
                fired.append(name)
        return fired

    def status(self) -> dict:
        now = utc_now()
        return {
            "started": self._scheduler is not None,
            "paused": self.paused,
            "tasks": {
                name: {
                    "cron": task.cron,
                    "enabled": task.enabled,
                    "running": task.running,
                    "last_run_at": _iso_or_none(task.last_run_at),
                    "last_status": task.last_status,
                    "next_run": _iso_or_none(task.next_fire_time(now)),
                }
                for name, task in self.tasks.items()
            },
        }

    # ─────────────────────────────────────────────────
    # Content generation gating
    # ─────────────────────────────────────────────────
    def should_generate_today(self, now: datetime | None = None) -> bool:
        now = now or utc_now()
        upcoming = self.queue.upcoming(BUFFER_WINDOW_DAYS, now)
        buffer_days = self.settings["content_buffer_days"]
        if len(upcoming) >= buffer_days:
            log(f"Content buffer full ({len(upcoming)} upcoming, buffer {buffer_days})")
            return False

        last = self.store.get_setting(LAST_GENERATION_KEY)
        if not last:
            return True
        days_since = int((now - parse_iso(last)).total_seconds() // 86400)
        frequency = self.settings["posting_frequency"]
        if days_since >= MIN_DAYS_BETWEEN.get(frequency, 1):
            return True
        return frequency == "3-per-week" and days_since >= 1 and now.weekday() in THREE_PER_WEEK_DAYS

    # ─────────────────────────────────────────────────
    # Task bodies
    # ─────────────────────────────────────────────────
    def generate_content(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        if not self.should_generate_today(now):
            log("Skipping content generation: sufficient content in pipeline")
            return {"skipped": True}

        brief = self.brief_source()
        item = self.pipeline.process(brief, now)
        if item.status != READY:
            raise AutotubeError(f"Production {item.id} failed: {item.error}")
        entry = self.queue.enqueue(item, now=now)
        self.store.set_setting(LAST_GENERATION_KEY, iso_utc(now))
        log(f"Content scheduled for publishing: {entry.title}")
        return {
            "production_id": item.id,
            "entry_id": entry.id,
            "topic": brief.strategy.topic,
            "simulated_stages": item.simulated_stages(),
        }

    def drain_queue(self, now: datetime | None = None) -> dict:
        return {"published": self.queue.drain(now)}

    def collect_analytics(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        published = self.store.recently_published(now, 7)
        if not published:
            return {"analyzed": 0}
        reports = self.analyzer(published)
        for report in reports:
            self.store.save_analytics(report)
        log(f"Analytics collected for {len(reports)} videos")
        return {"analyzed": len(reports)}

    def weekly_review(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        latest: dict[str, dict] = {}
        for report in self.store.recent_analytics(now, 7):
            current = latest.get(report["entry_id"])
            if current is None or report["analyzed_at"] > current["analyzed_at"]:
                latest[report["entry_id"]] = report
        reports = sorted(latest.values(), key=lambda r: r["performance_score"], reverse=True)

        moved = self.queue.optimize_publish_times(now)
        found = insights(reports)
        for insight in found:
            log(f"Insight: {insight['message']}")
        return {
            "top_performers": [
                {"title": r["title"], "score": r["performance_score"], "grade": r["grade"]}
                for r in reports[:3]
            ],
            "rescheduled": moved,
            "insights": found,
        }

    def daily_optimization(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        changed = self.queue.reprioritize(recompute_priority, now)
        cleaned = self._clean_work_dirs(now)
        return {"reprioritized": changed, "cleaned_dirs": cleaned}

    def _clean_work_dirs(self, now: datetime) -> int:
        """Remove old media dirs of productions that were published or failed."""
        media_dir = Path(self.pipeline.media_dir)
        if not media_dir.exists():
            return 0
        cutoff = (now - timedelta(days=WORK_DIR_RETENTION_DAYS)).timestamp()
        removed = 0
        for work_dir in media_dir.iterdir():
            if not work_dir.is_dir() or work_dir.stat().st_mtime >= cutoff:
                continue
            entry = self.store.get_entry_for_production(work_dir.name)
            item = self.store.get_production(work_dir.name)
            finished = (entry is not None and entry.status == PUBLISHED) or (
                item is not None and item.status == FAILED
            )
            if finished:
                shutil.rmtree(work_dir, ignore_errors=True)
                removed += 1
        if removed:
            log(f"Cleaned {removed} old work directories")
        return removed

    def storage_maintenance(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        backup = self.store.backup(self.backups_dir)
        events = self.store.clean_old_events(now, RETENTION_DAYS)
        analytics = self.store.clean_old_analytics(now, RETENTION_DAYS)
        return {
            "backup": str(backup),
            "events_removed": events,
            "analytics_removed": analytics,
            "stats": self.store.stats(),
        }

    def health_check(self, now: datetime | None = None) -> dict:
        now = now or utc_now()
        database = self.store.ping()
        enabled = sum(1 for t in self.tasks.values() if t.enabled)
        total = len(self.tasks)

        score = 100.0
        if not database:
            score -= 30
        if total and enabled < total:
            score -= (total - enabled) / total * 20
        score = max(0, round(score))

        if score < 80:
            get_logger().warning("System health score: %d/100", score)
        else:
            log(f"System health check passed: {score}/100")
        return {
            "timestamp": iso_utc(now),
            "database": database,
            "tasks": {name: t.enabled for name, t in self.tasks.items()},
            "score": score,
        }
