"""Tests for autotube/store.py — SQLite persistence."""

import sqlite3
from datetime import timedelta

import pytest

from autotube.config import iso_utc
from autotube.models import FAILED, PAUSED, PUBLISHED, PUBLISHING, SCHEDULED, ProductionItem, PublishEntry
from autotube.store import Store


def make_item(brief, id="prod_1", priority=50, status="processing"):
    return ProductionItem(
        id=id, brief=brief, priority=priority, status=status,
        scheduled_publish_time="2026-03-11T14:00:00+00:00",
        created_at="2026-03-10T12:00:00+00:00",
    )


def make_entry(id, production_id, publish_time, status="scheduled"):
    return PublishEntry(
        id=id, production_id=production_id, title=id, publish_time=publish_time,
        priority=50, created_at="2026-03-10T12:00:00+00:00", status=status,
    )


class TestProductions:
    def test_save_and_get(self, store, sample_brief):
        store.save_production(make_item(sample_brief))
        loaded = store.get_production("prod_1")
        assert loaded.title == "5 Habits That Actually Work"
        assert loaded.brief == sample_brief

    def test_save_is_upsert(self, store, sample_brief):
        item = make_item(sample_brief)
        store.save_production(item)
        item.status = "ready"
        item.timeline["script"] = "2026-03-10T12:00:00+00:00"
        store.save_production(item)
        loaded = store.get_production("prod_1")
        assert loaded.status == "ready"
        assert loaded.timeline["script"] == "2026-03-10T12:00:00+00:00"
        assert len(store.list_productions()) == 1

    def test_get_unknown(self, store):
        assert store.get_production("nope") is None

    def test_list_orders_by_priority(self, store, sample_brief):
        store.save_production(make_item(sample_brief, "low", 40, "ready"))
        store.save_production(make_item(sample_brief, "high", 90, "ready"))
        store.save_production(make_item(sample_brief, "other", 99, "failed"))
        assert [i.id for i in store.list_productions("ready")] == ["high", "low"]


class TestPublishSchedule:
    def test_one_entry_per_production(self, store):
        store.insert_entry(make_entry("pub_1", "prod_1", "2026-03-11T14:00:00+00:00"))
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_entry(make_entry("pub_2", "prod_1", "2026-03-12T14:00:00+00:00"))

    def test_due_entries_only_scheduled_and_past(self, store, now):
        store.insert_entry(make_entry("past", "p1", iso_utc(now - timedelta(minutes=5))))
        store.insert_entry(make_entry("exact", "p2", iso_utc(now)))
        store.insert_entry(make_entry("future", "p3", iso_utc(now + timedelta(minutes=5))))
        store.insert_entry(make_entry("paused", "p4", iso_utc(now - timedelta(hours=1)), PAUSED))
        assert [e.id for e in store.due_entries(now)] == ["past", "exact"]

    def test_active_entries_exclude_published(self, store, now):
        store.insert_entry(make_entry("a", "p1", iso_utc(now)))
        store.insert_entry(make_entry("b", "p2", iso_utc(now), PUBLISHED))
        store.insert_entry(make_entry("c", "p3", iso_utc(now), FAILED))
        assert [e.id for e in store.active_entries()] == ["a", "c"]

    def test_update_entry(self, store, now):
        entry = make_entry("a", "p1", iso_utc(now))
        store.insert_entry(entry)
        entry.status = PUBLISHED
        entry.url = "https://youtu.be/x"
        entry.published_at = iso_utc(now)
        store.update_entry(entry)
        loaded = store.get_entry("a")
        assert loaded.status == PUBLISHED
        assert loaded.url == "https://youtu.be/x"
        assert store.get_entry_for_production("p1").id == "a"

    def test_upcoming_and_recently_published(self, store, now):
        store.insert_entry(make_entry("soon", "p1", iso_utc(now + timedelta(days=2))))
        store.insert_entry(make_entry("later", "p2", iso_utc(now + timedelta(days=9))))
        done = make_entry("done", "p3", iso_utc(now - timedelta(days=1)), PUBLISHED)
        done.published_at = iso_utc(now - timedelta(days=1))
        store.insert_entry(done)
        assert [e.id for e in store.upcoming_entries(now, 7)] == ["soon"]
        assert [e.id for e in store.recently_published(now, 7)] == ["done"]

    def test_claim_entry_is_single_winner(self, tmp_path, now):
        db = tmp_path / "autotube.db"
        first, second = Store(db), Store(db)
        try:
            first.insert_entry(make_entry("a", "p1", iso_utc(now)))
            assert second.claim_entry("a") is True
            assert first.claim_entry("a") is False
            assert first.get_entry("a").status == PUBLISHING
            assert first.due_entries(now) == []
        finally:
            first.close()
            second.close()

    def test_claim_entry_respects_allowed_statuses(self, store, now):
        store.insert_entry(make_entry("a", "p1", iso_utc(now), PAUSED))
        assert store.claim_entry("a") is False
        assert store.claim_entry("a", (SCHEDULED, PAUSED)) is True


class TestSettingsAndEvents:
    def test_setting_roundtrip(self, store):
        assert store.get_setting("k", "default") == "default"
        store.set_setting("k", "1")
        store.set_setting("k", "2")
        assert store.get_setting("k") == "2"

    def test_events(self, store):
        store.log_event("health-check", "success", {"score": 100})
        store.log_event("publish", "error", {"error": "quota"})
        events = store.recent_events()
        assert events[0]["event_type"] == "publish"
        assert events[0]["data"] == {"error": "quota"}
        assert len(store.recent_events(event_type="health-check")) == 1

    def test_clean_old_events(self, store, now):
        store.log_event("x", "success")
        assert store.clean_old_events(now + timedelta(days=365 * 50), 90) == 1
        assert store.recent_events() == []


class TestAnalytics:
    def test_save_and_clean(self, store, now):
        store.save_analytics({
            "entry_id": "pub_1", "title": "T", "views": 10, "performance_score": 40,
            "grade": "F", "analyzed_at": iso_utc(now - timedelta(days=100)),
        })
        store.save_analytics({
            "entry_id": "pub_2", "title": "U", "views": 900, "performance_score": 70,
            "grade": "B", "analyzed_at": iso_utc(now),
        })
        assert [r["entry_id"] for r in store.recent_analytics(now, 7)] == ["pub_2"]
        assert store.clean_old_analytics(now, 90) == 1


class TestMaintenance:
    def test_ping_and_stats(self, store, sample_brief):
        store.save_production(make_item(sample_brief))
        assert store.ping()
        assert store.stats()["productions"] == 1

    def test_ping_false_when_closed(self):
        s = Store(":memory:")
        s.close()
        assert not s.ping()

    def test_backup(self, tmp_path, sample_brief):
        s = Store(tmp_path / "live.db")
        s.save_production(make_item(sample_brief))
        dest = s.backup(tmp_path / "backups")
        s.close()
        copy = Store(dest)
        assert copy.get_production("prod_1") is not None
        copy.close()
