"""Tests for autotube/publish_queue.py — ordering, drain, operator actions."""

from datetime import datetime, timedelta, timezone

import pytest

from autotube.config import iso_utc
from autotube.errors import ValidationError
from autotube.models import FAILED, PAUSED, PUBLISHED, PUBLISHING, SCHEDULED
from autotube.production import ProductionPipeline, recompute_priority
from autotube.publish_queue import PublishQueue, next_optimal_time, publishing_frequency
from autotube.store import Store


class TestEnqueue:
    def test_creates_scheduled_entry(self, queue, ready_item, store):
        item = ready_item("A", hours=2)
        entry = queue.enqueue(item)
        assert entry.status == SCHEDULED
        assert entry.publish_time == item.scheduled_publish_time
        assert entry.priority == item.priority
        assert store.get_entry(entry.id).production_id == item.id
        assert len(queue) == 1

    def test_rejects_non_ready(self, queue, ready_item, store):
        item = ready_item("A")
        item.status = "processing"
        with pytest.raises(ValidationError):
            queue.enqueue(item)
        assert len(queue) == 0
        assert store.entries() == []

    def test_rejects_second_entry_for_production(self, queue, ready_item):
        item = ready_item("A")
        queue.enqueue(item)
        with pytest.raises(ValidationError):
            queue.enqueue(item)
        assert len(queue) == 1

    def test_ordered_by_publish_time(self, queue, ready_item):
        late = queue.enqueue(ready_item("Late", hours=5))
        early = queue.enqueue(ready_item("Early", hours=1))
        assert [e.id for e in queue.entries()] == [early.id, late.id]

    def test_reload_from_store_keeps_order(self, queue, ready_item, store, uploader):
        first = queue.enqueue(ready_item("First", hours=3))
        second = queue.enqueue(ready_item("Second", hours=3))
        reloaded = PublishQueue(store, uploader=uploader)
        assert [e.id for e in reloaded.entries()] == [first.id, second.id]


class TestDueItems:
    def test_identical_times_in_insertion_order(self, queue, ready_item, now):
        a = queue.enqueue(ready_item("A", hours=1))
        b = queue.enqueue(ready_item("B", hours=1))
        due = list(queue.due_items(now + timedelta(hours=1)))
        assert [e.id for e in due] == [a.id, b.id]

    def test_excludes_future_and_non_scheduled(self, queue, ready_item, now):
        due_entry = queue.enqueue(ready_item("Due", hours=1))
        paused = queue.enqueue(ready_item("Paused", hours=1))
        queue.enqueue(ready_item("Future", hours=10))
        queue.pause(paused.id)
        assert [e.id for e in queue.due_items(now + timedelta(hours=2))] == [due_entry.id]

    def test_non_mutating(self, queue, ready_item, now):
        queue.enqueue(ready_item("A", hours=1))
        list(queue.due_items(now + timedelta(hours=2)))
        assert len(queue) == 1


class TestPublish:
    def test_success_removes_from_queue(self, queue, ready_item, store, now):
        entry = queue.enqueue(ready_item("A", hours=1))
        result = queue.publish(entry, now)
        assert result.status == PUBLISHED
        assert result.external_id == "yt_1"
        assert result.url == "https://youtu.be/yt_1"
        assert result.published_at == iso_utc(now)
        assert len(queue) == 0
        assert store.get_entry(entry.id).status == PUBLISHED

    def test_failure_kept_for_inspection(self, store, ready_item, make_uploader, now):
        item = ready_item("A", hours=1)
        queue = PublishQueue(store, uploader=make_uploader(fail_for=[item.id]))
        entry = queue.enqueue(item)
        result = queue.publish(entry, now)
        assert result.status == FAILED
        assert result.error == "quota exceeded"
        assert queue.entries()[0].id == entry.id
        assert list(queue.due_items(now + timedelta(days=1))) == []

    def test_published_entry_not_uploaded_twice(self, queue, ready_item, uploader, now):
        entry = queue.enqueue(ready_item("A", hours=1))
        queue.publish(entry, now)
        queue.publish(entry, now)
        assert len(uploader.calls) == 1


class TestDrain:
    def test_failure_isolated(self, store, ready_item, make_uploader, now):
        a = ready_item("A", hours=1)
        b = ready_item("B", hours=1)
        uploader = make_uploader(fail_for=[a.id])
        queue = PublishQueue(store, uploader=uploader)
        entry_a = queue.enqueue(a)
        entry_b = queue.enqueue(b)

        assert queue.drain(now + timedelta(hours=1)) == 1
        assert store.get_entry(entry_a.id).status == FAILED
        assert store.get_entry(entry_b.id).status == PUBLISHED
        assert uploader.calls == [entry_a.id, entry_b.id]
        assert list(queue.due_items(now + timedelta(hours=2))) == []

    def test_never_publishes_future_entries(self, queue, ready_item, uploader, now):
        queue.enqueue(ready_item("Now", hours=1))
        future = queue.enqueue(ready_item("Later", hours=3))
        assert queue.drain(now + timedelta(hours=2)) == 1
        assert future.id not in uploader.calls
        assert queue.entries()[0].id == future.id

    def test_processes_in_time_order(self, queue, ready_item, uploader, now):
        third = queue.enqueue(ready_item("C", hours=3))
        first = queue.enqueue(ready_item("A", hours=1))
        second = queue.enqueue(ready_item("B", hours=2))
        queue.drain(now + timedelta(hours=4))
        assert uploader.calls == [first.id, second.id, third.id]

    def test_empty(self, queue, now):
        assert queue.drain(now) == 0


class TestOperatorActions:
    def test_publish_by_production_id(self, queue, ready_item, now):
        item = ready_item("A", hours=48)
        queue.enqueue(item)
        assert queue.publish_by_id(item.id, now).status == PUBLISHED

    def test_publish_by_unknown_id(self, queue):
        with pytest.raises(ValidationError):
            queue.publish_by_id("pub_missing")

    def test_publish_already_published(self, queue, ready_item, now):
        entry = queue.enqueue(ready_item("A", hours=1))
        queue.publish(entry, now)
        with pytest.raises(ValidationError):
            queue.publish_by_id(entry.id)

    def test_pause_and_resume_with_new_time(self, queue, ready_item, store, now):
        item = ready_item("A", hours=1)
        entry = queue.enqueue(item)
        assert queue.pause(entry.id).status == PAUSED
        assert list(queue.due_items(now + timedelta(hours=2))) == []

        new_time = now + timedelta(days=1)
        resumed = queue.resume(entry.id, iso_utc(new_time))
        assert resumed.status == SCHEDULED
        assert resumed.publish_time == iso_utc(new_time)
        assert store.get_production(item.id).scheduled_publish_time == iso_utc(new_time)

    def test_pause_requires_scheduled(self, queue, ready_item):
        entry = queue.enqueue(ready_item("A"))
        queue.pause(entry.id)
        with pytest.raises(ValidationError):
            queue.pause(entry.id)

    def test_resume_requires_paused(self, queue, ready_item):
        entry = queue.enqueue(ready_item("A"))
        with pytest.raises(ValidationError):
            queue.resume(entry.id)

    def test_retry_failed(self, store, ready_item, make_uploader, now):
        item = ready_item("A", hours=1)
        queue = PublishQueue(store, uploader=make_uploader(fail_for=[item.id]))
        entry = queue.enqueue(item)
        queue.publish(entry, now)

        retried = queue.retry(entry.id)
        assert retried.status == SCHEDULED
        assert retried.error is None
        assert [e.id for e in queue.due_items(now + timedelta(hours=1))] == [entry.id]

    def test_emergency_publish_now(self, queue, ready_item, now):
        entry = queue.enqueue(ready_item("A", hours=72))
        assert queue.emergency_publish(entry.id, now=now).status == PUBLISHED

    def test_emergency_publish_delayed(self, queue, ready_item, now):
        later = queue.enqueue(ready_item("Later", hours=5))
        urgent = queue.enqueue(ready_item("Urgent", hours=72))
        result = queue.emergency_publish(urgent.id, delay_minutes=30, now=now)
        assert result.publish_time == iso_utc(now + timedelta(minutes=30))
        assert [e.id for e in queue.entries()] == [urgent.id, later.id]


class TestPlanning:
    def test_upcoming_window(self, queue, ready_item, now):
        soon = queue.enqueue(ready_item("Soon", hours=24))
        queue.enqueue(ready_item("Far", hours=24 * 10))
        assert [e.id for e in queue.upcoming(7, now)] == [soon.id]

    def test_optimize_moves_forward_only(self, queue, ready_item, store, now):
        # now is Tuesday 12:00; 13:00 is not an optimal hour -> 14:00 same day
        entry = queue.enqueue(ready_item("A", hours=1))
        optimal = queue.enqueue(ready_item("B", hours=3))  # Tuesday 15:00
        assert queue.optimize_publish_times(now) == 1
        assert entry.publish_time == "2026-03-10T14:00:00+00:00"
        assert optimal.publish_time == "2026-03-10T15:00:00+00:00"
        assert store.get_entry(entry.id).publish_time == "2026-03-10T14:00:00+00:00"
        assert store.get_production(entry.production_id).scheduled_publish_time == entry.publish_time

    def test_optimize_skips_due_entries(self, queue, ready_item, now):
        entry = queue.enqueue(ready_item("A", hours=1))
        assert queue.optimize_publish_times(now + timedelta(hours=2)) == 0
        assert entry.publish_time == iso_utc(now + timedelta(hours=1))

    def test_reprioritize(self, queue, ready_item, store, now):
        item = ready_item("A", hours=100)
        entry = queue.enqueue(item)
        assert queue.reprioritize(recompute_priority, now + timedelta(hours=90)) == 1
        assert entry.priority == item.priority + 20
        assert store.get_production(item.id).priority == entry.priority
        # ordering unaffected
        assert queue.entries()[0].id == entry.id

    def test_report(self, store, ready_item, make_uploader, now):
        a = ready_item("A", hours=1)
        b = ready_item("B", hours=2)
        queue = PublishQueue(store, uploader=make_uploader(fail_for=[b.id]))
        queue.enqueue(a)
        queue.enqueue(b)
        queue.enqueue(ready_item("C", hours=30))
        queue.drain(now + timedelta(hours=1, minutes=2))
        queue.drain(now + timedelta(hours=3))

        report = queue.report(now + timedelta(hours=3))
        assert report["queue_status"]["published"] == 1
        assert report["queue_status"]["failed"] == 1
        assert report["queue_status"]["scheduled"] == 1
        assert len(report["upcoming"]) == 1
        assert report["performance"]["total_published"] == 1
        assert report["performance"]["on_time_rate"] == 100.0
        assert report["performance"]["average_delay_minutes"] == 2.0
        assert report["performance"]["frequency"] == "Insufficient data"


class TestNextOptimalTime:
    DAYS = ["Tuesday", "Wednesday", "Thursday"]
    HOURS = [14, 15, 16]

    def test_already_optimal(self):
        assert next_optimal_time(datetime(2026, 3, 10, 15, 30, tzinfo=timezone.utc), self.DAYS, self.HOURS) is None

    def test_later_hour_same_day(self):
        result = next_optimal_time(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc), self.DAYS, self.HOURS)
        assert result == datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)

    def test_next_optimal_day(self):
        # Thursday 18:00 -> next Tuesday 14:00
        result = next_optimal_time(datetime(2026, 3, 12, 18, 0, tzinfo=timezone.utc), self.DAYS, self.HOURS)
        assert result == datetime(2026, 3, 17, 14, 0, tzinfo=timezone.utc)

    def test_non_optimal_day_morning(self):
        # Monday 09:00 -> Tuesday 14:00
        result = next_optimal_time(datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc), self.DAYS, self.HOURS)
        assert result == datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


class TestPublishingFrequency:
    def test_per_week(self, queue, ready_item, now):
        entries = []
        for i in range(3):
            entry = queue.enqueue(ready_item(f"V{i}", hours=1 + i))
            entry.published_at = iso_utc(now + timedelta(days=3 * i))
            entries.append(entry)
        # 3 videos over 6 days
        assert publishing_frequency(entries) == "3.5 videos per week"


@pytest.fixture
def shared(tmp_path, fake_generators, brief_factory, make_uploader, now):
    """Two stores and queues on one database file, like the CLI beside a running scheduler."""
    db = tmp_path / "autotube.db"
    store_a, store_b = Store(db), Store(db)
    pipeline = ProductionPipeline(store_a, generators=fake_generators, media_dir=tmp_path / "media")

    def produce(title, hours=1):
        publish_at = iso_utc(now + timedelta(hours=hours))
        return pipeline.process(brief_factory(title, best_publish_time=publish_at), now)

    up_a, up_b = make_uploader(), make_uploader()
    yield {
        "produce": produce,
        "a": PublishQueue(store_a, uploader=up_a), "up_a": up_a, "store_a": store_a,
        "b": PublishQueue(store_b, uploader=up_b), "up_b": up_b, "store_b": store_b,
    }
    store_a.close()
    store_b.close()


class TestSharedDatabase:
    def test_drain_sees_entries_enqueued_elsewhere(self, shared, now):
        entry = shared["a"].enqueue(shared["produce"]("From CLI"))
        assert len(shared["b"]) == 0

        assert shared["b"].drain(now + timedelta(hours=2)) == 1
        assert shared["up_b"].calls == [entry.id]
        assert shared["store_a"].get_entry(entry.id).status == PUBLISHED

    def test_pause_elsewhere_stops_drain(self, shared, now):
        entry = shared["a"].enqueue(shared["produce"]("Hold"))
        shared["b"].refresh()
        assert [e.id for e in shared["b"].entries()] == [entry.id]

        shared["a"].pause(entry.id)
        assert shared["b"].drain(now + timedelta(hours=2)) == 0
        assert shared["up_b"].calls == []
        assert shared["store_b"].get_entry(entry.id).status == PAUSED
        assert shared["b"].entries()[0].status == PAUSED

    def test_stale_entry_is_not_uploaded_twice(self, shared, now):
        entry = shared["a"].enqueue(shared["produce"]("Once"))
        shared["b"].refresh()
        stale = shared["b"].entries()[0]

        assert shared["a"].drain(now + timedelta(hours=2)) == 1
        result = shared["b"].publish(stale, now + timedelta(hours=2))
        assert result.status == PUBLISHED
        assert shared["up_a"].calls == [entry.id]
        assert shared["up_b"].calls == []
        assert shared["b"].drain(now + timedelta(hours=3)) == 0
        assert len(shared["b"]) == 0

    def test_claimed_entry_is_skipped(self, shared, now):
        entry = shared["a"].enqueue(shared["produce"]("In flight"))
        shared["b"].refresh()
        assert shared["store_a"].claim_entry(entry.id)

        result = shared["b"].publish(shared["b"].entries()[0], now + timedelta(hours=2))
        assert result.status == PUBLISHING
        assert shared["up_b"].calls == []
