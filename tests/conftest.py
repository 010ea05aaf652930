"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from autotube.config import iso_utc
from autotube.errors import StageError
from autotube.models import Artifact, ContentBrief
from autotube.production import ProductionPipeline
from autotube.publish_queue import PublishQueue
from autotube.stages import StageGenerator
from autotube.state import STAGES
from autotube.store import Store

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)  # a Tuesday


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def tmp_work_dir(tmp_path):
    """Create a temporary working directory."""
    work = tmp_path / "work"
    work.mkdir()
    return work


@pytest.fixture
def store():
    s = Store(":memory:")
    yield s
    s.close()


@pytest.fixture
def sample_brief_dict():
    """A brief shaped like Claude's output."""
    return {
        "strategy": {
            "topic": "Productivity",
            "angle": "Habits backed by research",
            "estimated_views": 25000,
            "competitor_analysis": [],
            "best_publish_time": None,
            "keywords": ["productivity", "habits"],
        },
        "script": {
            "title": "5 Habits That Actually Work",
            "hook": "Most productivity advice is wrong.",
            "introduction": ["Welcome back.", "Today we look at five habits."],
            "sections": [
                {"title": "Sleep first", "content": ["Sleep is the base of focus."], "duration": 60},
                {"title": "Single tasking", "content": ["Do one thing at a time."], "duration": 45},
            ],
            "conclusion": {"recap": ["Sleep well and focus."], "final_thought": "Start small."},
            "call_to_action": ["Subscribe for more."],
            "duration": 300,
        },
        "thumbnail": {"prompt": "Bright desk with a clock"},
        "seo": {
            "title": "5 Productivity Habits That Actually Work",
            "description": "Research-backed habits.",
            "tags": ["productivity", "habits"],
        },
    }


@pytest.fixture
def sample_brief(sample_brief_dict):
    return ContentBrief.from_dict(sample_brief_dict)


@pytest.fixture
def brief_factory(sample_brief_dict):
    """Build a brief with overridden strategy fields."""
    def make(title="Video", **strategy):
        data = {**sample_brief_dict}
        data["strategy"] = {**sample_brief_dict["strategy"], **strategy}
        data["script"] = {**sample_brief_dict["script"], "title": title}
        data["seo"] = {**sample_brief_dict["seo"], "title": ""}
        return ContentBrief.from_dict(data)
    return make


class FakeStage(StageGenerator):
    """Records calls; fails when told to."""

    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.calls = 0

    def generate(self, ctx):
        self.calls += 1
        if self.fail:
            raise StageError(self.name, "service unavailable")
        return Artifact.real(ctx.work_dir / f"{self.name}.out", stage=self.name)


@pytest.fixture
def fake_generators():
    return {stage: FakeStage(stage) for stage in STAGES}


@pytest.fixture
def pipeline(store, fake_generators, tmp_path):
    return ProductionPipeline(store, generators=fake_generators, media_dir=tmp_path / "media")


class FakeUploader:
    """Publishing transport double; ids listed in fail_for raise."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    def __call__(self, item, entry):
        self.calls.append(entry.id)
        if entry.id in self.fail_for or item.id in self.fail_for:
            raise RuntimeError("quota exceeded")
        return {"external_id": f"yt_{len(self.calls)}", "url": f"https://youtu.be/yt_{len(self.calls)}"}


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def queue(store, uploader):
    return PublishQueue(store, uploader=uploader)


@pytest.fixture
def ready_item(pipeline, brief_factory, now):
    """Produce a ready item scheduled at the given offset from NOW."""
    def make(title="Video", hours=1, **strategy):
        publish_at = iso_utc(now + timedelta(hours=hours))
        return pipeline.process(brief_factory(title, best_publish_time=publish_at, **strategy), now)
    return make


@pytest.fixture
def make_uploader():
    return FakeUploader
