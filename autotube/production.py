"""Production pipeline — drives a brief through the fixed stage sequence."""

from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path

from .config import MEDIA_DIR, iso_utc, parse_iso, utc_now
from .errors import ValidationError
from .log import get_logger, log
from .models import (
    FAILED, PROCESSING, READY,
    Artifact, ContentBrief, ProductionItem, Strategy, new_id,
)
from .retry import with_retry
from .stages import StageContext, StageGenerator, default_generators
from .state import STAGE_LABELS, ProductionState
from .store import Store


def calculate_priority(strategy: Strategy, now: datetime | None = None) -> int:
    """Score 0-100 from estimated reach, competitor data, and time to publish."""
    now = now or utc_now()
    priority = 50

    views = strategy.estimated_views
    if views > 100_000:
        priority += 30
    elif views > 50_000:
        priority += 20
    elif views > 10_000:
        priority += 10

    if strategy.competitor_analysis:
        priority += 10

    if strategy.best_publish_time:
        try:
            hours = (parse_iso(strategy.best_publish_time) - now).total_seconds() / 3600
        except (TypeError, ValueError):
            hours = None
        if hours is not None:
            if hours < 24:
                priority += 20
            elif hours < 48:
                priority += 10

    return max(0, min(100, priority))


def calculate_publish_time(strategy: Strategy, now: datetime | None = None, default_hour: int = 14) -> str:
    """The strategy's hint, else tomorrow at default_hour UTC."""
    now = now or utc_now()
    if strategy.best_publish_time:
        try:
            return iso_utc(parse_iso(strategy.best_publish_time))
        except (TypeError, ValueError):
            get_logger().warning("Ignoring unparseable publish time: %s", strategy.best_publish_time)
    tomorrow = (now + timedelta(days=1)).replace(hour=default_hour, minute=0, second=0, microsecond=0)
    return iso_utc(tomorrow)


def recompute_priority(item: ProductionItem, publish_time: str, now: datetime | None = None) -> int:
    """Priority for an already-scheduled item, measured against its actual slot."""
    return calculate_priority(replace(item.brief.strategy, best_publish_time=publish_time), now)


class ProductionPipeline:
    """Creates production items and advances them stage by stage.

    Every stage goes through the same wrapper: retry the generator, and on
    final failure record the generator's simulated placeholder. The item is
    persisted after each stage so a crash leaves a resumable record.
    """

    def __init__(
        self,
        store: Store,
        generators: dict[str, StageGenerator] | None = None,
        media_dir: Path = MEDIA_DIR,
        stage_retries: int = 0,
        retry_delay: float = 2.0,
        default_publish_hour: int = 14,
    ):
        self.store = store
        self.generators = generators or default_generators()
        self.media_dir = media_dir
        self.stage_retries = stage_retries
        self.retry_delay = retry_delay
        self.default_publish_hour = default_publish_hour

    def process(self, brief: ContentBrief, now: datetime | None = None) -> ProductionItem:
        now = now or utc_now()
        item = ProductionItem(
            id=new_id("prod"),
            brief=brief,
            priority=calculate_priority(brief.strategy, now),
            scheduled_publish_time=calculate_publish_time(
                brief.strategy, now, self.default_publish_hour
            ),
            created_at=iso_utc(now),
        )
        self.store.save_production(item)
        log(f"Processing content for production: {item.id} ({item.title})")
        return self._advance(item)

    def resume(self, production_id: str) -> ProductionItem:
        """Run only the stages a persisted item has not completed yet."""
        item = self.store.get_production(production_id)
        if item is None:
            raise ValidationError(f"Unknown production: {production_id}")
        if item.status != PROCESSING:
            return item
        log(f"Resuming production {item.id} at {ProductionState(item).progress()}%")
        return self._advance(item)

    def _advance(self, item: ProductionItem) -> ProductionItem:
        state = ProductionState(item)
        ctx = StageContext(item=item, work_dir=self.media_dir / item.id)
        try:
            for stage in state.pending_stages():
                state.start_stage(stage)
                self.store.save_production(item)
                state.complete_stage(stage, self._run_stage(stage, ctx))
                self.store.save_production(item)
        except Exception as e:
            get_logger().error("Production %s failed: %s", item.id, e)
            item.status = FAILED
            item.error = str(e)
            item.current_stage = None
            self.store.save_production(item)
            return item

        item.status = READY
        item.ready_at = iso_utc(utc_now())
        self.store.save_production(item)

        simulated = item.simulated_stages()
        note = f" (simulated: {', '.join(simulated)})" if simulated else ""
        log(f"Content processing complete: {item.id}{note}")
        get_logger().debug("Stages for %s:\n%s", item.id, state.summary())
        return item

    def _run_stage(self, stage: str, ctx: StageContext) -> Artifact:
        generator = self.generators[stage]
        label = STAGE_LABELS.get(stage, stage)
        log(f"Running {label}...")
        attempt = with_retry(max_retries=self.stage_retries, base_delay=self.retry_delay)(
            generator.generate
        )
        try:
            return attempt(ctx)
        except Exception as e:
            get_logger().warning("%s failed: %s — substituting simulated artifact", label, e)
            return generator.placeholder(ctx, str(e))

    @staticmethod
    def progress(item: ProductionItem) -> int:
        return ProductionState(item).progress()

    def status(self) -> list[dict]:
        return [
            {
                "id": item.id,
                "title": item.title,
                "status": item.status,
                "priority": item.priority,
                "scheduled_publish_time": item.scheduled_publish_time,
                "progress": self.progress(item),
            }
            for item in self.store.list_productions()
        ]

    def next_ready(self) -> ProductionItem | None:
        """Highest-priority ready item that has no publish entry yet."""
        for item in self.store.list_productions(READY):
            if self.store.get_entry_for_production(item.id) is None:
                return item
        return None
