"""Production stage order and the write-once stage timeline."""

from datetime import datetime

from .config import iso_utc, utc_now

# Ordered production stages; each fills the artifact slot of the same name
STAGES = ["script", "thumbnail", "visuals", "audio", "captions", "video"]

STAGE_LABELS = {
    "script": "script formatting",
    "thumbnail": "thumbnail processing",
    "visuals": "video asset generation",
    "audio": "audio narration",
    "captions": "caption generation",
    "video": "final assembly",
}


def empty_timeline() -> dict:
    return {stage: None for stage in STAGES}


class ProductionState:
    """Tracks stage completion on a ProductionItem.

    Timeline entries are write-once: completing a stage that already has a
    timestamp keeps the original timestamp and artifact.
    """

    def __init__(self, item):
        self.item = item

    @property
    def timeline(self) -> dict:
        return self.item.timeline

    def is_done(self, stage: str) -> bool:
        return self.timeline.get(stage) is not None

    def pending_stages(self) -> list[str]:
        return [s for s in STAGES if not self.is_done(s)]

    def all_done(self) -> bool:
        return not self.pending_stages()

    def start_stage(self, stage: str):
        self.item.current_stage = stage

    def complete_stage(self, stage: str, artifact, now: datetime | None = None) -> bool:
        """Record a stage's artifact and timestamp. Returns False if already done."""
        if stage not in STAGES:
            raise KeyError(f"Unknown stage: {stage}")
        if self.is_done(stage):
            return False
        now = now or utc_now()
        self.item.artifacts[stage] = artifact
        self.timeline[stage] = iso_utc(now)
        if self.item.current_stage == stage:
            self.item.current_stage = None
        return True

    def progress(self) -> int:
        """Percentage of stages with a completion timestamp."""
        done = sum(1 for s in STAGES if self.is_done(s))
        return round(done / len(STAGES) * 100)

    def summary(self) -> str:
        """Human-readable status of all stages."""
        lines = []
        for stage in STAGES:
            artifact = self.item.artifacts.get(stage)
            if not self.is_done(stage):
                marker = ">" if self.item.current_stage == stage else " "
            elif artifact is not None and artifact.simulated:
                marker = "~"
            else:
                marker = "+"
            lines.append(f"  [{marker}] {stage}")
        return "\n".join(lines)
