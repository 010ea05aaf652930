"""StageGenerator ABC + the six production stages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from .assemble import assemble_video
from .captions import generate_captions
from .errors import StageError
from .models import Artifact, ContentBrief, ProductionItem
from .script import estimate_duration, format_script_for_tts, write_script_files
from .state import STAGE_LABELS, STAGES
from .thumbnail import generate_thumbnail
from .visuals import build_visual_prompts, generate_visuals, slide_plan
from .voiceover import generate_narration

INTRO_WEIGHT = 20  # seconds of hook + introduction on the title frame


@dataclass
class StageContext:
    """What a stage sees: the item (with earlier artifacts) and its work dir."""
    item: ProductionItem
    work_dir: Path

    @property
    def brief(self) -> ContentBrief:
        return self.item.brief

    def artifact(self, stage: str) -> Artifact | None:
        return self.item.artifacts.get(stage)

    def real_artifact(self, stage: str) -> Artifact | None:
        artifact = self.artifact(stage)
        if artifact is None or artifact.simulated:
            return None
        return artifact


class StageGenerator(ABC):
    """Produces one artifact; raising means the pipeline substitutes placeholder()."""

    name: str = "unknown"

    @abstractmethod
    def generate(self, ctx: StageContext) -> Artifact:
        ...

    def placeholder(self, ctx: StageContext, error: str) -> Artifact:
        return Artifact.placeholder(self.describe(ctx), error=error)

    def describe(self, ctx: StageContext) -> dict:
        """Descriptor of what the real artifact would have been."""
        return {"message": f"{STAGE_LABELS.get(self.name, self.name)} would be generated here"}


class ScriptStage(StageGenerator):
    name = "script"

    def generate(self, ctx):
        json_path, tts_path = write_script_files(ctx.brief, ctx.work_dir)
        return Artifact.real(
            tts_path,
            json_path=str(json_path),
            duration=estimate_duration(ctx.brief.script),
            sections=len(ctx.brief.script.sections),
        )

    def describe(self, ctx):
        return {
            "tts_text": format_script_for_tts(ctx.brief.script),
            "duration": estimate_duration(ctx.brief.script),
        }


class ThumbnailStage(StageGenerator):
    name = "thumbnail"

    def generate(self, ctx):
        brief = ctx.brief
        path = generate_thumbnail(
            brief.seo.title or brief.script.title,
            brief.thumbnail.prompt,
            ctx.work_dir,
            seed_path=brief.thumbnail.path,
        )
        return Artifact.real(path, dimensions={"width": 1280, "height": 720})

    def describe(self, ctx):
        return {
            "title": ctx.brief.script.title,
            "prompt": ctx.brief.thumbnail.prompt,
            "dimensions": {"width": 1280, "height": 720},
        }


class VisualsStage(StageGenerator):
    name = "visuals"

    def generate(self, ctx):
        out_dir = ctx.work_dir / "visuals"
        frames = generate_visuals(build_visual_prompts(ctx.brief.script), out_dir)
        return Artifact.real(out_dir, frames=[str(f) for f in frames])

    def describe(self, ctx):
        return {"slides": slide_plan(ctx.brief.script)}


class AudioStage(StageGenerator):
    name = "audio"

    def _narration_text(self, ctx) -> str:
        script_artifact = ctx.real_artifact("script")
        if script_artifact and Path(script_artifact.path).exists():
            return Path(script_artifact.path).read_text(encoding="utf-8")
        return format_script_for_tts(ctx.brief.script)

    def generate(self, ctx):
        path = generate_narration(self._narration_text(ctx), ctx.work_dir)
        return Artifact.real(path, duration=estimate_duration(ctx.brief.script), format="mp3")

    def describe(self, ctx):
        return {
            "message": "narration would be generated here",
            "text_chars": len(format_script_for_tts(ctx.brief.script)),
            "duration": estimate_duration(ctx.brief.script),
        }


class CaptionsStage(StageGenerator):
    name = "captions"

    def generate(self, ctx):
        path = generate_captions(ctx.brief.script, ctx.work_dir)
        return Artifact.real(path, format="srt", language=ctx.brief.seo.language)


class VideoStage(StageGenerator):
    name = "video"

    def generate(self, ctx):
        visuals = ctx.real_artifact("visuals")
        audio = ctx.real_artifact("audio")
        if visuals is None or audio is None:
            raise StageError("video", "final assembly needs real visuals and narration")
        frames = [Path(f) for f in visuals.meta.get("frames", [])]
        # title frame covers hook + intro, then one frame per section
        weights = [INTRO_WEIGHT] + [s.duration or 60 for s in ctx.brief.script.sections]
        path = assemble_video(frames, Path(audio.path), ctx.work_dir / "final.mp4", weights=weights)
        return Artifact.real(path, duration=audio.meta.get("duration"), resolution="1920x1080")

    def describe(self, ctx):
        return {
            "message": "final video would be assembled here",
            "assets": {
                stage: artifact.to_dict()
                for stage, artifact in ctx.item.artifacts.items()
                if artifact is not None and stage != self.name
            },
        }


def default_generators() -> dict[str, StageGenerator]:
    generators = [
        ScriptStage(), ThumbnailStage(), VisualsStage(),
        AudioStage(), CaptionsStage(), VideoStage(),
    ]
    by_name = {g.name: g for g in generators}
    return {stage: by_name[stage] for stage in STAGES}
