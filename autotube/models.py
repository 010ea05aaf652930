"""Content brief, artifact, production item, and publish entry records."""

import secrets
import time
from dataclasses import dataclass, field, asdict

from .state import STAGES, empty_timeline

# Production item status
PROCESSING = "processing"
READY = "ready"
FAILED = "failed"

# Publish entry status
SCHEDULED = "scheduled"
PAUSED = "paused"
PUBLISHING = "publishing"  # claimed by one process, upload in flight
PUBLISHED = "published"
# FAILED is shared with production items

ENTRY_STATUSES = (SCHEDULED, PAUSED, PUBLISHING, PUBLISHED, FAILED)


def new_id(prefix: str) -> str:
    """Opaque id: prefix, millisecond timestamp, random suffix."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _str_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    return [str(value)]


# ─────────────────────────────────────────────────────
# Content brief
# ─────────────────────────────────────────────────────
@dataclass
class Strategy:
    topic: str
    angle: str = ""
    estimated_views: int = 0
    competitor_analysis: list = field(default_factory=list)
    best_publish_time: str | None = None  # ISO-8601 hint
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Strategy":
        try:
            views = int(data.get("estimated_views") or 0)
        except (TypeError, ValueError):
            views = 0
        competitors = data.get("competitor_analysis") or []
        if not isinstance(competitors, list):
            competitors = [competitors]
        return cls(
            topic=str(data.get("topic", "")),
            angle=str(data.get("angle", "")),
            estimated_views=max(0, views),
            competitor_analysis=competitors,
            best_publish_time=data.get("best_publish_time") or None,
            keywords=_str_list(data.get("keywords")),
        )


@dataclass
class Section:
    """One narrated section; structured steps/items are flattened to lines."""
    title: str
    lines: list[str] = field(default_factory=list)
    duration: int | None = None  # seconds

    @classmethod
    def from_dict(cls, data: dict) -> "Section":
        lines = []
        content = data.get("content")
        if isinstance(content, list):
            lines = [c for c in content if isinstance(c, str) and not c.startswith("[")]
        elif isinstance(content, str) and content:
            lines = [content]
        for step in data.get("steps") or []:
            lines.append(f"{step.get('title', '')}. {step.get('description', '')}")
            if step.get("tip"):
                lines.append(str(step["tip"]))
        for item in data.get("items") or []:
            lines.append(
                f"Number {item.get('number', '')}: {item.get('title', '')}. {item.get('description', '')}".strip()
            )
        for line in data.get("lines") or []:
            lines.append(str(line))
        duration = data.get("duration")
        try:
            duration = int(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration = None
        return cls(title=str(data.get("title", "")), lines=lines, duration=duration)


@dataclass
class Script:
    title: str
    hook: str = ""
    introduction: list[str] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    recap: list[str] = field(default_factory=list)
    final_thought: str = ""
    call_to_action: list[str] = field(default_factory=list)
    duration: int = 0  # seconds

    @classmethod
    def from_dict(cls, data: dict) -> "Script":
        if not data.get("title"):
            raise ValueError("script requires a title")
        hook = data.get("hook") or ""
        if isinstance(hook, dict):
            hook = hook.get("text", "")
        intro = data.get("introduction") or []
        if isinstance(intro, dict):
            intro = [intro.get(k, "") for k in ("greeting", "topic_intro", "value_proposition", "credibility")]
        conclusion = data.get("conclusion")
        if isinstance(conclusion, dict):
            recap = conclusion.get("recap") or []
            final_thought = conclusion.get("final_thought", "")
        elif conclusion:
            recap, final_thought = [], str(conclusion)
        else:
            # flattened form written by to_dict()
            recap = data.get("recap") or []
            final_thought = data.get("final_thought", "")
        cta = data.get("call_to_action") or []
        if isinstance(cta, dict):
            cta = [cta.get(k, "") for k in ("subscribe", "like", "comment")]
        sections = data.get("sections")
        if sections is None:
            sections = (data.get("main_content") or {}).get("sections", [])
        try:
            duration = int(data.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0
        return cls(
            title=str(data["title"]),
            hook=str(hook),
            introduction=[s for s in _str_list(intro) if s],
            sections=[Section.from_dict(s) for s in sections if isinstance(s, dict)],
            recap=_str_list(recap),
            final_thought=str(final_thought or ""),
            call_to_action=[s for s in _str_list(cta) if s],
            duration=duration,
        )


@dataclass
class ThumbnailSeed:
    prompt: str = ""
    path: str = ""  # optional pre-made image


@dataclass
class SEO:
    title: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    category_id: str = "22"
    language: str = "en"

    @classmethod
    def from_dict(cls, data: dict) -> "SEO":
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        return cls(
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            tags=_str_list(tags),
            category_id=str(data.get("category_id", "22")),
            language=str(data.get("language", "en")),
        )


@dataclass
class ContentBrief:
    """Input to the production pipeline."""
    strategy: Strategy
    script: Script
    thumbnail: ThumbnailSeed = field(default_factory=ThumbnailSeed)
    seo: SEO = field(default_factory=SEO)

    def __post_init__(self):
        if not self.seo.title:
            self.seo.title = self.script.title

    @classmethod
    def from_dict(cls, data: dict) -> "ContentBrief":
        thumb = data.get("thumbnail") or {}
        if isinstance(thumb, str):
            thumb = {"prompt": thumb}
        return cls(
            strategy=Strategy.from_dict(data.get("strategy") or {}),
            script=Script.from_dict(data.get("script") or {}),
            thumbnail=ThumbnailSeed(
                prompt=str(thumb.get("prompt", "")), path=str(thumb.get("path", ""))
            ),
            seo=SEO.from_dict(data.get("seo") or {}),
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ─────────────────────────────────────────────────────
# Artifacts
# ─────────────────────────────────────────────────────
REAL = "real"
SIMULATED = "simulated"


@dataclass
class Artifact:
    """Either a real file (path) or a simulated placeholder (descriptor)."""
    kind: str
    path: str = ""
    meta: dict = field(default_factory=dict)
    error: str = ""

    @property
    def simulated(self) -> bool:
        return self.kind == SIMULATED

    @classmethod
    def real(cls, path, **meta) -> "Artifact":
        return cls(kind=REAL, path=str(path), meta=meta)

    @classmethod
    def placeholder(cls, descriptor: dict, error: str = "") -> "Artifact":
        return cls(kind=SIMULATED, meta=descriptor, error=error)

    def to_dict(self) -> dict:
        d = {"kind": self.kind, "path": self.path, "meta": self.meta}
        if self.simulated:
            d["simulated"] = True
            d["error"] = self.error
        return d

    @classmethod
    def from_dict(cls, data: dict | None) -> "Artifact | None":
        if not data:
            return None
        return cls(
            kind=data.get("kind", REAL),
            path=data.get("path", ""),
            meta=data.get("meta") or {},
            error=data.get("error", ""),
        )


# ─────────────────────────────────────────────────────
# Production item + publish entry
# ─────────────────────────────────────────────────────
@dataclass
class ProductionItem:
    id: str
    brief: ContentBrief
    priority: int
    scheduled_publish_time: str
    created_at: str
    status: str = PROCESSING
    artifacts: dict = field(default_factory=lambda: {s: None for s in STAGES})
    timeline: dict = field(default_factory=empty_timeline)
    current_stage: str | None = None  # stage in progress
    error: str = ""
    ready_at: str | None = None

    @property
    def title(self) -> str:
        return self.brief.script.title

    def simulated_stages(self) -> list[str]:
        return [s for s in STAGES if self.artifacts.get(s) and self.artifacts[s].simulated]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "scheduled_publish_time": self.scheduled_publish_time,
            "brief": self.brief.to_dict(),
            "artifacts": {s: a.to_dict() if a else None for s, a in self.artifacts.items()},
            "timeline": dict(self.timeline),
            "current_stage": self.current_stage,
            "error": self.error,
            "created_at": self.created_at,
            "ready_at": self.ready_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductionItem":
        timeline = empty_timeline()
        timeline.update(data.get("timeline") or {})
        artifacts = {s: None for s in STAGES}
        for stage, raw in (data.get("artifacts") or {}).items():
            artifacts[stage] = Artifact.from_dict(raw)
        return cls(
            id=data["id"],
            brief=ContentBrief.from_dict(data["brief"]),
            priority=int(data.get("priority", 50)),
            scheduled_publish_time=data["scheduled_publish_time"],
            created_at=data["created_at"],
            status=data.get("status", PROCESSING),
            artifacts=artifacts,
            timeline=timeline,
            current_stage=data.get("current_stage"),
            error=data.get("error") or "",
            ready_at=data.get("ready_at"),
        )


@dataclass
class PublishEntry:
    id: str
    production_id: str
    title: str
    publish_time: str  # only meaningful while scheduled/paused
    priority: int
    created_at: str
    status: str = SCHEDULED
    metadata: dict = field(default_factory=dict)
    external_id: str | None = None
    url: str | None = None
    published_at: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PublishEntry":
        return cls(
            id=data["id"],
            production_id=data["production_id"],
            title=data["title"],
            publish_time=data["publish_time"],
            priority=int(data.get("priority", 50)),
            created_at=data["created_at"],
            status=data.get("status", SCHEDULED),
            metadata=data.get("metadata") or {},
            external_id=data.get("external_id"),
            url=data.get("url"),
            published_at=data.get("published_at"),
            error=data.get("error"),
        )
