"""Script formatting for narration + duration estimate."""

import json
import math
from pathlib import Path

from .log import log
from .models import ContentBrief, Script

WORDS_PER_MINUTE = 150


def format_script_for_tts(script: Script) -> str:
    """Flatten the structured script into plain narration text."""
    parts = []

    if script.hook:
        parts.append(script.hook)

    if script.introduction:
        parts.append("\n".join(script.introduction))

    for i, section in enumerate(script.sections, 1):
        block = [f"Section {i}: {section.title}"] if section.title else []
        block.extend(section.lines)
        if block:
            parts.append("\n".join(block))

    closing = list(script.recap)
    if script.final_thought:
        closing.append(script.final_thought)
    if closing:
        parts.append("\n".join(closing))

    if script.call_to_action:
        parts.append("\n".join(script.call_to_action))

    return "\n\n".join(parts) + "\n"


def estimate_duration(script: Script) -> int:
    """Seconds of narration: the script's own figure, else 150 wpm (min 30s)."""
    if script.duration > 0:
        return script.duration
    words = len(format_script_for_tts(script).split())
    return max(30, math.ceil(words / WORDS_PER_MINUTE * 60))


def write_script_files(brief: ContentBrief, out_dir: Path) -> tuple[Path, Path]:
    """Write the structured script (JSON) and the narration text next to it."""
    out_dir.mkdir(parents=True, exist_ok=True)
    json_path = out_dir / "script.json"
    tts_path = out_dir / "script_tts.txt"

    json_path.write_text(
        json.dumps(brief.to_dict()["script"], indent=2, ensure_ascii=False), encoding="utf-8"
    )
    tts_path.write_text(format_script_for_tts(brief.script), encoding="utf-8")
    log(f"Script saved: {tts_path.name}")
    return json_path, tts_path
