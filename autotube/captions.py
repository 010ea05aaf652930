"""SRT captions timed from the script structure."""

from pathlib import Path

from .log import log
from .models import Script

WORDS_PER_CAPTION = 8

# Fixed narration time (seconds) for the script parts without their own duration
HOOK_SECONDS = 5
INTRO_SECONDS = 15
SECTION_SECONDS = 60
CONCLUSION_SECONDS = 30


def _srt_time(seconds: float) -> str:
    """Format seconds to SRT timestamp: HH:MM:SS,mmm."""
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    ms = int(round((seconds % 1) * 1000))
    if ms == 1000:
        s, ms = s + 1, 0
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def _timed_blocks(script: Script) -> list[tuple[str, float]]:
    """(text, duration) for each narrated part, in speaking order."""
    blocks = []
    if script.hook:
        blocks.append((script.hook, HOOK_SECONDS))
    if script.introduction:
        blocks.append((" ".join(script.introduction), INTRO_SECONDS))
    for section in script.sections:
        text = " ".join(section.lines)
        if text:
            blocks.append((text, section.duration or SECTION_SECONDS))
    conclusion = " ".join(script.recap + ([script.final_thought] if script.final_thought else []))
    if conclusion:
        blocks.append((conclusion, CONCLUSION_SECONDS))
    return blocks


def build_srt(script: Script, words_per_caption: int = WORDS_PER_CAPTION) -> str:
    """Split each part into fixed-size word groups spread evenly over its duration."""
    cues = []
    start_of_block = 0.0
    for text, duration in _timed_blocks(script):
        words = text.split()
        chunks = [words[i:i + words_per_caption] for i in range(0, len(words), words_per_caption)]
        per_chunk = duration / len(chunks)
        for j, chunk in enumerate(chunks):
            start = start_of_block + j * per_chunk
            cues.append((start, start + per_chunk, " ".join(chunk)))
        start_of_block += duration

    lines = []
    for i, (start, end, text) in enumerate(cues, 1):
        lines.append(f"{i}\n{_srt_time(start)} --> {_srt_time(end)}\n{text}\n")
    return "\n".join(lines)


def generate_captions(script: Script, out_dir: Path) -> Path:
    srt = build_srt(script)
    if not srt:
        raise ValueError("script has no narrated text to caption")
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "captions.srt"
    out_path.write_text(srt, encoding="utf-8")
    log(f"SRT captions saved: {out_path.name}")
    return out_path
