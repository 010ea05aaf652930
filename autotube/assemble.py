"""ffmpeg video assembly — animated visuals + narration."""

from pathlib import Path

from .config import run_cmd
from .log import log
from .visuals import animate_frame

EFFECTS = ["zoom_in", "pan_right", "zoom_out"]
# Concat boundaries drop a few frames; pad each clip slightly
CLIP_PAD = 0.1


def get_audio_duration(path: Path) -> float:
    """Duration of an audio file in seconds, via ffprobe."""
    r = run_cmd(
        ["ffprobe", "-v", "quiet", "-show_entries", "format=duration",
         "-of", "csv=p=0", str(path)],
        capture=True,
    )
    return float(r.stdout.strip())


def frame_durations(total: float, count: int, weights: list[float] | None = None) -> list[float]:
    """Split `total` seconds across `count` frames, proportionally to weights when usable."""
    if weights and len(weights) == count and all(w > 0 for w in weights):
        scale = total / sum(weights)
        return [w * scale for w in weights]
    return [total / count] * count


def assemble_video(
    frames: list[Path], narration: Path, out_path: Path, weights: list[float] | None = None
) -> Path:
    """Animate each frame for its share of the narration, concat, then mux with the audio."""
    if not frames:
        raise ValueError("no frames to assemble")
    log(f"Assembling video from {len(frames)} frames...")
    work_dir = out_path.parent
    durations = frame_durations(get_audio_duration(narration), len(frames), weights)

    clips = []
    for i, (frame, seconds) in enumerate(zip(frames, durations)):
        clip = work_dir / f"anim_{i}.mp4"
        animate_frame(frame, clip, seconds + CLIP_PAD, EFFECTS[i % len(EFFECTS)])
        clips.append(clip)

    concat_file = work_dir / "concat.txt"
    concat_file.write_text("\n".join(f"file '{p}'" for p in clips))

    slideshow = work_dir / "slideshow.mp4"
    run_cmd([
        "ffmpeg", "-f", "concat", "-safe", "0", "-i", str(concat_file),
        "-c:v", "libx264", "-preset", "medium", "-crf", "20", "-pix_fmt", "yuv420p",
        str(slideshow), "-y", "-loglevel", "error",
    ])

    run_cmd([
        "ffmpeg", "-i", str(slideshow), "-i", str(narration),
        "-c:v", "copy", "-c:a", "aac", "-b:a", "192k", "-shortest",
        "-movflags", "+faststart",
        str(out_path), "-y", "-loglevel", "error",
    ])
    log(f"Video assembled: {out_path}")
    return out_path
