"""Gemini visual assets for the slideshow + Ken Burns animation."""

import base64
from pathlib import Path

import requests
from PIL import Image

from .config import VIDEO_WIDTH, VIDEO_HEIGHT, get_gemini_key, run_cmd
from .errors import StageError
from .log import log
from .models import Script
from .retry import with_retry

GEMINI_IMAGE_URL = (
    "https://generativelanguage.googleapis.com/v1beta"
    "/models/gemini-2.0-flash-exp-image-generation:generateContent"
)

STYLE_SUFFIX = "ethereal, dreamy, soft lighting, cinematic composition, high quality, 16:9, digital art"
MAX_VISUALS = 5
MIN_VISUALS = 3


@with_retry(max_retries=3, base_delay=2.0)
def generate_image(prompt: str, output_path: Path, api_key: str):
    """Generate a 16:9 image via Gemini native image generation."""
    body = {
        "contents": [{"parts": [{"text": f"Generate a 16:9 landscape image: {prompt}"}]}],
        "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
    }
    r = requests.post(
        GEMINI_IMAGE_URL, json=body, timeout=90,
        headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
    )
    if r.status_code != 200:
        try:
            detail = r.json().get("error", {}).get("message", r.text[:200])
        except ValueError:
            detail = r.text[:200]
        raise RuntimeError(f"Gemini API {r.status_code}: {detail}")

    data = r.json()
    for part in data.get("candidates", [{}])[0].get("content", {}).get("parts", []):
        if "inlineData" in part:
            output_path.write_bytes(base64.b64decode(part["inlineData"]["data"]))
            return
    raise RuntimeError("No image in Gemini response")


def build_visual_prompts(script: Script) -> list[str]:
    """Title + section titles, padded to 3 and capped at 5 for cost control."""
    prompts = [f"{script.title}, {STYLE_SUFFIX}"]
    for section in script.sections:
        if section.title:
            prompts.append(f"{section.title}, {STYLE_SUFFIX}")
    while len(prompts) < MIN_VISUALS:
        prompts.append(f"abstract storytelling backdrop, {STYLE_SUFFIX}")
    return prompts[:MAX_VISUALS]


def slide_plan(script: Script) -> list[dict]:
    """Describe the slideshow that would be rendered (placeholder descriptor)."""
    slides = [{"type": "title_slide", "content": script.title, "duration": 3}]
    for section in script.sections:
        slides.append({"type": "section_title", "content": section.title, "duration": 2})
        slides.append({
            "type": "content_slide",
            "content": section.lines[:3],
            "duration": section.duration or 30,
        })
    slides.append({"type": "conclusion", "content": "Key Takeaways", "duration": 5})
    slides.append({"type": "subscribe_reminder", "content": "Subscribe for More!", "duration": 3})
    return slides


def _crop_to_frame(path: Path):
    """Resize/crop an image in place to the 16:9 video frame."""
    img = Image.open(path).convert("RGB")
    orig_w, orig_h = img.size
    scale = max(VIDEO_WIDTH / orig_w, VIDEO_HEIGHT / orig_h)
    new_w, new_h = int(orig_w * scale), int(orig_h * scale)
    img = img.resize((new_w, new_h), Image.LANCZOS)
    left = (new_w - VIDEO_WIDTH) // 2
    top = (new_h - VIDEO_HEIGHT) // 2
    img.crop((left, top, left + VIDEO_WIDTH, top + VIDEO_HEIGHT)).save(path)


def _fallback_frame(i: int, out_dir: Path) -> Path:
    """Solid colour frame for a single failed prompt."""
    colors = [(20, 20, 60), (40, 10, 40), (10, 30, 50)]
    img = Image.new("RGB", (VIDEO_WIDTH, VIDEO_HEIGHT), colors[i % len(colors)])
    path = out_dir / f"visual_{i}.png"
    img.save(path)
    return path


def generate_visuals(prompts: list[str], out_dir: Path) -> list[Path]:
    """Generate one frame per prompt.

    Individual failures get a solid colour frame; if no frame could be
    generated at all the stage fails.
    """
    api_key = get_gemini_key()
    if not api_key:
        raise StageError("visuals", "no GEMINI_API_KEY configured")

    out_dir.mkdir(parents=True, exist_ok=True)
    frames = []
    generated = 0
    for i, prompt in enumerate(prompts):
        out_path = out_dir / f"visual_{i}.png"
        log(f"Generating visual {i+1}/{len(prompts)} via Gemini...")
        try:
            generate_image(prompt, out_path, api_key)
            _crop_to_frame(out_path)
            frames.append(out_path)
            generated += 1
        except Exception as e:
            log(f"Visual {i+1} failed: {e} — using fallback frame")
            frames.append(_fallback_frame(i, out_dir))

    if generated == 0:
        raise StageError("visuals", "every visual prompt failed")
    return frames


def animate_frame(img_path: Path, out_path: Path, duration: float, effect: str = "zoom_in"):
    """Ken Burns animation on a single frame."""
    fps = 30
    frames = int(duration * fps)
    w, h = VIDEO_WIDTH, VIDEO_HEIGHT

    if effect == "zoom_in":
        vf = (
            f"scale={int(w * 1.12)}:{int(h * 1.12)},"
            f"zoompan=z='1.12-0.12*on/{frames}':x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
            f":d={frames}:s={w}x{h}:fps={fps}"
        )
    elif effect == "pan_right":
        vf = (
            f"scale={int(w * 1.15)}:{int(h * 1.15)},"
            f"zoompan=z=1.15:x='0.15*iw*on/{frames}':y='ih*0.075'"
            f":d={frames}:s={w}x{h}:fps={fps}"
        )
    else:  # zoom_out
        vf = (
            f"scale={int(w * 1.12)}:{int(h * 1.12)},"
            f"zoompan=z='1.0+0.12*on/{frames}':x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
            f":d={frames}:s={w}x{h}:fps={fps}"
        )

    run_cmd([
        "ffmpeg", "-loop", "1", "-i", str(img_path),
        "-vf", vf, "-t", str(duration), "-r", str(fps),
        "-pix_fmt", "yuv420p", str(out_path), "-y", "-loglevel", "quiet",
    ])
