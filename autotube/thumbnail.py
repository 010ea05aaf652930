"""Thumbnail generation — Gemini image (16:9) + Pillow title overlay."""

import shutil
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from .config import THUMB_WIDTH, THUMB_HEIGHT, get_gemini_key
from .errors import StageError
from .log import log
from .visuals import generate_image

FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
    "/System/Library/Fonts/SFNSDisplay.ttf",
]


def _load_font(size: int):
    for font_name in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(font_name, size)
        except OSError:
            continue
    return ImageFont.load_default()


def _wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> list[str]:
    """Greedy word-wrap for Pillow text rendering."""
    lines = []
    current = ""
    for word in text.split():
        test = f"{current} {word}".strip()
        bbox = draw.textbbox((0, 0), test, font=font)
        if bbox[2] - bbox[0] <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def overlay_title(image_path: Path, title: str, output_path: Path):
    """Overlay bold title text with drop shadow in the lower third."""
    img = Image.open(image_path).convert("RGB")
    img = img.resize((THUMB_WIDTH, THUMB_HEIGHT), Image.LANCZOS)
    draw = ImageDraw.Draw(img)
    font = _load_font(64)

    text_block = "\n".join(_wrap_text(draw, title, font, THUMB_WIDTH - 80))
    bbox = draw.multiline_textbbox((0, 0), text_block, font=font)
    text_w = bbox[2] - bbox[0]
    text_h = bbox[3] - bbox[1]
    x = (THUMB_WIDTH - text_w) // 2
    y = THUMB_HEIGHT - text_h - 60

    draw.multiline_text((x + 3, y + 3), text_block, fill=(0, 0, 0), font=font, align="center")
    draw.multiline_text((x, y), text_block, fill=(255, 255, 255), font=font, align="center")
    img.save(output_path)


def generate_thumbnail(title: str, prompt: str, out_dir: Path, seed_path: str = "") -> Path:
    """Produce the final thumbnail PNG.

    A pre-made seed image is reused as the background when it exists;
    otherwise Gemini generates one from the prompt.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    raw_path = out_dir / "thumb_raw.png"
    final_path = out_dir / "thumbnail.png"

    if seed_path and Path(seed_path).exists():
        log("Using supplied thumbnail image...")
        shutil.copy(seed_path, raw_path)
    else:
        api_key = get_gemini_key()
        if not api_key:
            raise StageError("thumbnail", "no GEMINI_API_KEY configured")
        log("Generating thumbnail via Gemini...")
        prompt = prompt or f'YouTube thumbnail for "{title}", eye-catching, high contrast'
        generate_image(prompt, raw_path, api_key)

    overlay_title(raw_path, title, final_path)
    log(f"Thumbnail saved: {final_path.name}")
    return final_path
