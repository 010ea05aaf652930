"""ElevenLabs narration for long-form scripts.

Scripts run to several thousand characters, so the text is sent in
paragraph-aligned chunks and the MP3 responses are concatenated.
"""

from pathlib import Path

import requests

from .config import VOICE_ID, get_elevenlabs_key
from .errors import StageError
from .log import log
from .retry import with_retry

TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
MAX_CHUNK_CHARS = 4500


def split_for_tts(text: str, limit: int = MAX_CHUNK_CHARS) -> list[str]:
    """Group paragraphs into chunks of at most `limit` characters.

    A single paragraph longer than the limit is split on sentence ends,
    falling back to a hard cut.
    """
    pieces = []
    for para in (p.strip() for p in text.split("\n\n")):
        if not para:
            continue
        while len(para) > limit:
            cut = para.rfind(". ", 0, limit)
            cut = cut + 1 if cut > 0 else limit
            pieces.append(para[:cut].strip())
            para = para[cut:].strip()
        if para:
            pieces.append(para)

    chunks, current = [], ""
    for piece in pieces:
        candidate = f"{current}\n\n{piece}" if current else piece
        if len(candidate) > limit:
            chunks.append(current)
            current = piece
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


@with_retry(max_retries=3, base_delay=2.0)
def _call_elevenlabs(text: str, voice_id: str, api_key: str) -> bytes:
    r = requests.post(
        TTS_URL.format(voice_id=voice_id),
        headers={"xi-api-key": api_key, "Content-Type": "application/json"},
        json={
            "text": text,
            "model_id": "eleven_multilingual_v2",
            "voice_settings": {"stability": 0.6, "similarity_boost": 0.75, "use_speaker_boost": True},
        },
        timeout=180,
    )
    if r.status_code != 200:
        raise RuntimeError(f"ElevenLabs {r.status_code}: {r.text[:200]}")
    return r.content


def generate_narration(text: str, out_dir: Path, voice_id: str = VOICE_ID) -> Path:
    """Narrate the TTS text to out_dir/narration.mp3."""
    api_key = get_elevenlabs_key()
    if not api_key:
        raise StageError("audio", "no ELEVENLABS_API_KEY configured")
    chunks = split_for_tts(text)
    if not chunks:
        raise StageError("audio", "narration text is empty")

    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "narration.mp3"
    log(f"Generating narration via ElevenLabs ({len(chunks)} chunks)...")
    with open(out_path, "wb") as f:
        for chunk in chunks:
            f.write(_call_elevenlabs(chunk, voice_id, api_key))
    log(f"Narration saved: {out_path.name}")
    return out_path
