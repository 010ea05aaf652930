"""Key resolution, paths, automation settings, and setup wizard."""

import json
import os
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path

# ─────────────────────────────────────────────────────
# Home directory: all data lives here
# ─────────────────────────────────────────────────────
HOME_DIR = Path(os.environ.get("AUTOTUBE_HOME", Path.home() / ".autotube"))
MEDIA_DIR = HOME_DIR / "media"
LOGS_DIR = HOME_DIR / "logs"
BACKUPS_DIR = HOME_DIR / "backups"
CONFIG_FILE = HOME_DIR / "config.json"
DB_PATH = HOME_DIR / "autotube.db"

# ─────────────────────────────────────────────────────
# Media constants
# ─────────────────────────────────────────────────────
VIDEO_WIDTH = 1920
VIDEO_HEIGHT = 1080
THUMB_WIDTH = 1280
THUMB_HEIGHT = 720

VOICE_ID = os.environ.get("ELEVENLABS_VOICE_ID", "JBFqnCBsd6RMkjVDRZzb")

# ─────────────────────────────────────────────────────
# Automation defaults, override via config.json "automation"
# ─────────────────────────────────────────────────────
POSTING_FREQUENCIES = ("daily", "every-2-days", "3-per-week", "weekly")

DEFAULT_SCHEDULES = {
    "daily-content-generation": "0 6 * * *",
    "publish-queue-processing": "*/15 * * * *",
    "daily-analytics": "0 9 * * *",
    "weekly-strategy-review": "0 8 * * sun",
    "daily-optimization": "0 22 * * *",
    "storage-maintenance": "0 3 * * sat",
    "health-check": "0 * * * *",
}

AUTOMATION_DEFAULTS = {
    "posting_frequency": "daily",
    "content_buffer_days": 3,
    "default_publish_hour": 14,
    "privacy_status": "private",
    "stage_retries": 0,
    "optimal_days": ["Tuesday", "Wednesday", "Thursday"],
    "optimal_hours": [14, 15, 16],
    "channel_context": "",
    "topics": [],
    "schedules": DEFAULT_SCHEDULES,
}


# ─────────────────────────────────────────────────────
# Utilities
# ─────────────────────────────────────────────────────
def write_secret_file(path: Path, content: str):
    """Write a file with 0600 permissions (owner read/write only).

    Uses os.open() with explicit mode to avoid a TOCTOU race where the file
    briefly exists with default (world-readable) permissions.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)


def run_cmd(cmd, check=True, capture=False, **kwargs):
    if capture:
        r = subprocess.run(cmd, capture_output=True, text=True, **kwargs)
        if check and r.returncode != 0:
            raise RuntimeError(r.stderr)
        return r
    subprocess.run(cmd, check=check, **kwargs)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc(dt: datetime) -> str:
    """Canonical persisted form: second precision, explicit +00:00 offset."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ─────────────────────────────────────────────────────
# API key resolution: env, then config.json
# ─────────────────────────────────────────────────────
def _get_key(name: str) -> str:
    """Resolve an API key: environment variable first, then config.json."""
    val = os.environ.get(name)
    if val:
        return val
    return load_config().get(name) or ""


def get_anthropic_key() -> str:
    return _get_key("ANTHROPIC_API_KEY")


def get_elevenlabs_key() -> str:
    return _get_key("ELEVENLABS_API_KEY")


def get_gemini_key() -> str:
    return _get_key("GEMINI_API_KEY")


def has_claude_cli() -> bool:
    """Check if the `claude` CLI is available."""
    import shutil
    return shutil.which("claude") is not None


def call_claude_cli(prompt: str, model: str = "claude-sonnet-4-6") -> str:
    """Call Claude via the `claude` CLI in non-interactive mode."""
    import shutil
    claude_path = shutil.which("claude")
    if not claude_path:
        raise RuntimeError("claude CLI not found. Install it or set ANTHROPIC_API_KEY.")

    r = subprocess.run(
        [claude_path, "--print", "--model", model, "-p", prompt],
        capture_output=True,
        text=True,
        timeout=180,
    )
    if r.returncode != 0:
        raise RuntimeError(f"claude CLI failed: {r.stderr[:300]}")
    return r.stdout.strip()


def get_anthropic_client():
    """Anthropic client when an API key is available, else None (use the CLI)."""
    import anthropic

    api_key = get_anthropic_key()
    if api_key:
        return anthropic.Anthropic(api_key=api_key)
    return None


def get_claude_backend() -> str:
    """Return "api" when ANTHROPIC_API_KEY is set, "cli" when the claude CLI exists."""
    if get_anthropic_key():
        return "api"
    if has_claude_cli():
        return "cli"
    raise RuntimeError(
        "No Claude access found. Either:\n"
        "  1. Set ANTHROPIC_API_KEY in env or ~/.autotube/config.json\n"
        "  2. Install the claude CLI and log in"
    )


def get_youtube_token_path() -> Path:
    token_path = HOME_DIR / "youtube_token.json"
    if token_path.exists():
        return token_path
    raise FileNotFoundError(
        f"YouTube OAuth token not found at {token_path}.\n"
        "Run: python3 scripts/setup_youtube_oauth.py"
    )


def load_config() -> dict:
    """Load config.json; missing or unreadable files yield {}."""
    if CONFIG_FILE.exists():
        try:
            return json.loads(CONFIG_FILE.read_text())
        except (OSError, ValueError):
            pass
    return {}


def save_config(config: dict):
    """Save config.json with restricted permissions."""
    HOME_DIR.mkdir(parents=True, exist_ok=True)
    write_secret_file(CONFIG_FILE, json.dumps(config, indent=2))


def get_automation_settings(config: dict | None = None) -> dict:
    """Merge the config.json "automation" section over the defaults."""
    if config is None:
        config = load_config()
    overrides = config.get("automation", {}) or {}

    settings = dict(AUTOMATION_DEFAULTS)
    settings.update({k: v for k, v in overrides.items() if k != "schedules"})
    settings["schedules"] = {**DEFAULT_SCHEDULES, **(overrides.get("schedules") or {})}

    if settings["posting_frequency"] not in POSTING_FREQUENCIES:
        settings["posting_frequency"] = "daily"
    settings["content_buffer_days"] = int(settings["content_buffer_days"])
    settings["stage_retries"] = max(0, int(settings["stage_retries"]))
    return settings


# ─────────────────────────────────────────────────────
# First-run interactive setup
# ─────────────────────────────────────────────────────
def run_setup():
    """Interactive first-run setup — saves config.json and runs YouTube OAuth."""
    print("\n" + "=" * 60)
    print("  Autotube — First-Run Setup")
    print("=" * 60)
    print("\nKeys are saved to ~/.autotube/config.json\n")

    HOME_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()

    prompts = [
        ("ANTHROPIC_API_KEY", "Anthropic API key (content briefs)"),
        ("ELEVENLABS_API_KEY", "ElevenLabs API key (narration, optional)"),
        ("GEMINI_API_KEY", "Google Gemini API key (thumbnails + visuals, optional)"),
    ]
    for i, (name, label) in enumerate(prompts, 1):
        print(f"{i}. {label}")
        key = input(f"   {name} (press Enter to skip): ").strip()
        if key:
            config[name] = key

    automation = config.setdefault("automation", {})
    freq = input(
        f"\n   Posting frequency {POSTING_FREQUENCIES} [daily]: "
    ).strip()
    if freq in POSTING_FREQUENCIES:
        automation["posting_frequency"] = freq

    save_config(config)
    print(f"\n  Config saved to {CONFIG_FILE}")

    run_oauth = input("\n   Run YouTube OAuth now? (y/N): ").strip().lower()
    if run_oauth == "y":
        oauth_script = Path(__file__).resolve().parent.parent / "scripts" / "setup_youtube_oauth.py"
        if oauth_script.exists():
            subprocess.run([sys.executable, str(oauth_script)])
        else:
            print(f"   OAuth script not found at {oauth_script}")
    else:
        print("   Skipping — run 'python3 scripts/setup_youtube_oauth.py' before publishing.")

    print("\n  Setup complete.\n")
