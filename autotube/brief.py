"""Claude content briefs — strategy, script, thumbnail prompt, and SEO in one call."""

import json

from .config import call_claude_cli, get_anthropic_client, get_claude_backend
from .log import log
from .models import ContentBrief
from .retry import with_retry
from .store import Store

TOPIC_CURSOR_KEY = "topic_cursor"


@with_retry(max_retries=2, base_delay=3.0)
def _call_claude(prompt: str) -> str:
    """Call Claude via API key or the `claude` CLI."""
    backend = get_claude_backend()

    if backend == "api":
        client = get_anthropic_client()
        msg = client.messages.create(
            model="claude-sonnet-4-6",
            max_tokens=4000,
            messages=[{"role": "user", "content": prompt}],
        )
        return msg.content[0].text.strip()
    else:
        log("Using Claude CLI for brief generation...")
        return call_claude_cli(prompt)


def _unwrap_json(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("```")[1]
        if raw.startswith("json"):
            raw = raw[4:]
        raw = raw.strip()
    return raw


def next_topic(topics: list[str], store: Store | None = None) -> str | None:
    """Rotate through configured seed topics; the cursor lives in settings."""
    if not topics:
        return None
    if store is None:
        return topics[0]
    try:
        cursor = int(store.get_setting(TOPIC_CURSOR_KEY, "0"))
    except ValueError:
        cursor = 0
    topic = topics[cursor % len(topics)]
    store.set_setting(TOPIC_CURSOR_KEY, str(cursor + 1))
    return topic


def build_prompt(topic: str | None, channel_context: str = "") -> str:
    channel_note = f"\nChannel context: {channel_context}" if channel_context else ""
    topic_note = (
        f"TOPIC: {topic}"
        if topic
        else "TOPIC: choose one evergreen, high-interest topic that suits the channel"
    )

    return f"""You are planning one long-form YouTube video (8-12 minutes spoken).{channel_note}

{topic_note}

RULES:
- Engaging hook in the first 10 seconds
- 3-5 sections, each with a short title and 2-4 spoken lines
- Clear, conversational voiceover, no jargon
- Honest estimate of views; leave competitor_analysis empty if unsure
- best_publish_time is an ISO-8601 UTC timestamp within the next 7 days, or null

Output JSON exactly:
{{
  "strategy": {{
    "topic": "...",
    "angle": "...",
    "estimated_views": 10000,
    "competitor_analysis": [],
    "best_publish_time": null,
    "keywords": ["..."]
  }},
  "script": {{
    "title": "...",
    "hook": "...",
    "introduction": ["..."],
    "sections": [{{"title": "...", "content": ["..."], "duration": 90}}],
    "conclusion": {{"recap": ["..."], "final_thought": "..."}},
    "call_to_action": ["..."],
    "duration": 600
  }},
  "thumbnail": {{"prompt": "..."}},
  "seo": {{
    "title": "...",
    "description": "...",
    "tags": ["tag1", "tag2"],
    "category_id": "22",
    "language": "en"
  }}
}}"""


def parse_brief(raw: str) -> ContentBrief:
    """Claude output -> ContentBrief. Raises ValueError on malformed JSON or missing title."""
    data = json.loads(_unwrap_json(raw))
    if not isinstance(data, dict):
        raise ValueError("brief must be a JSON object")
    return ContentBrief.from_dict(data)


def generate_brief(
    topic: str | None = None, channel_context: str = "", topics: list[str] | None = None,
    store: Store | None = None,
) -> ContentBrief:
    """Ask Claude for a complete content brief."""
    if topic is None:
        topic = next_topic(topics or [], store)
    log(f"Generating content brief{f' for: {topic}' if topic else ''}...")
    brief = parse_brief(_call_claude(build_prompt(topic, channel_context)))
    log(f"Brief ready: {brief.script.title}")
    return brief
