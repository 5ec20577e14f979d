"""LLM-backed tag generation for tag-based memory search."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mnemos.agent.model_client import ModelClient
    from mnemos.memory.contracts import TagGenerator

logger = structlog.get_logger()

MAX_TAGS = 8

_TAG_PROMPT = (
    "Extract up to {max_tags} short lowercase topic tags that describe the "
    "following text. Reply with a JSON array of strings and nothing else.\n\n"
    "Text:\n{text}"
)

_SPLIT_RE = re.compile(r"[,\n]")


def parse_tags(raw: str, *, max_tags: int = MAX_TAGS) -> list[str]:
    """Parse a model reply into a clean, de-duplicated tag list.

    Accepts a JSON array or a comma/newline separated list.
    """
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.strip("`").removeprefix("json").strip()

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, list):
        candidates = [str(item) for item in parsed]
    else:
        candidates = _SPLIT_RE.split(raw)

    tags: list[str] = []
    for candidate in candidates:
        tag = candidate.strip().strip("\"'#-* ").lower()
        if tag and tag not in tags:
            tags.append(tag)
        if len(tags) >= max_tags:
            break
    return tags


def make_llm_tag_generator(
    model_client: ModelClient, model: str, *, max_tags: int = MAX_TAGS
) -> TagGenerator:
    """Return a TagGenerator that asks the model for topic tags."""

    async def generate(text: str) -> list[str]:
        reply = await model_client.chat(
            [{"role": "user", "content": _TAG_PROMPT.format(max_tags=max_tags, text=text)}],
            model,
            temperature=0.0,
        )
        tags = parse_tags(reply, max_tags=max_tags)
        logger.debug("tags_generated", count=len(tags))
        return tags

    return generate
