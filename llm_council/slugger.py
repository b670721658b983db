"""Artifact naming: ask a model for a short slug, fall back to a UTC timestamp."""

import asyncio
import logging
import re
from datetime import datetime, timezone

from config.config_loader import DEFAULT_SLUG_PROMPT
from llm_council.providers.base import Message, ModelClient

logger = logging.getLogger(__name__)

MAX_SLUG_LEN = 80
DEFAULT_SLUG_TIMEOUT_SEC = 3.0


def sanitize_slug(raw: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim dashes, cap at 80 chars."""
    slug = re.sub(r"[^a-z0-9]+", "-", raw.strip().lower())
    return slug.strip("-")[:MAX_SLUG_LEN]


def timestamp_slug(ts: datetime | None = None) -> str:
    """``council-YYYYMMDD-HHMMSS`` in UTC. Naive datetimes are taken as UTC."""
    ts = ts or datetime.now(timezone.utc)
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.strftime("council-%Y%m%d-%H%M%S")


async def generate_slug_from_llm(
    client: ModelClient,
    model: str,
    prompt: str,
    context_preview: str | None = None,
    timestamp: datetime | None = None,
    timeout_sec: float = DEFAULT_SLUG_TIMEOUT_SEC,
    slug_prompt: str = DEFAULT_SLUG_PROMPT,
) -> str:
    """Return a model-suggested slug, or the timestamp slug on any failure.

    Never raises and never waits longer than ``timeout_sec`` for the model.
    """
    fallback = timestamp_slug(timestamp)
    messages: list[Message] = [
        {"role": "system", "content": slug_prompt},
        {"role": "user", "content": f"Prompt: {prompt}\nContext preview: {context_preview or '<none>'}"},
    ]
    try:
        suggestion = await asyncio.wait_for(
            client.chat(model, messages, lambda _chunk: None),
            timeout=timeout_sec,
        )
    except TimeoutError:
        logger.warning("Slug generation timed out after %.1fs; using %s", timeout_sec, fallback)
        return fallback
    except Exception as exc:
        logger.warning("Slug generation failed: %s; using %s", exc, fallback)
        return fallback

    slug = sanitize_slug(suggestion or "")
    if not slug:
        logger.info("Slug suggestion was empty; using fallback %s", fallback)
        return fallback
    logger.info("Slug suggestion %r => %r", suggestion, slug)
    return slug
