"""Render a council run as a Markdown artifact and save it without clobbering."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import frontmatter

from llm_council.models import ModelFailure

logger = logging.getLogger(__name__)

MAX_FILENAME_ATTEMPTS = 50
EMPTY = "<empty>"


class ArtifactWriteError(OSError):
    """Raised when the artifact cannot be written to the destination."""


@dataclass
class ArtifactInput:
    slug: str
    prompt: str
    prompt_preview: str
    context_kind: str
    models: list[str]
    chair_model: str
    stage1: dict[str, str]
    stage2: dict[str, str]
    final_answer: str
    timestamp: datetime
    version: str
    context_preview: str | None = None
    run_id: str | None = None
    failures: list[ModelFailure] = field(default_factory=list)


def _iso_utc(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _block(text: str | None) -> str:
    return f"```\n{text or EMPTY}\n```"


def _stage_section(title: str, models: list[str], stage: dict[str, str]) -> list[str]:
    parts = [f"## {title}"]
    for model in models:
        parts.append(f"### {model}")
        parts.append(_block(stage.get(model)))
    return parts


def build_markdown_artifact(data: ArtifactInput) -> tuple[str, str]:
    """Return ``(filename_base, content)`` for a finished run."""
    metadata = {
        "title": data.slug,
        "timestamp": _iso_utc(data.timestamp),
        "version": data.version,
        "models": list(data.models),
        "chairModel": data.chair_model,
        "contextKind": data.context_kind,
        "promptPreview": data.prompt_preview,
        "contextPreview": data.context_preview or "",
    }
    if data.run_id:
        metadata["runId"] = data.run_id

    sections: list[str] = [
        "## Prompt",
        _block(data.prompt),
        "## Context Preview",
        _block(data.context_preview) if data.context_preview else "_No context provided_",
    ]
    sections += _stage_section("Stage 1 Answers", data.models, data.stage1)
    sections += _stage_section("Stage 2 Reviews", data.models, data.stage2)
    sections += [
        f"## Stage 3 Final (chair: {data.chair_model})",
        _block(data.final_answer),
    ]
    if data.failures:
        sections.append("## Failures")
        sections.append("\n".join(f"- {f.stage} {f.model}: {f.message}" for f in data.failures))
    sections += [
        "## Models Used",
        "\n".join(f"- {m}" for m in data.models),
    ]

    post = frontmatter.Post("\n\n".join(sections), **metadata)
    return data.slug, frontmatter.dumps(post, sort_keys=False) + "\n"


def write_markdown_file(
    directory: Path,
    filename_base: str,
    content: str,
    max_attempts: int = MAX_FILENAME_ATTEMPTS,
) -> Path:
    """Write ``<base>.md``, or ``<base>-1.md``, ``<base>-2.md``... if taken.

    Raises:
        ArtifactWriteError: If no free filename is found within ``max_attempts``.
        OSError: If the directory cannot be created or written.
    """
    directory.mkdir(parents=True, exist_ok=True)
    for attempt in range(max_attempts):
        suffix = "" if attempt == 0 else f"-{attempt}"
        target = directory / f"{filename_base}{suffix}.md"
        try:
            with target.open("x", encoding="utf-8") as f:
                f.write(content)
        except FileExistsError:
            continue
        logger.info("Council artifact saved to: %s", target)
        return target
    raise ArtifactWriteError(f"Unable to find available filename for '{filename_base}' in {directory}")
