"""Pick which models sit on the council: sticky selection, else preferred, else best available."""

import logging
from collections.abc import Iterable

from config.config_loader import ModelConfig
from llm_council.models import ModelInfo

logger = logging.getLogger(__name__)

DEFAULT_MAX_MODELS = 3


def pick_default_models(
    desired: list[str],
    available: list[ModelInfo],
    max_models: int = DEFAULT_MAX_MODELS,
) -> list[str]:
    """Prefer the desired ids, then fill with remaining models by quality (descending).

    Desired ids keep their order. Available models outside ``desired`` are only
    consulted when fewer than ``max_models`` desired ids are available. The
    result never has more entries than there are available models.
    """
    available_ids = {m.id for m in available}
    desired_hits = [model_id for model_id in desired if model_id in available_ids]
    if len(desired_hits) >= max_models:
        return desired_hits[:max_models]

    remaining = sorted(
        (m for m in available if m.id not in desired_hits),
        key=lambda m: m.quality,
        reverse=True,
    )
    return (desired_hits + [m.id for m in remaining])[:max_models]


def resolve_initial_models(
    stored: list[str] | None,
    desired: list[str],
    available: list[ModelInfo],
    max_models: int = DEFAULT_MAX_MODELS,
) -> list[str]:
    """Return the stored selection if every id in it is still available and it fits ``max_models``.

    No merging: a stored selection either wins outright or is discarded in
    favour of ``pick_default_models``.
    """
    available_ids = {m.id for m in available}
    if stored and len(stored) > max_models:
        logger.info(
            "Stored model selection has %d models, over the limit of %d; using defaults", len(stored), max_models
        )
        return pick_default_models(desired, available, max_models)
    if stored and all(model_id in available_ids for model_id in stored):
        return list(stored)
    if stored:
        missing = [model_id for model_id in stored if model_id not in available_ids]
        logger.info("Stored model selection no longer available (%s), using defaults", ", ".join(missing))
    return pick_default_models(desired, available, max_models)


def map_available_models(
    model_configs: dict[str, ModelConfig],
    available_ids: Iterable[str],
) -> list[ModelInfo]:
    """Build ModelInfo entries for the available ids; unknown ids get quality 0."""
    infos: list[ModelInfo] = []
    for model_id in available_ids:
        cfg = model_configs.get(model_id)
        infos.append(
            ModelInfo(
                id=model_id,
                name=cfg.display_name if cfg else model_id,
                quality=cfg.quality if cfg else 0.0,
            )
        )
    return infos


def resolve_chair(requested: str | None, models: list[str], default_chair: str | None) -> str | None:
    """Explicit chair wins; else the configured chair if it sits on this council.

    Returns None when neither applies. The chair is never inferred from position.
    """
    if requested:
        return requested
    if default_chair and default_chair in models:
        return default_chair
    return None


def default_chair(
    models: list[str],
    configured_chair: str | None,
    stored_selection: list[str] | None = None,
    stored_chair: str | None = None,
) -> str | None:
    """Chair to fall back on when none is requested.

    A council identical to the remembered selection keeps the remembered chair;
    any other council gets the configured one.
    """
    if stored_chair and stored_chair in models and list(models) == list(stored_selection or []):
        return stored_chair
    return configured_chair
