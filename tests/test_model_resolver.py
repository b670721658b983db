"""Tests for llm_council/model_resolver.py."""

from config.config_loader import ModelConfig
from llm_council.model_resolver import (
    map_available_models,
    pick_default_models,
    default_chair,
    resolve_chair,
    resolve_initial_models,
)
from llm_council.models import ModelInfo

DESIRED = ["gpt-5.1", "sonnet-4.5", "gemini-pro-3"]


def test_all_desired_available_keeps_order():
    available = [
        ModelInfo("gemini-pro-3", quality=0.9),
        ModelInfo("grok-4", quality=0.99),
        ModelInfo("sonnet-4.5", quality=0.95),
        ModelInfo("gpt-5.1", quality=1.0),
    ]
    assert pick_default_models(DESIRED, available, 3) == ["gpt-5.1", "sonnet-4.5", "gemini-pro-3"]


def test_no_padding_below_available_count():
    assert pick_default_models(DESIRED, [ModelInfo("sonnet-4.5", quality=0.9)], 3) == ["sonnet-4.5"]


def test_fill_by_quality_descending():
    available = [
        ModelInfo("deepseek-chat", quality=0.7),
        ModelInfo("sonnet-4.5", quality=0.95),
        ModelInfo("grok-4", quality=0.8),
        ModelInfo("local", quality=0.0),
    ]
    assert pick_default_models(DESIRED, available, 3) == ["sonnet-4.5", "grok-4", "deepseek-chat"]


def test_truncates_desired_hits_to_max():
    available = [ModelInfo(m) for m in DESIRED]
    assert pick_default_models(DESIRED, available, 2) == ["gpt-5.1", "sonnet-4.5"]


def test_empty_available():
    assert pick_default_models(DESIRED, [], 3) == []


def test_stored_selection_wins_when_available():
    available = [ModelInfo(m) for m in DESIRED + ["grok-4"]]
    assert resolve_initial_models(["grok-4", "gpt-5.1"], DESIRED, available, 3) == ["grok-4", "gpt-5.1"]


def test_stored_selection_discarded_when_any_missing():
    available = [ModelInfo(m) for m in DESIRED]
    assert resolve_initial_models(["grok-4", "gpt-5.1"], DESIRED, available, 3) == DESIRED


def test_no_stored_selection_uses_defaults():
    available = [ModelInfo(m) for m in DESIRED]
    assert resolve_initial_models(None, DESIRED, available, 3) == DESIRED
    assert resolve_initial_models([], DESIRED, available, 3) == DESIRED


def test_stored_selection_over_the_limit_uses_defaults():
    available = [ModelInfo(m) for m in DESIRED + ["grok-4"]]
    stored = ["grok-4", "gpt-5.1", "sonnet-4.5"]

    picked = resolve_initial_models(stored, DESIRED, available, 2)

    assert picked == ["gpt-5.1", "sonnet-4.5"]
    assert resolve_initial_models(stored, DESIRED, available, 3) == stored


def test_map_available_models_reads_quality():
    configs = {
        "gpt-5.1": ModelConfig(
            name="gpt-5.1", sdk="openai", model="gpt-5.1", api_key_env="OPENAI_API_KEY",
            timeout_sec=60, max_tokens=100, display_name="GPT-5.1", quality=1.0,
        ),
    }
    infos = map_available_models(configs, ["gpt-5.1", "unknown"])
    assert infos == [
        ModelInfo(id="gpt-5.1", name="GPT-5.1", quality=1.0),
        ModelInfo(id="unknown", name="unknown", quality=0.0),
    ]


def test_chair_explicit_wins():
    assert resolve_chair("gpt-5.1", DESIRED, "sonnet-4.5") == "gpt-5.1"


def test_chair_from_config_when_selected():
    assert resolve_chair(None, DESIRED, "sonnet-4.5") == "sonnet-4.5"


def test_chair_never_inferred_from_position():
    assert resolve_chair(None, ["gpt-5.1", "gemini-pro-3"], "sonnet-4.5") is None
    assert resolve_chair(None, ["gpt-5.1"], None) is None


def test_default_chair_remembered_for_same_council():
    stored = ["gpt-5.1", "gemini-pro-3"]
    assert default_chair(["gpt-5.1", "gemini-pro-3"], "sonnet-4.5", stored, "gpt-5.1") == "gpt-5.1"
    assert resolve_chair(None, stored, default_chair(stored, "sonnet-4.5", stored, "gpt-5.1")) == "gpt-5.1"


def test_default_chair_falls_back_to_config_for_other_council():
    stored = ["gpt-5.1", "gemini-pro-3"]
    assert default_chair(DESIRED, "sonnet-4.5", stored, "gpt-5.1") == "sonnet-4.5"
    assert default_chair(stored, "sonnet-4.5", stored, None) == "sonnet-4.5"
    assert default_chair(stored, "sonnet-4.5", None, "gpt-5.1") == "sonnet-4.5"
