"""Load settings.yaml into typed dataclasses. Resolves API keys and env overrides at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

DEFAULT_COUNCIL_PROMPT = "You are participating in a council with: {models}"
DEFAULT_REVIEW_PROMPT = "Review answers and identify the strongest response."
DEFAULT_SYNTHESIS_PROMPT = "Synthesize the best answer concisely."
DEFAULT_SLUG_PROMPT = (
    "Suggest a short title for this request as 3-6 lowercase words joined by hyphens. "
    "Reply with the title only."
)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    display_name: str = ""
    quality: float = 0.0


@dataclass
class PromptTemplate:
    id: str
    title: str
    body: str


@dataclass
class PromptsConfig:
    council: str = DEFAULT_COUNCIL_PROMPT
    review: str = DEFAULT_REVIEW_PROMPT
    synthesis: str = DEFAULT_SYNTHESIS_PROMPT
    slug: str = DEFAULT_SLUG_PROMPT
    templates: dict[str, PromptTemplate] = field(default_factory=dict)


@dataclass
class DefaultsConfig:
    max_models: int = 3
    default_models: list[str] = field(default_factory=list)
    chair: str | None = None
    ask_model: str | None = None
    context_mode: str = "auto"
    failure_policy: str = "abort"
    output_dir: Path = Path("./council_runs")
    state_file: Path = Path("./council_runs/.council-state.json")
    history_size: int = 20
    slug_timeout_sec: float = 3.0
    preview_chars: int = 200


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    available_models: set[str] = field(default_factory=set)
    mock: bool = False
    version: str = "0.1.0"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs models skipped for missing API keys but does not raise — callers check
    available_models.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    defaults_raw = raw.get("defaults", {})
    defaults = DefaultsConfig(
        max_models=int(defaults_raw.get("max_models", 3)),
        default_models=list(defaults_raw.get("default_models", [])),
        chair=defaults_raw.get("chair"),
        ask_model=defaults_raw.get("ask_model"),
        context_mode=str(defaults_raw.get("context_mode", "auto")),
        failure_policy=str(defaults_raw.get("failure_policy", "abort")),
        output_dir=Path(defaults_raw.get("output_dir", "./council_runs")),
        state_file=Path(defaults_raw.get("state_file", "./council_runs/.council-state.json")),
        history_size=int(defaults_raw.get("history_size", 20)),
        slug_timeout_sec=float(defaults_raw.get("slug_timeout_sec", 3.0)),
        preview_chars=int(defaults_raw.get("preview_chars", 200)),
    )
    if os.environ.get("MAX_MODELS", "").strip():
        defaults.max_models = int(os.environ["MAX_MODELS"])

    server_raw = raw.get("server", {})
    server = ServerConfig(
        host=os.environ.get("HOST") or str(server_raw.get("host", "127.0.0.1")),
        port=int(os.environ.get("PORT") or server_raw.get("port", 3000)),
    )

    prompts_raw = raw.get("prompts", {})
    templates = {
        template_id: PromptTemplate(
            id=template_id,
            title=str(template_raw["title"]),
            body=str(template_raw["body"]),
        )
        for template_id, template_raw in raw.get("templates", {}).items()
    }
    prompts = PromptsConfig(
        council=prompts_raw.get("council", DEFAULT_COUNCIL_PROMPT),
        review=prompts_raw.get("review", DEFAULT_REVIEW_PROMPT),
        synthesis=prompts_raw.get("synthesis", DEFAULT_SYNTHESIS_PROMPT),
        slug=prompts_raw.get("slug", DEFAULT_SLUG_PROMPT),
        templates=templates,
    )

    mock = _env_flag("COUNCIL_MOCK")
    models: dict[str, ModelConfig] = {}
    available_models: set[str] = set()

    for model_id, model_raw in raw.get("models", {}).items():
        model_cfg = ModelConfig(
            name=model_id,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
            display_name=str(model_raw.get("display_name", model_id)),
            quality=float(model_raw.get("quality", 0.0)),
        )
        models[model_id] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if mock or api_key:
            available_models.add(model_id)
            logger.info("Model available: %s", model_id)
        else:
            logger.info(
                "Model skipped (no API key): %s — set %s in .env",
                model_id,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        server=server,
        available_models=available_models,
        mock=mock,
        version=str(raw.get("version", "0.1.0")),
    )
