"""Shared pytest fixtures."""

import asyncio
from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    ModelConfig,
    PromptsConfig,
    PromptTemplate,
)
from llm_council.models import RunInputs
from llm_council.providers.base import AIProvider, Message, ModelClient, ProviderError, TokenCallback


def _stage_of(messages: list[Message], prompts: PromptsConfig) -> str:
    system = messages[0]["content"] if messages and messages[0]["role"] == "system" else ""
    if system == prompts.review:
        return "S2"
    if system == prompts.synthesis:
        return "S3"
    if system == prompts.slug:
        return "slug"
    return "S1"


class ScriptedClient(ModelClient):
    """Test double ModelClient.

    Replies are ``"<stage> answer from <model>"`` unless overridden, streamed
    word by word. Every call is recorded in start order as ``(stage, model)``.
    """

    def __init__(
        self,
        prompts: PromptsConfig | None = None,
        replies: dict[tuple[str, str], str] | None = None,
        errors: dict[tuple[str, str], BaseException] | None = None,
        hang: set[tuple[str, str]] | None = None,
        return_final: bool = True,
    ) -> None:
        self.prompts = prompts or PromptsConfig()
        self.replies = replies or {}
        self.errors = errors or {}
        self.hang = hang or set()
        self.return_final = return_final
        self.calls: list[tuple[str, str]] = []
        self.messages: dict[tuple[str, str], list[Message]] = {}
        self.cancelled: list[tuple[str, str]] = []

    def reply_for(self, stage: str, model: str) -> str:
        return self.replies.get((stage, model), f"{stage} answer from {model}")

    async def chat(self, model: str, messages: list[Message], on_token: TokenCallback) -> str:
        key = (_stage_of(messages, self.prompts), model)
        self.calls.append(key)
        self.messages[key] = messages
        await asyncio.sleep(0)
        if key in self.errors:
            raise self.errors[key]

        reply = self.reply_for(*key)
        words = reply.split(" ")
        for i, word in enumerate(words):
            on_token(word if i == len(words) - 1 else word + " ")
        if key in self.hang:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(key)
                raise
        return reply if self.return_final else ""

    def calls_for(self, stage: str) -> list[str]:
        return [model for s, model in self.calls if s == stage]


class MockProvider(AIProvider):
    """Test double AIProvider that streams its canned reply word by word."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        self.calls: list[list[Message]] = []
        self.closed = False

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def chat(self, messages: list[Message], on_token: TokenCallback) -> str:
        self.calls.append(messages)
        for word in self._response_content.split(" "):
            on_token(word + " ")
        return self._response_content

    async def aclose(self) -> None:
        self.closed = True


class FailingProvider(MockProvider):
    """Raises ProviderError on every call."""

    async def chat(self, messages: list[Message], on_token: TokenCallback) -> str:
        self.calls.append(messages)
        raise ProviderError(self._name, "503 Service Unavailable")


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        templates={
            "explain": PromptTemplate(id="explain", title="Explain code", body="Explain what this code does."),
            "review": PromptTemplate(id="review", title="Review code", body="Review this code."),
        },
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        max_models=3,
        default_models=["alpha", "beta", "gamma"],
        chair="beta",
        ask_model="alpha",
        output_dir=tmp_path / "runs",
        state_file=tmp_path / "runs" / ".council-state.json",
        history_size=5,
        slug_timeout_sec=1.0,
    )


def _model(name: str, quality: float) -> ModelConfig:
    return ModelConfig(
        name=name,
        sdk="openai",
        model=f"{name}-model",
        api_key_env=f"{name.upper()}_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        display_name=name.title(),
        quality=quality,
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    models = {
        "alpha": _model("alpha", 1.0),
        "beta": _model("beta", 0.9),
        "gamma": _model("gamma", 0.8),
        "delta": _model("delta", 0.5),
    }
    return AppConfig(
        defaults=sample_defaults_config,
        models=models,
        prompts=sample_prompts_config,
        available_models=set(models),
        mock=True,
    )


@pytest.fixture
def sample_inputs() -> RunInputs:
    return RunInputs(
        prompt="Should we use YAML or JSON for config?",
        models=["alpha", "beta", "gamma"],
        chair="beta",
    )


@pytest.fixture
def scripted_client() -> ScriptedClient:
    return ScriptedClient()


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    """Write a small settings.yaml whose models all use COUNCIL_MOCK-friendly keys."""
    settings = {
        "version": "9.9.9",
        "defaults": {
            "max_models": 3,
            "default_models": ["alpha", "beta"],
            "chair": "beta",
            "ask_model": "alpha",
            "output_dir": str(tmp_path / "runs"),
            "state_file": str(tmp_path / "state.json"),
            "history_size": 5,
            "slug_timeout_sec": 1.0,
        },
        "models": {
            name: {
                "display_name": name.title(),
                "sdk": "openai",
                "model": f"{name}-model",
                "api_key_env": f"TEST_{name.upper()}_KEY",
                "timeout_sec": 30,
                "max_tokens": 1024,
                "quality": quality,
            }
            for name, quality in [("alpha", 1.0), ("beta", 0.9), ("gamma", 0.8)]
        },
        "templates": {
            "explain": {"title": "Explain code", "body": "Explain what this code does."},
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path
