"""Route council model ids to configured providers."""

import logging

from config.config_loader import AppConfig
from llm_council.model_resolver import map_available_models
from llm_council.models import ModelInfo
from llm_council.providers.anthropic import AnthropicProvider
from llm_council.providers.base import AIProvider, Message, ModelClient, ProviderError, TokenCallback
from llm_council.providers.gemini import GeminiProvider
from llm_council.providers.mock import MockProvider
from llm_council.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


def build_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build a provider for every available model. Returns dict keyed by model id."""
    providers: dict[str, AIProvider] = {}
    for model_id in sorted(config.available_models):
        model_cfg = config.models[model_id]
        if config.mock:
            providers[model_id] = MockProvider(model_cfg)
            continue
        provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if provider_cls is None:
            logger.warning("Model '%s' uses unknown sdk '%s', skipping", model_id, model_cfg.sdk)
            continue
        try:
            providers[model_id] = provider_cls(model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider for '%s': %s", model_id, exc)
    return providers


class ProviderPool(ModelClient):
    """ModelClient backed by one provider per model id.

    Owns the providers' SDK clients; use as an async context manager (or call
    ``aclose``) so connections are released when the run or server ends.
    """

    def __init__(self, providers: dict[str, AIProvider], config: AppConfig | None = None) -> None:
        self._providers = providers
        self._config = config

    @classmethod
    def from_config(cls, config: AppConfig) -> "ProviderPool":
        return cls(build_providers(config), config)

    def __contains__(self, model: str) -> bool:
        return model in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def providers(self) -> dict[str, AIProvider]:
        return dict(self._providers)

    def available(self) -> list[ModelInfo]:
        """Available models with display names and quality scores from config."""
        model_configs = self._config.models if self._config else {}
        return map_available_models(model_configs, self._providers)

    async def chat(self, model: str, messages: list[Message], on_token: TokenCallback) -> str:
        provider = self._providers.get(model)
        if provider is None:
            raise ProviderError(model, "Model not available")
        return await provider.chat(messages, on_token)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.aclose()
            except Exception as exc:
                logger.warning("Failed to close provider '%s': %s", provider.name(), exc)

    async def __aenter__(self) -> "ProviderPool":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
