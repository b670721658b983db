"""Anthropic Claude provider using anthropic SDK with native async streaming."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from llm_council.providers.base import AIProvider, Message, ProviderError, TokenCallback

logger = logging.getLogger(__name__)


def _split_system(messages: list[Message]) -> tuple[str, list[Message]]:
    """Anthropic takes system text as a separate argument, not a message role."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    turns = [m for m in messages if m["role"] != "system"]
    return system, turns


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def _stream(self, messages: list[Message], on_token: TokenCallback) -> tuple[str, int | None]:
        system, turns = _split_system(messages)
        kwargs = {"system": system} if system else {}
        async with self._client.messages.stream(
            model=self._config.model,
            max_tokens=self._config.max_tokens,
            messages=turns,
            **kwargs,
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    on_token(text)
            response = await stream.get_final_message()

        text_blocks = [b.text for b in response.content if b.type == "text"]
        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens
        return "\n".join(text_blocks), token_count

    async def chat(self, messages: list[Message], on_token: TokenCallback) -> str:
        start = time.monotonic()
        try:
            content, token_count = await asyncio.wait_for(
                self._stream(messages, on_token),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        logger.info(
            "Anthropic %s: %.2fs, %s tokens",
            self._config.name,
            time.monotonic() - start,
            token_count,
        )
        return content

    async def aclose(self) -> None:
        await self._client.close()
