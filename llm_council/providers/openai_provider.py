"""OpenAI-compatible provider using openai SDK with native async streaming.

Also serves xAI Grok and DeepSeek, which expose the same API under their own base_url.
"""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from llm_council.providers.base import AIProvider, Message, ProviderError, TokenCallback

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def _stream(self, messages: list[Message], on_token: TokenCallback) -> str:
        parts: list[str] = []
        stream = await self._client.chat.completions.create(
            model=self._config.model,
            messages=messages,
            max_completion_tokens=self._config.max_tokens,
            stream=True,
        )
        async with stream:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    parts.append(delta)
                    on_token(delta)
        return "".join(parts)

    async def chat(self, messages: list[Message], on_token: TokenCallback) -> str:
        start = time.monotonic()
        try:
            content = await asyncio.wait_for(
                self._stream(messages, on_token),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        logger.info("OpenAI %s: %.2fs, %d chars", self._config.name, time.monotonic() - start, len(content))
        return content

    async def aclose(self) -> None:
        await self._client.close()
