"""Gemini provider using google-genai SDK with native async streaming."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from llm_council.providers.base import AIProvider, Message, ProviderError, TokenCallback

logger = logging.getLogger(__name__)


def _to_contents(messages: list[Message]) -> tuple[str | None, list[genai_types.Content]]:
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system") or None
    contents = [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in messages
        if m["role"] != "system"
    ]
    return system, contents


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def _stream(self, messages: list[Message], on_token: TokenCallback) -> tuple[str, int | None]:
        system, contents = _to_contents(messages)
        parts: list[str] = []
        token_count: int | None = None
        stream = await self._client.aio.models.generate_content_stream(
            model=self._config.model,
            contents=contents,
            config=genai_types.GenerateContentConfig(
                system_instruction=system,
                max_output_tokens=self._config.max_tokens,
            ),
        )
        async for chunk in stream:
            if chunk.text:
                parts.append(chunk.text)
                on_token(chunk.text)
            if chunk.usage_metadata:
                token_count = chunk.usage_metadata.total_token_count
        return "".join(parts), token_count

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
            "Gemini %s: %.2fs, %s tokens",
            self._config.name,
            time.monotonic() - start,
            token_count,
        )
        return content

    async def aclose(self) -> None:
        await self._client.aio.aclose()
