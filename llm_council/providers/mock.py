"""Offline provider for COUNCIL_MOCK=1: streams a canned reply word by word."""

import asyncio

from config.config_loader import ModelConfig
from llm_council.providers.base import AIProvider, Message, TokenCallback


class MockProvider(AIProvider):
    """Echoes the last user message back, tagged with the model id."""

    def __init__(self, config: ModelConfig, delay_sec: float = 0.0) -> None:
        self._config = config
        self._delay_sec = delay_sec

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return "mock"

    async def chat(self, messages: list[Message], on_token: TokenCallback) -> str:
        last_user = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        preview = " ".join(last_user.split()[:12])
        reply = f"[mock {self._config.name}] {preview}"
        words = reply.split(" ")
        for i, word in enumerate(words):
            on_token(word if i == len(words) - 1 else word + " ")
            await asyncio.sleep(self._delay_sec)
        return reply
