"""Abstract bases for model access: one provider per configured model, one client per run."""

from abc import ABC, abstractmethod
from collections.abc import Callable

Message = dict[str, str]
TokenCallback = Callable[[str], None]


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for a single configured model backend."""

    @abstractmethod
    def name(self) -> str:
        """Return the council model id (e.g. 'gpt-5.1', 'sonnet-4.5')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string sent to the SDK."""
        ...

    @abstractmethod
    async def chat(self, messages: list[Message], on_token: TokenCallback) -> str:
        """Stream a reply to the given conversation.

        Args:
            messages: Ordered ``{"role", "content"}`` dicts, system messages first.
            on_token: Called with each partial text chunk as it arrives.

        Returns:
            The final text, which may be empty when the backend only streamed.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...

    async def aclose(self) -> None:
        """Release SDK resources. Default: nothing to release."""


class ModelClient(ABC):
    """Capability consumed by the council: talk to any model by id."""

    @abstractmethod
    async def chat(self, model: str, messages: list[Message], on_token: TokenCallback) -> str:
        ...
