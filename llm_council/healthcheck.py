"""Ping every configured model before a council run so dead keys surface early."""

import asyncio
import logging
import time
from dataclasses import dataclass

from llm_council.providers.base import AIProvider

logger = logging.getLogger(__name__)

PING_MESSAGES = [{"role": "user", "content": "Reply with the word OK only."}]
DEFAULT_TIMEOUT_SEC = 15.0


@dataclass(frozen=True)
class HealthResult:
    model: str
    ok: bool
    error: str = ""
    latency_sec: float = 0.0


async def _ping(model: str, provider: AIProvider, timeout_sec: float) -> HealthResult:
    start = time.monotonic()
    try:
        await asyncio.wait_for(provider.chat(PING_MESSAGES, lambda _chunk: None), timeout=timeout_sec)
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", model, exc)
        return HealthResult(model, False, str(exc) or type(exc).__name__, time.monotonic() - start)
    return HealthResult(model, True, "", time.monotonic() - start)


async def run_health_checks(
    providers: dict[str, AIProvider],
    timeout_sec: float = DEFAULT_TIMEOUT_SEC,
) -> dict[str, HealthResult]:
    """Ping all providers concurrently; a hang past ``timeout_sec`` counts as a failure."""
    results = await asyncio.gather(*(_ping(m, p, timeout_sec) for m, p in providers.items()))
    return {result.model: result for result in results}


def failed_models(results: dict[str, HealthResult]) -> list[str]:
    return sorted(model for model, result in results.items() if not result.ok)
