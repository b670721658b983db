"""FastAPI surface: model listing, single-model ask/stream, and the streamed council."""

import logging
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import aclosing, asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from config.config_loader import AppConfig
from llm_council.history import HistoryStore
from llm_council.model_resolver import default_chair, resolve_chair, resolve_initial_models
from llm_council.models import RunFinished, RunInputs, RunSummary
from llm_council.multiplex import CouncilEvent, council_sse, stream_chat, stream_council
from llm_council.pipeline import CouncilInputError, validate_inputs
from llm_council.providers.base import ProviderError
from llm_council.providers.pool import ProviderPool

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class PromptRequest(BaseModel):
    """Request body for /api/ask and /api/stream."""
    prompt: str = ""
    model: str | None = Field(None, description="Model id; defaults to the configured ask model")


class CouncilRequest(BaseModel):
    """Request body for /api/council."""
    prompt: str = ""
    models: list[str] = Field(default_factory=list, description="Council members, at most MAX_MODELS")
    chair: str | None = Field(None, description="Synthesizing model; must be one of models")
    context: str | None = Field(None, description="Optional context text appended to the prompt")


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    config: AppConfig,
    pool: ProviderPool | None = None,
    history: HistoryStore | None = None,
) -> FastAPI:
    """Build the app. The pool is closed when the app shuts down."""
    pool = pool if pool is not None else ProviderPool.from_config(config)
    history = history if history is not None else HistoryStore(
        config.defaults.state_file, config.defaults.history_size
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("LLM Council server starting with %d models", len(pool))
        yield
        await pool.aclose()
        logger.info("LLM Council server stopped")

    app = FastAPI(title="LLM Council", version=config.version, lifespan=lifespan)
    app.state.config = config
    app.state.pool = pool
    app.state.history = history

    def _default_model() -> str | None:
        preferred = config.defaults.ask_model
        if preferred and preferred in pool:
            return preferred
        available = pool.available()
        return available[0].id if available else None

    async def _record(inputs: RunInputs, events: AsyncGenerator[CouncilEvent, None]):
        async with aclosing(events):
            async for event in events:
                if isinstance(event, RunFinished):
                    history.append(
                        RunSummary(
                            id=uuid.uuid4().hex,
                            prompt=inputs.prompt,
                            models=list(inputs.models),
                            final_answer=event.result.final_answer,
                            timestamp=time.time(),
                        )
                    )
                yield event

    @app.get("/api/models")
    async def list_models():
        available = pool.available()
        defaults = resolve_initial_models(
            history.last_selection,
            config.defaults.default_models,
            available,
            config.defaults.max_models,
        )
        return {
            "models": [{"id": m.id, "name": m.name} for m in available],
            "defaults": defaults,
            "chair": resolve_chair(
                None,
                defaults,
                default_chair(defaults, config.defaults.chair, history.last_selection, history.last_chair),
            ),
            "maxModels": config.defaults.max_models,
        }

    @app.get("/api/history")
    async def list_history():
        return {
            "history": [
                {
                    "id": entry.id,
                    "prompt": entry.prompt,
                    "models": entry.models,
                    "finalAnswer": entry.final_answer,
                    "timestamp": entry.timestamp,
                }
                for entry in history.all()
            ]
        }

    @app.post("/api/ask")
    async def ask(request: PromptRequest):
        if not request.prompt.strip():
            return _error("Prompt is required.")
        model = request.model or _default_model()
        if not model or model not in pool:
            return _error(f"Model not available: {model}")
        try:
            content = await pool.chat(model, [{"role": "user", "content": request.prompt}], lambda _chunk: None)
        except ProviderError as exc:
            logger.error("Ask via %s failed: %s", model, exc)
            return _error(str(exc), status_code=502)
        return {"content": content}

    @app.post("/api/stream")
    async def stream(request: PromptRequest):
        if not request.prompt.strip():
            return _error("Prompt is required.")
        model = request.model or _default_model()
        if not model or model not in pool:
            return _error(f"Model not available: {model}")
        frames = stream_chat(pool, model, [{"role": "user", "content": request.prompt}])
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    @app.post("/api/council")
    async def council(request: CouncilRequest):
        fallback_chair = default_chair(
            request.models, config.defaults.chair, history.last_selection, history.last_chair
        )
        chair = resolve_chair(request.chair, request.models, fallback_chair)
        inputs = RunInputs(
            prompt=request.prompt,
            models=list(request.models),
            chair=chair or "",
            context_text=request.context or None,
        )
        try:
            validate_inputs(inputs, config.defaults.max_models)
        except CouncilInputError as exc:
            return _error(str(exc))
        unknown = [m for m in inputs.models if m not in pool]
        if unknown:
            return _error(f"Model not available: {', '.join(unknown)}")

        logger.info("Council run requested: models=%s chair=%s", inputs.models, inputs.chair)
        events = stream_council(
            inputs,
            pool,
            prompts=config.prompts,
            max_models=config.defaults.max_models,
            failure_policy=config.defaults.failure_policy,
        )
        frames = council_sse(_record(inputs, events))
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    return app
