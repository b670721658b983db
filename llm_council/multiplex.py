"""Merge per-model, per-stage council output into one ordered event stream.

The pipeline reports through a TokenSink; ``QueueSink`` turns those calls into
events on an asyncio.Queue, and ``stream_council`` hands them to a single
consumer. ``council_sse`` renders the stream as Server-Sent-Event frames.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Any

from llm_council.models import (
    ModelDone,
    ModelFailed,
    RunFailed,
    RunFinished,
    RunInputs,
    TokenEvent,
)
from llm_council.pipeline import TokenSink, run_council
from llm_council.providers.base import Message, ModelClient

logger = logging.getLogger(__name__)

CouncilEvent = TokenEvent | ModelDone | ModelFailed | RunFinished | RunFailed

_END = object()


DEFAULT_MAX_PENDING = 1024


class QueueSink(TokenSink):
    """TokenSink that enqueues events without blocking the model calls.

    Once ``max_pending`` events are waiting, further tokens are held back per
    (stage, model) and coalesced into one chunk, which goes out with that
    model's next token or just before its ModelDone / ModelFailed. A slow
    consumer therefore bounds the queue without losing text or reordering it.
    """

    def __init__(self, queue: asyncio.Queue, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self._queue = queue
        self._max_pending = max_pending
        self._backlog: dict[tuple[str, str], list[str]] = {}

    def _flush(self, stage: str, model: str, chunk: str = "") -> None:
        held = self._backlog.pop((stage, model), [])
        text = "".join(held) + chunk
        if text:
            self._queue.put_nowait(TokenEvent(stage=stage, model=model, chunk=text))

    def on_token(self, stage: str, model: str, chunk: str) -> None:
        if self._queue.qsize() >= self._max_pending:
            self._backlog.setdefault((stage, model), []).append(chunk)
            return
        self._flush(stage, model, chunk)

    def on_model_done(self, stage: str, model: str, text: str) -> None:
        self._flush(stage, model)
        self._queue.put_nowait(ModelDone(stage=stage, model=model, text=text))

    def on_model_error(self, stage: str, model: str, message: str) -> None:
        self._flush(stage, model)
        self._queue.put_nowait(ModelFailed(stage=stage, model=model, message=message))


async def _drain(queue: asyncio.Queue, task: asyncio.Task) -> AsyncGenerator[Any, None]:
    """Yield queue items until ``task`` finishes; cancel it if closed early."""
    # Runs after the task's last put_nowait, so _END is always the final item.
    task.add_done_callback(lambda _t: queue.put_nowait(_END))
    try:
        while True:
            item = await queue.get()
            if item is _END:
                return
            yield item
    finally:
        if not task.done():
            logger.info("Event consumer went away, cancelling %s", task.get_name())
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


def _task_error(task: asyncio.Task) -> BaseException | None:
    if task.cancelled():
        return asyncio.CancelledError("run was cancelled")
    return task.exception()


async def stream_council(
    inputs: RunInputs,
    client: ModelClient,
    **council_kwargs: Any,
) -> AsyncGenerator[CouncilEvent, None]:
    """Run the council in the background and yield its events in arrival order.

    Ends with exactly one RunFinished or RunFailed. If the consumer stops
    iterating early, the council task is cancelled and awaited, which cancels
    every in-flight model call.
    """
    queue: asyncio.Queue = asyncio.Queue()
    task = asyncio.create_task(
        run_council(inputs, client, QueueSink(queue), **council_kwargs),
        name="council-run",
    )
    async with aclosing(_drain(queue, task)) as events:
        async for event in events:
            yield event

    error = _task_error(task)
    if error is not None:
        logger.error("Council run failed: %s", error)
        yield RunFailed(message=str(error) or type(error).__name__)
    else:
        yield RunFinished(result=task.result(), chair=inputs.chair)


def encode_sse(data: dict, event: str | None = None) -> str:
    """Render one SSE frame."""
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(data)}\n\n"


def done_frame() -> str:
    return encode_sse({}, event="done")


async def council_sse(events: AsyncGenerator[CouncilEvent, None]) -> AsyncGenerator[str, None]:
    """Translate council events into SSE frames for one client.

    Successful runs end with the final answer and a terminal ``done`` event;
    failed runs end with an ``error`` frame and no ``done``.
    """
    async with aclosing(events):
        async for event in events:
            if isinstance(event, TokenEvent):
                yield encode_sse({"stage": event.stage, "model": event.model, "delta": event.chunk})
            elif isinstance(event, ModelDone):
                yield encode_sse({"stage": event.stage, "model": event.model, "done": True})
            elif isinstance(event, ModelFailed):
                yield encode_sse({"stage": event.stage, "model": event.model, "error": event.message})
            elif isinstance(event, RunFinished):
                yield encode_sse({"final": event.result.final_answer, "chair": event.chair})
                yield done_frame()
                return
            elif isinstance(event, RunFailed):
                yield encode_sse({"error": event.message})
                return


async def stream_chat(
    client: ModelClient,
    model: str,
    messages: list[Message],
) -> AsyncGenerator[str, None]:
    """SSE frames for a single model call: ``delta`` frames, one ``content``, then ``done``."""
    queue: asyncio.Queue = asyncio.Queue()
    chunks: list[str] = []

    def on_token(chunk: str) -> None:
        if chunk:
            chunks.append(chunk)
            queue.put_nowait(chunk)

    task = asyncio.create_task(client.chat(model, messages, on_token), name=f"chat-{model}")
    async with aclosing(_drain(queue, task)) as deltas:
        async for delta in deltas:
            yield encode_sse({"delta": delta})

    error = _task_error(task)
    if error is not None:
        logger.error("Streaming chat with %s failed: %s", model, error)
        yield encode_sse({"error": str(error) or type(error).__name__})
        return
    yield encode_sse({"content": task.result() or "".join(chunks)})
    yield done_frame()
