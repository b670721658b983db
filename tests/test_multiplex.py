"""Tests for llm_council/multiplex.py — merged event stream and SSE framing."""

import asyncio
import json

from llm_council.models import ModelDone, ModelFailed, RunFailed, RunFinished, RunInputs, TokenEvent
from llm_council.multiplex import QueueSink, council_sse, encode_sse, stream_chat, stream_council
from llm_council.providers.base import ProviderError
from tests.conftest import ScriptedClient


def _frames(body: str) -> list[str]:
    return [frame for frame in body.split("\n\n") if frame]


def _data(frame: str) -> dict:
    line = next(line for line in frame.splitlines() if line.startswith("data: "))
    return json.loads(line[len("data: "):])


async def _collect(agen) -> list:
    return [item async for item in agen]


def test_encode_sse_plain_frame():
    assert encode_sse({"delta": "hi"}) == 'data: {"delta": "hi"}\n\n'


def test_encode_sse_named_event():
    assert encode_sse({}, event="done") == "event: done\ndata: {}\n\n"


async def test_stream_council_ends_with_one_run_finished(sample_inputs):
    events = await _collect(stream_council(sample_inputs, ScriptedClient()))

    finished = [e for e in events if isinstance(e, RunFinished)]
    assert len(finished) == 1
    assert events[-1] is finished[0]
    assert finished[0].chair == "beta"
    assert finished[0].result.final_answer == "S3 answer from beta"


async def test_stream_council_tags_tokens_by_stage_and_model(sample_inputs):
    events = await _collect(stream_council(sample_inputs, ScriptedClient()))

    tokens = [e for e in events if isinstance(e, TokenEvent)]
    for stage, model in [("S1", "alpha"), ("S2", "gamma"), ("S3", "beta")]:
        text = "".join(t.chunk for t in tokens if (t.stage, t.model) == (stage, model))
        assert text == f"{stage} answer from {model}"

    stages = [t.stage for t in tokens]
    assert stages.index("S2") > max(i for i, s in enumerate(stages) if s == "S1")


async def test_stream_council_reports_each_completion(sample_inputs):
    events = await _collect(stream_council(sample_inputs, ScriptedClient()))

    done = [(e.stage, e.model) for e in events if isinstance(e, ModelDone)]
    assert sorted(m for s, m in done if s == "S1") == ["alpha", "beta", "gamma"]
    assert [m for s, m in done if s == "S3"] == ["beta"]


async def test_stream_council_failure_ends_with_run_failed(sample_inputs):
    client = ScriptedClient(errors={("S1", "alpha"): ProviderError("alpha", "boom")})

    events = await _collect(stream_council(sample_inputs, client))

    assert isinstance(events[-1], RunFailed)
    assert "[S1:alpha]" in events[-1].message
    assert any(isinstance(e, ModelFailed) and e.model == "alpha" for e in events)
    assert not any(isinstance(e, RunFinished) for e in events)


async def test_closing_stream_early_cancels_run():
    client = ScriptedClient(hang={("S1", "alpha"), ("S1", "beta")})
    inputs = RunInputs(prompt="Q?", models=["alpha", "beta"], chair="alpha")

    events = stream_council(inputs, client)
    first = await events.__anext__()
    await events.aclose()

    assert isinstance(first, TokenEvent)
    assert sorted(client.cancelled) == [("S1", "alpha"), ("S1", "beta")]
    assert client.calls_for("S2") == []


async def test_council_sse_success_frames(sample_inputs):
    body = "".join(await _collect(council_sse(stream_council(sample_inputs, ScriptedClient()))))
    frames = _frames(body)

    assert _data(frames[0])["stage"] == "S1"
    assert "delta" in _data(frames[0])
    assert {"stage": "S1", "model": "alpha", "done": True} in [_data(f) for f in frames]
    assert _data(frames[-2]) == {"final": "S3 answer from beta", "chair": "beta"}
    assert frames[-1] == "event: done\ndata: {}"


async def test_council_sse_failure_has_error_and_no_done(sample_inputs):
    client = ScriptedClient(errors={("S2", "beta"): ProviderError("beta", "boom")})

    body = "".join(await _collect(council_sse(stream_council(sample_inputs, client))))
    frames = _frames(body)

    assert "error" in _data(frames[-1])
    assert "[S2:beta]" in _data(frames[-1])["error"]
    assert "event: done" not in body


async def test_stream_chat_frames(scripted_client):
    messages = [{"role": "user", "content": "hi"}]
    frames = _frames("".join(await _collect(stream_chat(scripted_client, "alpha", messages))))

    deltas = "".join(_data(f)["delta"] for f in frames if "delta" in _data(f))
    assert deltas == "S1 answer from alpha"
    assert _data(frames[-2]) == {"content": "S1 answer from alpha"}
    assert frames[-1] == "event: done\ndata: {}"


async def test_stream_chat_error_frame():
    client = ScriptedClient(errors={("S1", "alpha"): ProviderError("alpha", "down")})
    messages = [{"role": "user", "content": "hi"}]

    frames = _frames("".join(await _collect(stream_chat(client, "alpha", messages))))

    assert _data(frames[-1]) == {"error": "[alpha] down"}
    assert all("event: done" not in f for f in frames)


def _queued(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def test_queue_sink_coalesces_tokens_past_the_bound():
    queue: asyncio.Queue = asyncio.Queue()
    sink = QueueSink(queue, max_pending=2)
    chunks = ["one ", "two ", "three ", "four ", "five"]

    for chunk in chunks:
        sink.on_token("S1", "alpha", chunk)
    assert queue.qsize() == 2

    sink.on_model_done("S1", "alpha", "".join(chunks))
    events = _queued(queue)

    assert "".join(e.chunk for e in events if isinstance(e, TokenEvent)) == "".join(chunks)
    assert events[-1] == ModelDone(stage="S1", model="alpha", text="one two three four five")


def test_queue_sink_flushes_backlog_before_failure():
    queue: asyncio.Queue = asyncio.Queue()
    sink = QueueSink(queue, max_pending=1)

    sink.on_token("S2", "beta", "partial ")
    sink.on_token("S2", "beta", "answer")
    sink.on_model_error("S2", "beta", "boom")
    events = _queued(queue)

    assert events == [
        TokenEvent(stage="S2", model="beta", chunk="partial "),
        TokenEvent(stage="S2", model="beta", chunk="answer"),
        ModelFailed(stage="S2", model="beta", message="boom"),
    ]


def test_queue_sink_resumes_once_consumer_catches_up():
    queue: asyncio.Queue = asyncio.Queue()
    sink = QueueSink(queue, max_pending=1)

    sink.on_token("S1", "alpha", "a")
    sink.on_token("S1", "alpha", "b")
    queue.get_nowait()
    sink.on_token("S1", "alpha", "c")

    assert _queued(queue) == [TokenEvent(stage="S1", model="alpha", chunk="bc")]
