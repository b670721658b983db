"""Council orchestration: parallel answers, cross-review, chair synthesis."""

import asyncio
import json
import logging
import time

from config.config_loader import PromptsConfig
from llm_council.model_resolver import DEFAULT_MAX_MODELS
from llm_council.models import (
    STAGE_ANSWER,
    STAGE_REVIEW,
    STAGE_SYNTHESIS,
    ModelFailure,
    RunInputs,
    StageResult,
)
from llm_council.providers.base import Message, ModelClient

logger = logging.getLogger(__name__)

FAILURE_POLICIES = ("abort", "continue")


class CouncilInputError(ValueError):
    """Raised before any model call when the run inputs are invalid."""


class CouncilRunError(RuntimeError):
    """Raised when a model call failure ends the run."""

    def __init__(self, stage: str, model: str | None, message: str) -> None:
        self.stage = stage
        self.model = model
        where = f"{stage}:{model}" if model else stage
        super().__init__(f"[{where}] {message}")


class TokenSink:
    """Receives pipeline output as it is produced.

    Hooks are invoked synchronously from inside the model calls, so they must
    not block. The base class ignores everything.
    """

    def on_token(self, stage: str, model: str, chunk: str) -> None:
        pass

    def on_model_done(self, stage: str, model: str, text: str) -> None:
        pass

    def on_model_error(self, stage: str, model: str, message: str) -> None:
        pass


def validate_inputs(inputs: RunInputs, max_models: int = DEFAULT_MAX_MODELS) -> None:
    """Raise CouncilInputError for a blank prompt, bad model list, or stray chair."""
    if not inputs.prompt or not inputs.prompt.strip():
        raise CouncilInputError("Prompt is required.")
    if not inputs.models:
        raise CouncilInputError("At least one model is required.")
    if len(inputs.models) > max_models:
        raise CouncilInputError(f"MAX_MODELS={max_models} exceeded.")
    duplicates = sorted({m for m in inputs.models if inputs.models.count(m) > 1})
    if duplicates:
        raise CouncilInputError(f"Duplicate models: {', '.join(duplicates)}")
    if not inputs.chair:
        raise CouncilInputError("A chair model is required.")
    if inputs.chair not in inputs.models:
        raise CouncilInputError(f"Chair '{inputs.chair}' must be one of the selected models.")


def build_answer_messages(inputs: RunInputs, prompts: PromptsConfig) -> list[Message]:
    user_content = inputs.prompt
    if inputs.context_text:
        user_content += f"\nContext:\n{inputs.context_text}"
    return [
        {"role": "system", "content": prompts.council.format(models=", ".join(inputs.models))},
        {"role": "user", "content": user_content},
    ]


def build_review_messages(stage1: dict[str, str], prompts: PromptsConfig) -> list[Message]:
    return [
        {"role": "system", "content": prompts.review},
        {"role": "user", "content": json.dumps(stage1)},
    ]


def build_synthesis_messages(
    inputs: RunInputs,
    stage1: dict[str, str],
    stage2: dict[str, str],
    prompts: PromptsConfig,
) -> list[Message]:
    payload = {
        "prompt": inputs.prompt,
        "context": inputs.context_text,
        "stage1": stage1,
        "stage2": stage2,
    }
    return [
        {"role": "system", "content": prompts.synthesis},
        {"role": "user", "content": json.dumps(payload)},
    ]


async def _call_model(
    client: ModelClient,
    stage: str,
    model: str,
    messages: list[Message],
    sink: TokenSink,
) -> str:
    """One model call. Final text wins when non-empty, else the streamed chunks."""
    chunks: list[str] = []

    def on_token(chunk: str) -> None:
        if not chunk:
            return
        chunks.append(chunk)
        sink.on_token(stage, model, chunk)

    final = await client.chat(model, messages, on_token)
    text = final if final else "".join(chunks)
    sink.on_model_done(stage, model, text)
    return text


def _failed_model(models: list[str], tasks: list[asyncio.Task], exc: BaseException) -> str | None:
    for model, task in zip(models, tasks):
        if task.done() and not task.cancelled() and task.exception() is exc:
            return model
    return None


async def _cancel_pending(tasks: list[asyncio.Task]) -> None:
    pending = [t for t in tasks if not t.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


async def _run_stage(
    client: ModelClient,
    stage: str,
    models: list[str],
    messages: list[Message],
    sink: TokenSink,
    failure_policy: str,
    failures: list[ModelFailure],
) -> dict[str, str]:
    """Run one stage concurrently across ``models`` and wait for all of them.

    Under ``abort`` the first failure cancels the rest of the stage and raises.
    Under ``continue`` failures are recorded and the survivors are returned.
    """
    logger.info("Starting stage %s with %d models", stage, len(models))
    tasks = [
        asyncio.create_task(_call_model(client, stage, m, messages, sink), name=f"council-{stage}-{m}")
        for m in models
    ]
    try:
        results = await asyncio.gather(*tasks, return_exceptions=failure_policy == "continue")
    except Exception as exc:
        failed = _failed_model(models, tasks, exc)
        logger.warning("Model %s failed in stage %s, aborting run: %s", failed, stage, exc)
        if failed:
            sink.on_model_error(stage, failed, str(exc))
        raise CouncilRunError(stage, failed, str(exc)) from exc
    finally:
        await _cancel_pending(tasks)

    outputs: dict[str, str] = {}
    for model, result in zip(models, results):
        if isinstance(result, BaseException):
            message = str(result) or type(result).__name__
            logger.warning("Model %s failed in stage %s: %s", model, stage, message)
            failures.append(ModelFailure(stage=stage, model=model, message=message))
            sink.on_model_error(stage, model, message)
            continue
        outputs[model] = result

    if not outputs:
        raise CouncilRunError(stage, None, f"All models failed in stage {stage}")

    logger.info("Stage %s complete: %d/%d models succeeded", stage, len(outputs), len(models))
    return outputs


async def run_council(
    inputs: RunInputs,
    client: ModelClient,
    sink: TokenSink | None = None,
    *,
    prompts: PromptsConfig | None = None,
    max_models: int = DEFAULT_MAX_MODELS,
    failure_policy: str = "abort",
) -> StageResult:
    """Run the three council stages and return every stage's output.

    Args:
        inputs: Prompt, optional context, selected models and the chair.
        client: Model access capability.
        sink: Receives tokens, completions and failures as they happen.
        prompts: System prompt texts; defaults to the built-in wording.
        max_models: Upper bound on ``len(inputs.models)``.
        failure_policy: ``"abort"`` ends the run on the first failed call;
            ``"continue"`` drops failed models from later stages.

    Returns:
        StageResult with stage-1 answers, stage-2 reviews and the chair's answer.

    Raises:
        CouncilInputError: Before any model call, if inputs are invalid.
        CouncilRunError: If a model call failure ends the run.
    """
    validate_inputs(inputs, max_models)
    if failure_policy not in FAILURE_POLICIES:
        raise CouncilInputError(f"Unknown failure policy: {failure_policy}")

    prompts = prompts or PromptsConfig()
    sink = sink or TokenSink()
    failures: list[ModelFailure] = []
    start = time.monotonic()

    stage1 = await _run_stage(
        client, STAGE_ANSWER, list(inputs.models),
        build_answer_messages(inputs, prompts), sink, failure_policy, failures,
    )
    stage2 = await _run_stage(
        client, STAGE_REVIEW, list(stage1),
        build_review_messages(stage1, prompts), sink, failure_policy, failures,
    )
    # The chair synthesizes even if its own earlier calls were dropped.
    stage3 = await _run_stage(
        client, STAGE_SYNTHESIS, [inputs.chair],
        build_synthesis_messages(inputs, stage1, stage2, prompts), sink, "abort", failures,
    )

    logger.info("Council run complete in %.2fs (chair: %s)", time.monotonic() - start, inputs.chair)
    return StageResult(
        stage1=stage1,
        stage2=stage2,
        final_answer=stage3[inputs.chair],
        failures=failures,
    )
