"""Pure dataclasses for the LLM Council pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum

STAGE_ANSWER = "S1"
STAGE_REVIEW = "S2"
STAGE_SYNTHESIS = "S3"


class ContextMode(str, Enum):
    AUTO = "auto"
    FILE = "file"
    SELECTION = "selection"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedContext:
    kind: str              # "none", "file" or "selection"
    text: str | None = None


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str = ""
    quality: float = 0.0


@dataclass
class RunInputs:
    prompt: str
    models: list[str]
    chair: str
    context_text: str | None = None


@dataclass(frozen=True)
class ModelFailure:
    stage: str
    model: str
    message: str


@dataclass
class StageResult:
    stage1: dict[str, str]
    stage2: dict[str, str]
    final_answer: str
    failures: list[ModelFailure] = field(default_factory=list)


@dataclass(frozen=True)
class TokenEvent:
    stage: str
    model: str
    chunk: str


@dataclass(frozen=True)
class ModelDone:
    stage: str
    model: str
    text: str


@dataclass(frozen=True)
class ModelFailed:
    stage: str
    model: str
    message: str


@dataclass(frozen=True)
class RunFinished:
    result: StageResult
    chair: str


@dataclass(frozen=True)
class RunFailed:
    message: str


@dataclass
class RunSummary:
    id: str
    prompt: str
    models: list[str]
    final_answer: str
    timestamp: float
