"""Rich console output for council runs: live token stream and stage summaries."""

import logging
from datetime import datetime

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from llm_council.models import ModelFailure, RunSummary, StageResult
from llm_council.pipeline import TokenSink

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

STAGE_TITLES = {
    "S1": "Stage 1 Answers",
    "S2": "Stage 2 Reviews",
    "S3": "Stage 3 Synthesis",
}


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


class ConsoleSink(TokenSink):
    """Streams tokens to the console as ``[S1:model] chunk`` lines.

    Models in the same stage interleave, so a tag is printed whenever the
    source changes.
    """

    def __init__(self, out: Console | None = None, show_tokens: bool = True) -> None:
        self._console = out or console
        self._show_tokens = show_tokens
        self._current: tuple[str, str] | None = None

    def on_token(self, stage: str, model: str, chunk: str) -> None:
        if not chunk or not self._show_tokens:
            return
        if self._current != (stage, model):
            if self._current is not None:
                self._console.print()
            self._console.print(Text(f"[{stage}:{model}] ", style="bold cyan"), end="")
            self._current = (stage, model)
        self._console.print(chunk, end="", markup=False, highlight=False)

    def on_model_done(self, stage: str, model: str, text: str) -> None:
        if self._current is not None:
            self._console.print()
            self._current = None
        logger.info("%s complete for %s (%d chars)", stage, model, len(text))

    def on_model_error(self, stage: str, model: str, message: str) -> None:
        if self._current is not None:
            self._console.print()
            self._current = None
        self._console.print(f"[red]FAIL[/red] {stage} {model}: {escape(message)}")


def print_stage_summary(stage: str, outputs: dict[str, str]) -> None:
    """Print a brief panel per model for one stage."""
    console.print(Rule(f"[bold cyan]{STAGE_TITLES.get(stage, stage)}[/bold cyan]"))
    for model, text in outputs.items():
        console.print(Panel(_preview(text), title=f"[bold]{model}[/bold]", border_style="dim"))


def print_final(result: StageResult, chair: str, duration_sec: float | None = None) -> None:
    """Print the chair's answer using Rich markdown."""
    console.print(Rule("[bold green]Council Synthesis[/bold green]"))
    meta = f"Chair: {chair} | Models: {', '.join(result.stage1)}"
    if duration_sec is not None:
        meta += f" | Duration: {duration_sec:.1f}s"
    console.print(Text(meta, style="dim"))
    console.print(Markdown(result.final_answer))
    if result.failures:
        print_failures(result.failures)


def print_failures(failures: list[ModelFailure]) -> None:
    for failure in failures:
        console.print(f"[yellow]Dropped[/yellow] {failure.model} in {failure.stage}: {escape(failure.message)}")


def print_history(entries: list[RunSummary]) -> None:
    if not entries:
        console.print("No council runs recorded yet.")
        return
    table = Table(title="Recent council runs")
    table.add_column("When", style="dim")
    table.add_column("Models")
    table.add_column("Prompt")
    table.add_column("Answer")
    for entry in entries:
        when = datetime.fromtimestamp(entry.timestamp).strftime("%Y-%m-%d %H:%M")
        table.add_row(when, ", ".join(entry.models), _preview(entry.prompt, 8), _preview(entry.final_answer, 12))
    console.print(table)
