"""Click CLI — config loading, model selection, council run, artifact and history."""

import asyncio
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import AppConfig, PromptsConfig, load_config
from llm_council.artifact import ArtifactInput, build_markdown_artifact, write_markdown_file
from llm_council.context_resolver import choose_context, context_preview
from llm_council.healthcheck import HealthResult, failed_models, run_health_checks
from llm_council.history import HistoryStore
from llm_council.model_resolver import (
    default_chair,
    map_available_models,
    resolve_chair,
    resolve_initial_models,
)
from llm_council.models import ContextMode, ResolvedContext, RunInputs, RunSummary, StageResult
from llm_council.output import (
    ConsoleSink,
    console,
    print_final,
    print_history,
    print_stage_summary,
)
from llm_council.pipeline import CouncilInputError, CouncilRunError, run_council
from llm_council.providers.pool import ProviderPool
from llm_council.slugger import generate_slug_from_llm

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str, code: int = 1) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    sys.exit(code)


def _build_prompt(prompt: str | None, template_id: str | None, prompts: PromptsConfig) -> str:
    """Template body, the typed prompt, or the template body followed by the prompt."""
    body = ""
    if template_id:
        template = prompts.templates.get(template_id)
        if template is None:
            raise click.BadParameter(
                f"Unknown template '{template_id}'. Choose from: {', '.join(sorted(prompts.templates))}",
                param_hint="--template",
            )
        body = template.body
    if body and prompt:
        return f"{body}\n\n{prompt}"
    return prompt or body


def _resolve_context(
    document_file: str | None,
    selection: str,
    selection_file: str | None,
    mode: str,
) -> ResolvedContext:
    document = Path(document_file).read_text(encoding="utf-8") if document_file else ""
    if selection_file:
        selection = Path(selection_file).read_text(encoding="utf-8")
    return choose_context(selection=selection, document=document, mode=mode)


def _determine_models(
    config: AppConfig,
    pool: ProviderPool,
    history: HistoryStore,
    models_arg: str | None,
) -> list[str]:
    """--models overrides all; else sticky last selection, else configured defaults."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    return resolve_initial_models(
        history.last_selection,
        config.defaults.default_models,
        pool.available(),
        config.defaults.max_models,
    )


def _print_health(results: dict[str, HealthResult]) -> None:
    for name in sorted(results):
        result = results[name]
        if result.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({result.latency_sec:.1f}s)[/dim]")
        else:
            short_err = result.error.splitlines()[0][:120] if result.error else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")


async def _check_and_filter_providers(pool: ProviderPool, config: AppConfig) -> ProviderPool:
    """Run health checks, print results, and ask user what to do on failures."""
    console.print("\n[bold]Checking models...[/bold]")
    results = await run_health_checks(pool.providers)
    _print_health(results)

    failed_names = failed_models(results)
    if not failed_names:
        console.print()
        return pool

    working = {n: p for n, p in pool.providers.items() if n not in failed_names}
    if not working:
        _fail("No models passed the health check.")

    console.print(f"\n[yellow]{len(failed_names)} model(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working models: {', '.join(sorted(working))}")
    if not click.confirm("Continue with working models only?", default=True):
        sys.exit(0)

    console.print()
    return ProviderPool(working, config)


async def _save_artifact(
    config: AppConfig,
    pool: ProviderPool,
    inputs: RunInputs,
    context: ResolvedContext,
    result: StageResult,
    output_dir: Path,
    run_id: str,
) -> Path:
    preview_chars = config.defaults.preview_chars
    ctx_preview = context_preview(context.text, preview_chars)
    slug = await generate_slug_from_llm(
        pool,
        inputs.chair,
        inputs.prompt,
        context_preview=ctx_preview or None,
        timeout_sec=config.defaults.slug_timeout_sec,
        slug_prompt=config.prompts.slug,
    )
    filename_base, content = build_markdown_artifact(
        ArtifactInput(
            slug=slug,
            prompt=inputs.prompt,
            prompt_preview=context_preview(inputs.prompt, preview_chars),
            context_kind=context.kind,
            models=list(inputs.models),
            chair_model=inputs.chair,
            stage1=result.stage1,
            stage2=result.stage2,
            final_answer=result.final_answer,
            timestamp=datetime.now(timezone.utc),
            version=config.version,
            context_preview=ctx_preview or None,
            run_id=run_id,
            failures=result.failures,
        )
    )
    return write_markdown_file(output_dir, filename_base, content)


async def _run_ask(
    config: AppConfig,
    prompt_text: str,
    context: ResolvedContext,
    models_arg: str | None,
    chair_arg: str | None,
    output_dir: Path,
    save: bool,
    failure_policy: str,
    stream_tokens: bool,
    skip_health_check: bool,
) -> None:
    history = HistoryStore(config.defaults.state_file, config.defaults.history_size)

    async with ProviderPool.from_config(config) as pool:
        if not len(pool):
            _fail("No models available. Check API keys in .env or set COUNCIL_MOCK=1.")
        if not skip_health_check:
            pool = await _check_and_filter_providers(pool, config)

        models = _determine_models(config, pool, history, models_arg)
        unknown = [m for m in models if m not in pool]
        if unknown:
            _fail(f"Model(s) not available: {', '.join(unknown)}. See `llm-council models`.")
        fallback_chair = default_chair(models, config.defaults.chair, history.last_selection, history.last_chair)
        chair = resolve_chair(chair_arg, models, fallback_chair)
        if chair is None:
            _fail("No chair on this council: pass --chair with one of the selected models.", code=2)

        inputs = RunInputs(
            prompt=prompt_text,
            models=models,
            chair=chair,
            context_text=context.text or None,
        )

        console.print(f"\n[bold cyan]LLM Council[/bold cyan] — {len(models)} models, chair: {chair}")
        console.print(f"Models: {', '.join(models)}")
        console.print(f"Context: {context.kind}")
        console.print(f"Prompt: [italic]{escape(prompt_text[:80])}{'...' if len(prompt_text) > 80 else ''}[/italic]\n")

        start = time.monotonic()
        try:
            result = await run_council(
                inputs,
                pool,
                ConsoleSink(show_tokens=stream_tokens),
                prompts=config.prompts,
                max_models=config.defaults.max_models,
                failure_policy=failure_policy,
            )
        except CouncilInputError as exc:
            _fail(str(exc), code=2)
        except CouncilRunError as exc:
            _fail(f"Council run failed: {exc}")
        duration = time.monotonic() - start

        run_id = uuid.uuid4().hex
        history.remember_selection(models, chair)
        history.append(
            RunSummary(
                id=run_id,
                prompt=prompt_text,
                models=models,
                final_answer=result.final_answer,
                timestamp=time.time(),
            )
        )

        print_stage_summary("S1", result.stage1)
        print_stage_summary("S2", result.stage2)
        print_final(result, chair, duration)

        if not save:
            return
        try:
            saved_path = await _save_artifact(config, pool, inputs, context, result, output_dir, run_id)
        except OSError as exc:
            logger.error("Could not save council artifact: %s", exc)
            console.print(f"[bold red]Artifact not saved:[/bold red] {escape(str(exc))}")
            return
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


@click.group()
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Path to settings.yaml (default: bundled config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, settings_path: str | None, verbose: bool) -> None:
    """LLM Council -- ask several models, let them review each other, and have a chair synthesize.

    \b
    Examples:
      llm-council ask "How should we cache this?" --file app.py
      llm-council ask --template review --file app.py --context file
      llm-council ask "Explain" --models gpt-5.1,sonnet-4.5 --chair sonnet-4.5
      llm-council serve --port 3000
    """
    load_dotenv()
    _setup_logging(verbose)
    try:
        ctx.obj = load_config(Path(settings_path)) if settings_path else load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


@main.command()
@click.argument("prompt", required=False)
@click.option("--template", "template_id", default=None, help="Prompt template id (see `templates`)")
@click.option("--file", "document_file", type=click.Path(exists=True, dir_okay=False),
              help="Document used as file context")
@click.option("--selection", default="", help="Selected text used as selection context")
@click.option("--selection-file", type=click.Path(exists=True, dir_okay=False),
              help="Read the selection context from a file")
@click.option("--context", "context_mode", type=click.Choice([m.value for m in ContextMode]),
              default=None, help="Context mode (default: from config)")
@click.option("--models", default=None, help="Comma-separated model ids, overrides the remembered selection")
@click.option("--chair", default=None, help="Model that writes the final answer (default: from config)")
@click.option("--output", "output_path", default=None, help="Artifact directory (default: from config)")
@click.option("--no-save", is_flag=True, help="Do not write a markdown artifact")
@click.option("--continue-on-error", is_flag=True,
              help="Drop failing models instead of aborting the run")
@click.option("--quiet", is_flag=True, help="Do not stream tokens to the console")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.pass_obj
def ask(
    config: AppConfig,
    prompt: str | None,
    template_id: str | None,
    document_file: str | None,
    selection: str,
    selection_file: str | None,
    context_mode: str | None,
    models: str | None,
    chair: str | None,
    output_path: str | None,
    no_save: bool,
    continue_on_error: bool,
    quiet: bool,
    skip_health_check: bool,
) -> None:
    """Run a three-stage council on PROMPT."""
    prompt_text = _build_prompt(prompt, template_id, config.prompts)
    if not prompt_text.strip():
        _fail("Provide a PROMPT argument or --template.", code=2)

    context = _resolve_context(document_file, selection, selection_file, context_mode or config.defaults.context_mode)
    failure_policy = "continue" if continue_on_error else config.defaults.failure_policy

    asyncio.run(
        _run_ask(
            config=config,
            prompt_text=prompt_text,
            context=context,
            models_arg=models,
            chair_arg=chair,
            output_dir=Path(output_path) if output_path else config.defaults.output_dir,
            save=not no_save,
            failure_policy=failure_policy,
            stream_tokens=not quiet,
            skip_health_check=skip_health_check,
        )
    )


@main.command()
@click.option("--host", default=None, help="Bind address (default: from config / HOST)")
@click.option("--port", default=None, type=int, help="Port (default: from config / PORT)")
@click.pass_obj
def serve(config: AppConfig, host: str | None, port: int | None) -> None:
    """Serve the HTTP/SSE API."""
    import uvicorn

    from llm_council.server import create_app

    app = create_app(config)
    uvicorn.run(app, host=host or config.server.host, port=port or config.server.port)


@main.command("models")
@click.pass_obj
def list_models(config: AppConfig) -> None:
    """List available models; the default council is marked with *."""
    history = HistoryStore(config.defaults.state_file, config.defaults.history_size)
    available = map_available_models(config.models, sorted(config.available_models))
    if not available:
        _fail("No models available. Check API keys in .env or set COUNCIL_MOCK=1.")
    defaults = resolve_initial_models(
        history.last_selection, config.defaults.default_models, available, config.defaults.max_models
    )
    for info in sorted(available, key=lambda m: m.quality, reverse=True):
        marker = "*" if info.id in defaults else " "
        console.print(f"{marker} {info.id:<20} {info.name:<28} quality={info.quality:.2f}")


@main.command()
@click.option("--limit", default=10, show_default=True, help="Number of runs to show")
@click.pass_obj
def history(config: AppConfig, limit: int) -> None:
    """Show recent council runs, newest first."""
    store = HistoryStore(config.defaults.state_file, config.defaults.history_size)
    print_history(store.all()[:limit])


@main.command()
@click.pass_obj
def templates(config: AppConfig) -> None:
    """List prompt templates usable with `ask --template`."""
    for template in config.prompts.templates.values():
        console.print(f"[bold]{template.id}[/bold] — {escape(template.title)}: {escape(template.body)}")


async def _check_all(config: AppConfig) -> dict[str, HealthResult]:
    async with ProviderPool.from_config(config) as pool:
        return await run_health_checks(pool.providers)


@main.command()
@click.pass_obj
def check(config: AppConfig) -> None:
    """Ping every available model."""
    results = asyncio.run(_check_all(config))
    if not results:
        _fail("No models available. Check API keys in .env or set COUNCIL_MOCK=1.")
    _print_health(results)
    if failed_models(results):
        sys.exit(1)


if __name__ == "__main__":
    main()
