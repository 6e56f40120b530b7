"""Typer-based CLI for generating, inspecting and re-rendering code bundles."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer

from codeforge.config import PipelineConfig
from codeforge.generator import resolve_gemini_api_key
from codeforge.models import GenerationContext, GenerationRequest, ProgressEvent
from codeforge.pipeline import build_orchestrator
from codeforge.renderer import render_bundle, render_summary
from codeforge.scope import ScopeAnalyzer
from codeforge.store import ResultStore

app = typer.Typer(add_completion=False, help="codeforge: turn a free-text request into a validated code bundle")

DEFAULT_DB_PATH = Path(".codeforge/results.db")
DEFAULT_OUTPUT_ROOT = Path("generated")
LANGUAGES = ("typescript", "javascript")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _echo_step(step: int, total: int, message: str) -> None:
    """Print a normalized progress step line."""
    typer.echo(f"[{step}/{total}] {message}")


def _echo_progress(event: ProgressEvent) -> None:
    """Print pipeline progress events from the orchestrator observer."""
    typer.echo(f"    {event.percentage:3d}% {event.stage.value}: {event.message}")


@app.command("generate")
def generate(
    prompt: str = typer.Argument(..., help="Free-text description of the software to build"),
    framework: str | None = typer.Option(None, help="Framework hint, e.g. react"),
    language: str | None = typer.Option(None, help="typescript or javascript"),
    domain: str | None = typer.Option(None, help="Business domain hint"),
    local_only: bool = typer.Option(False, help="Skip Gemini and use the offline scaffold generator"),
    model_name: str | None = typer.Option(None, "--model", help="Gemini model name"),
    strict: bool = typer.Option(False, "--strict", help="Fail when an artifact still fails validation"),
    no_optimize: bool = typer.Option(False, "--no-optimize", help="Skip the optimization stage"),
    output_root: Path = typer.Option(DEFAULT_OUTPUT_ROOT, "--out", help="Bundle output directory"),
    db_path: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    no_db: bool = typer.Option(False, "--no-db", help="Do not persist the result to SQLite"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run the full pipeline for one prompt and write the bundle to disk."""
    _configure_logging(verbose)
    if language is not None and language not in LANGUAGES:
        raise typer.BadParameter(f"Language must be one of: {', '.join(LANGUAGES)}")
    if not prompt.strip():
        raise typer.BadParameter("Prompt must not be empty.")

    _echo_step(1, 4, "Preparing pipeline")
    config = PipelineConfig.from_env(
        model_name=model_name,
        strict=True if strict else None,
        enable_optimization=False if no_optimize else None,
    )
    store: ResultStore | None = None
    if no_db:
        typer.echo("    --no-db enabled: result will not be persisted")
    else:
        store = ResultStore(db_path)
        store.init_db()
    orchestrator = build_orchestrator(config, local_only=local_only, observer=_echo_progress, store=store)

    _echo_step(2, 4, "Running generation" + (" (local scaffold)" if local_only else f" with {config.model_name}"))
    request = GenerationRequest(
        prompt=prompt,
        framework=framework,
        language=language,
        context=GenerationContext(domain=domain) if domain else None,
    )
    result = orchestrator.execute(request)

    _echo_step(3, 4, "Rendering bundle")
    out_dir = render_bundle(result, output_root=output_root)

    _echo_step(4, 4, "Summarizing")
    for warning in result.warnings:
        typer.echo(f"    warning: {warning}")
    if not result.success:
        typer.echo(f"Generation failed. id={result.generation_id} {result.error_kind}: {result.error}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        "Generation complete. "
        f"id={result.generation_id} files={len(result.components)} quality={result.quality_score:.1f} "
        f"provenance={result.provenance} path={out_dir}"
    )


@app.command("analyze")
def analyze(
    prompt: str = typer.Argument(..., help="Free-text description to classify"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Print the scope decision for a prompt as JSON without generating anything."""
    _configure_logging(verbose)
    decision = ScopeAnalyzer().analyze(prompt)
    typer.echo(json.dumps(decision.model_dump(mode="json"), indent=2))


@app.command("show")
def show(
    generation_id: str = typer.Argument(..., help="Generation ID from a previous run"),
    db_path: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    output_root: Path | None = typer.Option(None, "--out", help="Re-render the bundle into this directory"),
) -> None:
    """Print the summary of a stored result and optionally re-render it."""
    if not db_path.exists():
        raise typer.BadParameter(f"Database not found: {db_path}")
    result = ResultStore(db_path).get(generation_id)
    if result is None:
        raise typer.BadParameter(f"Result not found: {generation_id}")

    typer.echo(render_summary(result))
    if output_root is not None:
        out_dir = render_bundle(result, output_root=output_root)
        typer.echo(f"Rendered bundle to: {out_dir}")


@app.command("history")
def history(
    db_path: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    limit: int = typer.Option(10, min=1, help="Number of results to list"),
) -> None:
    """List the most recent stored results."""
    if not db_path.exists():
        raise typer.BadParameter(f"Database not found: {db_path}")
    rows = ResultStore(db_path).list_recent(limit=limit)
    if not rows:
        typer.echo("No stored results.")
        return
    for row in rows:
        status = "ok" if row["success"] else f"failed ({row['error_kind']})"
        typer.echo(
            f"{row['generation_id']}  {row['created_at']}  {row['scope_type'] or '-'}  "
            f"files={row['component_count']} quality={row['quality_score']:.1f} {status}"
        )


@app.command("doctor")
def doctor(
    db_path: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
) -> None:
    """Print local environment diagnostics used by the CLI."""
    api_key = resolve_gemini_api_key()
    config = PipelineConfig.from_env()
    typer.echo(f"DB exists: {db_path.exists()} ({db_path})")
    typer.echo(f"GEMINI_API_KEY set: {bool(api_key)}")
    typer.echo(f"Model: {config.model_name} (timeout {config.timeout_seconds:.0f}s)")
    typer.echo(f"Strict mode: {config.strict}")


if __name__ == "__main__":
    app()
