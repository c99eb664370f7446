"""Explain This PR CLI -- Typer-based operator interface.

Runs the webhook service, previews how a pull request's files would be
filtered and batched, produces a summary from a saved file listing, and
inspects the usage database.  Human-readable output goes to *stderr* via
Rich; the generated comment is written to *stdout* so it can be piped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from diff_engine.chunking import Chunker
from diff_engine.events import DiffFormatError, parse_diff_body
from diff_engine.filtering import FileFilter
from diff_engine.state.database import create_tables, get_engine, session_scope
from diff_engine.state.repository import AccountRepository, PublicStatsRepository
from rich.console import Console
from summary_engine.config import load_summary_settings
from summary_engine.engines.llm_client import LLMClient
from summary_engine.engines.summarizer import SummaryConfig, SummaryEngine
from webhook_api.config import load_api_settings

from cli.display import display_account, display_batches, display_filter_summary, display_stats

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="explainthispr",
    help="Explain This PR - LLM summaries for GitHub pull requests",
    no_args_is_help=True,
)
console = Console(stderr=True)

_json_output: bool = False


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Global options applied to every command."""
    global _json_output  # noqa: PLW0603
    _json_output = json_mode
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _database_url(override: str | None) -> str:
    return override or load_api_settings().database_url


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to listen on."),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Restart on code changes."),
) -> None:
    """Run the webhook service with uvicorn."""
    import uvicorn

    config = uvicorn.Config(
        "webhook_api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        access_log=False,
    )
    console.print(f"[green]✓[/green] Webhook service starting on http://{host}:{port}")
    console.print(f"[green]✓[/green] GitHub webhooks at http://{host}:{port}/webhooks/github")
    uvicorn.Server(config).run()


# ---------------------------------------------------------------------------
# explain
# ---------------------------------------------------------------------------


@app.command()
def explain(
    diff_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON array saved from GET /repos/{owner}/{repo}/pulls/{n}/files.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the filtered files and batches without calling the LLM.",
    ),
    char_limit: int | None = typer.Option(
        None,
        "--char-limit",
        min=1,
        help="Per-batch content budget (defaults to API_CHUNK_CHAR_LIMIT).",
    ),
) -> None:
    """Summarise a saved pull request file listing."""
    try:
        files = parse_diff_body(diff_file.read_text(encoding="utf-8"))
    except DiffFormatError as exc:
        console.print(f"[red]Invalid diff file:[/red] {exc.detail}")
        raise typer.Exit(code=1) from exc

    api_settings = load_api_settings()
    chunker = Chunker(char_limit or api_settings.chunk_char_limit)
    kept = FileFilter().filter(files)
    batches = chunker.chunk(kept)
    lines = sum(f.changes for f in kept)

    if dry_run:
        if _json_output:
            _echo_json(
                {
                    "files": len(files),
                    "kept": [f.filename for f in kept],
                    "lines": lines,
                    "batches": [[e.filename for e in b.entries] for b in batches],
                }
            )
            return
        display_filter_summary(console, files, kept)
        display_batches(console, batches, chunker.limit)
        console.print(f"[bold]Lines counted against quota:[/bold] {lines}")
        return

    summary_settings = load_summary_settings()
    llm = LLMClient(summary_settings)
    if not llm.enabled:
        console.print("[yellow]LLM disabled or no API key configured; the comment will be a fallback.[/yellow]")
    engine = SummaryEngine(llm, SummaryConfig.from_settings(summary_settings, feedback_url=api_settings.feedback_url))

    async def _run() -> str:
        try:
            return await engine.summarize(batches)
        finally:
            await llm.close()

    comment = asyncio.run(_run())
    if _json_output:
        _echo_json({"comment": comment, "lines": lines, "batches": len(batches)})
    else:
        typer.echo(comment)


# ---------------------------------------------------------------------------
# Database commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db(
    database_url: str | None = typer.Option(None, "--database-url", help="Override API_DATABASE_URL."),
) -> None:
    """Create the state tables if they do not exist."""

    async def _run() -> None:
        engine = get_engine(_database_url(database_url))
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    console.print("[green]✓[/green] Database tables ensured")


@app.command()
def stats(
    database_url: str | None = typer.Option(None, "--database-url", help="Override API_DATABASE_URL."),
) -> None:
    """Show the public run counters."""

    async def _run() -> dict[str, Any]:
        engine = get_engine(_database_url(database_url))
        try:
            async with session_scope(engine) as session:
                return await PublicStatsRepository(session).get()
        finally:
            await engine.dispose()

    data = asyncio.run(_run())
    if _json_output:
        _echo_json(data)
    else:
        display_stats(console, data)


@app.command()
def account(
    provider_id: int = typer.Argument(..., help="Numeric GitHub account id."),
    database_url: str | None = typer.Option(None, "--database-url", help="Override API_DATABASE_URL."),
) -> None:
    """Show an account's plan, usage and repositories."""

    async def _run():
        engine = get_engine(_database_url(database_url))
        try:
            async with session_scope(engine) as session:
                return await AccountRepository(session).find_by_provider_id(provider_id)
        finally:
            await engine.dispose()

    found = asyncio.run(_run())
    if found is None:
        console.print(f"[red]No account for GitHub id {provider_id}[/red]")
        raise typer.Exit(code=1)

    if _json_output:
        _echo_json(found.model_dump(mode="json"))
    else:
        display_account(console, found)
