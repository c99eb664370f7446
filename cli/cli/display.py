"""Rich output formatting for the Explain This PR CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that the comment text printed on *stdout* can be
piped without decoration.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from diff_engine.models.account import Account
from diff_engine.models.files import ChangedFile, FileBatch
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# ---------------------------------------------------------------------------
# Filtering and batching
# ---------------------------------------------------------------------------


def display_filter_summary(console: Console, files: Sequence[ChangedFile], kept: Sequence[ChangedFile]) -> None:
    """Render which changed files survived filtering."""
    kept_names = {f.filename for f in kept}
    table = Table(title=f"Changed files ({len(kept)} of {len(files)} kept)")
    table.add_column("File", style="bold")
    table.add_column("Status")
    table.add_column("Changes", justify="right")
    table.add_column("Kept", justify="center")

    for f in files:
        mark = "[green]yes[/green]" if f.filename in kept_names else "[dim]no[/dim]"
        table.add_row(f.filename, f.status.value, str(f.changes), mark)

    console.print(table)


def display_batches(console: Console, batches: Sequence[FileBatch], char_limit: int) -> None:
    """Render the batch layout that would be sent to the LLM.

    Parameters
    ----------
    console:
        Rich console to write to.
    batches:
        Output of the chunker.
    char_limit:
        The per-batch content budget, shown for comparison.
    """
    if not batches:
        console.print("[dim]No batches: nothing would be sent to the LLM.[/dim]")
        return

    table = Table(title=f"Batches (limit {char_limit} chars)")
    table.add_column("#", justify="right")
    table.add_column("Files")
    table.add_column("Chars", justify="right")

    for index, batch in enumerate(batches, start=1):
        chars = batch.char_count
        colour = "red" if chars > char_limit else "white"
        table.add_row(
            str(index),
            "\n".join(entry.filename for entry in batch.entries),
            f"[{colour}]{chars}[/{colour}]",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Accounts and stats
# ---------------------------------------------------------------------------


def display_account(console: Console, account: Account) -> None:
    usage = account.usage
    lines = [
        f"[bold]Account:[/bold]  {account.id}",
        f"[bold]GitHub:[/bold]   {account.login or '(unknown)'} ({account.provider_id})",
        f"[bold]Plan:[/bold]     {account.plan.value}",
        f"[bold]Lines:[/bold]    {usage.loc_count} / {usage.loc_limit}",
        f"[bold]Repos:[/bold]    {usage.repos_count} / {usage.repos_limit}",
    ]
    if account.repos:
        lines.append("")
        lines.extend(f"  {name}" for name in account.repos)
    console.print(Panel("\n".join(lines), title="Usage", border_style="blue"))


def display_stats(console: Console, stats: dict[str, Any]) -> None:
    table = Table(title="Public stats", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Runs", str(stats.get("runs", 0)))
    table.add_row("Lines analysed", str(stats.get("loc_analyzed", 0)))
    table.add_row("Last run", stats.get("last_run_at") or "-")
    console.print(table)
