from __future__ import annotations

from typing import Dict, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from formcapture.domain.models import Record, StoreStats, format_timestamp

_EMPTY = "[dim]-[/dim]"


def _cell(value: Optional[str]) -> str:
    return escape(value) if value is not None else _EMPTY


def print_records(
    records: Sequence[Record],
    title: str = "Captured Submissions",
    console: Optional[Console] = None,
) -> None:
    """
    Render records as a rich table, in the order given.
    """
    console = console or Console()

    if not records:
        console.print("[yellow]No records to display.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        caption=f"{len(records):,} record(s), most recent first",
    )

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Timestamp (UTC)", style="green", no_wrap=True)
    table.add_column("Action", style="magenta")
    table.add_column("Username")
    table.add_column("Email")
    table.add_column("Name")
    table.add_column("Phone")
    table.add_column("Password", style="red")
    table.add_column("Provider", style="blue")
    table.add_column("User Agent", style="dim", overflow="fold")

    for record in records:
        table.add_row(
            str(record.id),
            format_timestamp(record.timestamp),
            _cell(record.action_type),
            _cell(record.username),
            _cell(record.email),
            _cell(record.name),
            _cell(record.phone),
            _cell(record.password),
            _cell(record.provider),
            _cell(record.user_agent),
        )

    console.print(table)


def print_stats(
    stats: StoreStats,
    breakdown: Optional[Dict[str, int]] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render aggregate counts, plus the per-action breakdown when provided.
    """
    console = console or Console()

    table = Table(title="Record Store Statistics", box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Count", justify="right", style="bold green")

    table.add_row("Total records", f"{stats.total:,}")
    table.add_row("Unique users", f"{stats.unique_users:,}")
    table.add_row("Unique providers", f"{stats.unique_providers:,}")
    table.add_row("Unique actions", f"{stats.unique_actions:,}")

    if breakdown:
        table.add_section()
        for action_type, count in breakdown.items():
            table.add_row(f"[magenta]{escape(action_type)}[/magenta]", f"{count:,}")

    console.print(table)
