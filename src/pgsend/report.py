"""Console output for startup and validation mode, rendered with Rich."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pgsend import __version__
from pgsend.config import SenderConfig
from pgsend.sender.check import CheckResult


def _settings_table(config: SenderConfig) -> Table:
    conn = config.connection
    opts = config.collection

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("PG", conn.describe())
    table.add_row(
        "Databases",
        "all (--all-dbs)" if opts.all_databases else ", ".join(opts.databases),
    )
    table.add_row("Password", "*** set ***" if conn.password else "(not set)")
    table.add_row("Timeout", f"{opts.timeout_seconds}s")
    table.add_row("Omit", opts.omit)
    table.add_row("SQL length", str(opts.sql_length))
    table.add_row("Statements limit", str(opts.statements_limit))
    return table


def print_banner(config: SenderConfig, source_name: str, console: Optional[Console] = None):
    console = console or Console()
    table = _settings_table(config)
    table.add_row("Server ID", config.effective_identity)
    table.add_row("Target", config.api_base_url)
    table.add_row("Source", source_name)

    console.print(Panel(
        table,
        title=f"[bold]pgsend v{__version__}[/bold] -- starting sender",
        border_style="blue",
    ))


def print_check(
    config: SenderConfig,
    result: CheckResult,
    console: Optional[Console] = None,
):
    console = console or Console()
    console.print(Panel(
        _settings_table(config),
        title="[bold]TEST MODE[/bold] -- no outbound API requests",
        border_style="yellow",
    ))

    if result.ok:
        console.print("[bold green]pgmetrics ran successfully[/bold green]")
        console.print(f"  Output file: {result.path}")
        console.print(f"  Size: {result.size_mb:.2f} MB ({result.size} bytes)")
        console.print("  [dim]Temp file removed.[/dim]")
    else:
        console.print(f"[bold red]pgmetrics failed:[/bold red] {result.error}")
