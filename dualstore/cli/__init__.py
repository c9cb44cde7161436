"""
Command-Line Interface

Reporting commands over a dualstore project. Ingestion is driven from the
Python API.

Commands:
    dualstore info     - Project statistics
    dualstore tables   - Structured tables with keys and row counts
    dualstore pending  - Relationships awaiting their target table
    dualstore links    - Chunks linked to one structured row
    dualstore verify   - Check stored data against the state invariants

Usage:
    dualstore info --project ./project
    dualstore links customers 101 --project ./project
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

__all__ = ["main", "app"]

app = typer.Typer(
    name="dualstore",
    help="Inspect dual-store ingestion projects",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _project_option() -> Path:
    return typer.Option(
        Path("./project"),
        "--project", "-p",
        help="Project directory",
        exists=True,
    )


@app.command()
def info(project: Path = _project_option()) -> None:
    """Display project statistics."""

    async def _run() -> None:
        from dualstore.api.project import DualStoreProject

        store = DualStoreProject(project, create=False)
        try:
            stats = await store.stats()

            table = Table(title=f"Project: {project}")
            table.add_column("Metric", style="cyan")
            table.add_column("Count", justify="right", style="green")
            for key, value in stats.items():
                table.add_row(key.replace("_", " ").capitalize(), str(value))
            console.print(table)
        finally:
            await store.close()

    asyncio.run(_run())


@app.command()
def tables(project: Path = _project_option()) -> None:
    """List structured tables."""

    async def _run() -> None:
        from dualstore.api.project import DualStoreProject

        store = DualStoreProject(project, create=False)
        try:
            state = await store.state()
            if not state.tables:
                console.print("[yellow]No structured tables yet.[/]")
                return

            table = Table(title="Structured Tables")
            table.add_column("Table", style="cyan")
            table.add_column("Primary key")
            table.add_column("Columns", justify="right")
            table.add_column("Rows", justify="right", style="green")
            table.add_column("Sources", style="dim")
            table.add_column("Foreign keys", style="dim")
            for name, spec in sorted(state.tables.items()):
                fks = ", ".join(
                    f"{col} -> {ref.table}.{ref.column}"
                    for col, ref in sorted(spec.foreign_keys.items())
                )
                table.add_row(
                    name,
                    spec.primary_key or "[red]none[/]",
                    str(len(spec.columns)),
                    str(spec.row_count),
                    ", ".join(spec.sources),
                    fks,
                )
            console.print(table)
        finally:
            await store.close()

    asyncio.run(_run())


@app.command()
def pending(project: Path = _project_option()) -> None:
    """List relationships awaiting their target table."""

    async def _run() -> None:
        from dualstore.api.project import DualStoreProject

        store = DualStoreProject(project, create=False)
        try:
            state = await store.state()
            if not state.pending_relationships:
                console.print("[green]No pending relationships.[/]")
                return

            table = Table(title="Pending Relationships")
            table.add_column("Table", style="cyan")
            table.add_column("Column")
            table.add_column("Awaiting", style="yellow")
            for entry in state.pending_relationships:
                table.add_row(entry.table, entry.column, entry.awaited_table_name_hint)
            console.print(table)
        finally:
            await store.close()

    asyncio.run(_run())


@app.command()
def links(
    table_name: str = typer.Argument(..., help="Structured table"),
    entity_id: str = typer.Argument(..., help="Primary key value"),
    project: Path = _project_option(),
) -> None:
    """Show corpus chunks linked to one structured row."""

    async def _run() -> None:
        from dualstore.api.project import DualStoreProject

        store = DualStoreProject(project, create=False)
        try:
            chunks = await store.chunks_for_entity(table_name, entity_id)
            if not chunks:
                console.print(f"[yellow]No chunks linked to {table_name}.{entity_id}[/]")
                return
            for chunk in chunks:
                console.print(Panel(
                    chunk.content,
                    title=f"{chunk.id} ({chunk.link_type.value} via {chunk.link_method.value})",
                    subtitle=chunk.section or chunk.source_file,
                ))
        finally:
            await store.close()

    asyncio.run(_run())


@app.command()
def verify(project: Path = _project_option()) -> None:
    """Check stored data against the state invariants."""

    async def _run() -> int:
        from dualstore.api.project import DualStoreProject

        store = DualStoreProject(project, create=False)
        try:
            problems = await store.verify()
        finally:
            await store.close()

        if not problems:
            console.print("[green]Project is consistent.[/]")
            return 0
        console.print(f"[red]{len(problems)} problem(s) found:[/]")
        for problem in problems:
            console.print(f"  - {problem}")
        return 1

    raise typer.Exit(code=asyncio.run(_run()))


def main() -> None:
    """Entry point for the CLI."""
    load_dotenv()
    app()
