"""Shared Rich console and output helpers for the crate-sync CLI."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

# Global console instance (initialized in CLI)
_console: Console | None = None


def get_console() -> Console:
    """Get the global Rich console instance.

    Raises:
        RuntimeError: If console not initialized (should only happen in tests)
    """
    if _console is None:
        raise RuntimeError("Console not initialized. Call set_console() first.")
    return _console


def set_console(console: Console) -> None:
    global _console
    _console = console


@contextmanager
def page_progress(description: str = "Syncing pages") -> Iterator[Any]:
    """Progress bar fed by a ``(page, total_pages)`` callback.

    Yields:
        Callback suitable for ``CollectionSync.sync_collection(progress=...)``
    """
    columns = [
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
    ]
    with Progress(*columns, transient=True, console=get_console()) as progress:
        task = progress.add_task(description, total=None)

        def update(page: int, total_pages: int) -> None:
            progress.update(task, completed=page, total=total_pages)

        yield update


def print(*args: Any, **kwargs: Any) -> None:
    """Print to the global console."""
    get_console().print(*args, **kwargs)


def print_error(message: str) -> None:
    get_console().print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    get_console().print(f"[yellow]Warning: {message}[/yellow]")


def print_success(message: str) -> None:
    get_console().print(f"[green]{message}[/green]")


def print_errors(errors: list[str], shown: int) -> None:
    """Print the first ``shown`` errors, with a count of the rest."""
    for error in errors[:shown]:
        get_console().print(f"  [red]•[/red] {error}")
    if len(errors) > shown:
        get_console().print(f"  … and {len(errors) - shown} more (see log)")


def counts_table(title: str, rows: list[tuple[str, Any]]) -> Table:
    table = Table(title=title, show_header=False, title_justify="left")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for label, value in rows:
        table.add_row(label, str(value))
    return table
