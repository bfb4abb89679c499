"""Logging configuration for esdev."""

from __future__ import annotations

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

# Console instances for stdout/stderr
console = Console()
err_console = Console(stderr=True)


def setup_logging(
    verbosity: Literal["quiet", "normal", "verbose"] = "normal",
) -> logging.Logger:
    """Configure logging based on verbosity level."""
    logger = logging.getLogger("esdev")

    # Clear existing handlers
    logger.handlers.clear()

    level_map = {
        "quiet": logging.ERROR,
        "normal": logging.INFO,
        "verbose": logging.DEBUG,
    }
    logger.setLevel(level_map[verbosity])

    handler = RichHandler(
        console=err_console,
        show_time=verbosity == "verbose",
        show_path=verbosity == "verbose",
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    return logger


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_banner(url: str, root_dir: str, details: dict[str, str]) -> None:
    """Print the startup banner with the server address and active options."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Serving", root_dir)
    table.add_row("Address", f"[cyan]{url}[/cyan]")
    for key, value in details.items():
        table.add_row(key, value)
    console.print(Panel(table, title="es-dev-server", expand=False))
