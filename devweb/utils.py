"""Shared console helpers for devweb.

All user-facing output goes through the module-level Rich ``console`` so it
can be captured or silenced in one place (tests swap it via ``console.quiet``
or ``console.capture()``).
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.rule import Rule
from rich.table import Table

from devweb.models import Stage

console = Console()


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STAGE_NUMBERS: dict[Stage, int] = {
    Stage.STRUCTURE: 1,
    Stage.FILES: 2,
    Stage.DEPENDENCIES: 3,
    Stage.POST_HOOKS: 4,
}

STAGE_TITLES: dict[Stage, str] = {
    Stage.STRUCTURE: "Directory structure",
    Stage.FILES: "Project files",
    Stage.DEPENDENCIES: "Dependencies",
    Stage.POST_HOOKS: "Post-generation",
}

STAGE_COLORS: dict[Stage, str] = {
    Stage.STRUCTURE: "bright_cyan",
    Stage.FILES: "bright_green",
    Stage.DEPENDENCIES: "bright_yellow",
    Stage.POST_HOOKS: "bright_magenta",
}


def print_stage_header(stage: Stage) -> None:
    """Print a full-width rule announcing *stage*."""
    color = STAGE_COLORS.get(stage, "white")
    number = STAGE_NUMBERS.get(stage, 0)
    title = STAGE_TITLES.get(stage, stage.value)
    console.print()
    console.print(
        Rule(f"[bold {color}] Stage {number}: {title.upper()} [/bold {color}]", style=color)
    )


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")


def print_debug(message: str) -> None:
    """Print a dimmed detail line."""
    console.print(f"[dim]{escape(message)}[/dim]", highlight=False)


def create_progress() -> Progress:
    """Create a Rich progress spinner for long-running stage work.

    Returns:
        A ``Progress`` instance suitable for use as a context manager.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
