"""
Rich terminal UI components and log handler setup.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

# Detect ASCII fallback
try:
    "📦".encode(sys.stdout.encoding or "utf-8")
    HAS_UNICODE = True
except (UnicodeEncodeError, LookupError):
    HAS_UNICODE = False

ICONS: Dict[str, str] = {
    "archive": "📦",
    "incremental": "⚡",
    "backup": "💾",
    "verify": "🧪",
    "success": "✅",
    "error": "❌",
    "warn": "⚠️",
    "info": "ℹ️",
    "identical": "🟰",
    "dry_run": "👀",
}

ASCII_ICONS: Dict[str, str] = {
    "archive": "[ARC]",
    "incremental": "[INC]",
    "backup": "[BAK]",
    "verify": "[CHK]",
    "success": "[OK]",
    "error": "[ERR]",
    "warn": "[WARN]",
    "info": "[INF]",
    "identical": "[SAME]",
    "dry_run": "[DRY]",
}

def icon(name: str) -> str:
    return ICONS.get(name, "") if HAS_UNICODE else ASCII_ICONS.get(name, "")

console = Console(width=120)
err_console = Console(stderr=True, width=120)

def setup_logging(verbose: bool = False) -> None:
    """Route engine logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )

def render_banner(subtitle: str) -> None:
    title = Text("DIRVAULT", style="bold cyan")
    title.append(f"  {subtitle}", style="dim")
    console.print(Panel(title, border_style="cyan", expand=False))

def render_status(action: str, message: str, style: str = "white") -> None:
    """Print a single line status update."""
    i = icon(action)
    console.print(f"{i} [{style}]{message}[/]")

def render_error(message: str, status_code: Optional[int] = None) -> None:
    """Print a styled error panel."""
    i = icon("error")
    title = f"{i} ERROR" if status_code is None else f"{i} ERROR (status {status_code})"
    err_console.print()
    err_console.print(Panel(Text(message, style="red"), border_style="red", expand=False, title=title))

def render_warning(message: str) -> None:
    """Print a styled warning panel."""
    i = icon("warn")
    console.print()
    console.print(Panel(Text(message, style="yellow"), border_style="yellow", expand=False, title=f"{i} WARNING"))

def render_table(title: str, headers: List[str], rows: List[List[str]]) -> None:
    """Render a structured Rich Table."""
    console.print()
    table = Table(
        title=title,
        border_style="cyan",
        header_style="bold magenta",
        show_lines=False,
        box=box.ROUNDED if HAS_UNICODE else box.ASCII
    )

    if headers:
        table.add_column(headers[0], no_wrap=True)
        for h in headers[1:]:
            table.add_column(h, justify="left", overflow="fold")

    for r in rows:
        table.add_row(*r)

    console.print(table)

def render_file_list(title: str, files: List[str]) -> None:
    console.print(f"[bold]{title}[/] ({len(files)})")
    for f in files:
        console.print(f"  [green]+[/] {f}")

def render_summary(title: str, stats: Dict[str, str], style: str = "green") -> None:
    """Render a key/value summary panel for an operation."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="magenta", overflow="fold")
    for key, value in stats.items():
        table.add_row(key, value)
    console.print(Panel(table, title=f"[bold {style}]{title}[/]", border_style=style, expand=False))

@contextmanager
def render_progress(title: str = "Operation in progress...") -> Generator[Progress, None, None]:
    """Provide a unified Progress context manager."""
    progress = Progress(
        SpinnerColumn(spinner_name="dots2", style="cyan"),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40, style="magenta", complete_style="cyan"),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    )
    with progress:
        progress.add_task(title, total=None)
        yield progress
