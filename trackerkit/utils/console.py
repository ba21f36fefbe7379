"""Rich console output for the command line client.

Status lines are echoed to the debug log as well, so a log file shows what
the user saw.
"""

from rich.console import Console
from rich.theme import Theme

from trackerkit import __version__
from trackerkit.utils.logging import log_message

tracker_theme = Theme(
    {
        "error": "bold red",
        "success": "bold green",
        "info": "bold blue",
        "header": "bold magenta",
        "key": "bold cyan",
        "muted": "dim",
    }
)

console = Console(theme=tracker_theme)
console_err = Console(theme=tracker_theme, stderr=True)


def _status(target: Console, level: str, colour: str, message: str) -> None:
    target.print(f"[{level}][[{level.upper()}]][/{level}] [{colour}]{message}[/{colour}]")
    log_message(f"{level.upper()}: {message}")


def print_error(message: str) -> None:
    """Print an error line to stderr."""
    _status(console_err, "error", "red", message)


def print_success(message: str) -> None:
    _status(console, "success", "green", message)


def print_info(message: str) -> None:
    _status(console, "info", "cyan", message)


def print_header(title: str) -> None:
    """Print an issue heading with blank lines around it."""
    console.print()
    console.print(f"[header]{title}[/header]", highlight=False)
    console.print()


def show_version() -> None:
    console.print(f"[bold]trackerkit[/bold] v{__version__}")


__all__ = [
    "console",
    "console_err",
    "print_error",
    "print_header",
    "print_info",
    "print_success",
    "show_version",
]
