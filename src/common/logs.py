# ABOUTME: Shared Rich console for operational log lines from the engine and the Sentry.
# ABOUTME: Prefixes each line with its component tag, e.g. [lms] or [sentry].

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

console = Console(stderr=True)


def log(component: str, message: str, style: str = "dim") -> None:
    console.log(f"[bold]{escape('[' + component + ']')}[/bold] [{style}]{escape(message)}[/{style}]")


def warn(component: str, message: str) -> None:
    log(component, message, style="yellow")


def error(component: str, message: str) -> None:
    log(component, message, style="red")
