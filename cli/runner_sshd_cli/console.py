from __future__ import annotations

import os
import sys

from rich.console import Console
from rich.markup import escape

console = Console()


def in_actions() -> bool:
    return os.getenv("GITHUB_ACTIONS") == "true"


def _workflow_command(name: str, msg: str) -> None:
    # workflow commands must be a single unwrapped line on stdout
    value = msg.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    sys.stdout.write(f"::{name}::{value}\n")
    sys.stdout.flush()


def print_json(data) -> None:
    console.print_json(data=data)


def info(msg: str) -> None:
    console.print(f"[bold cyan]•[/] {escape(msg)}")


def ok(msg: str) -> None:
    console.print(f"[bold green]OK[/] {escape(msg)}")


def warn(msg: str) -> None:
    if in_actions():
        _workflow_command("warning", msg)
        return
    console.print(f"[bold yellow]WARN[/] {escape(msg)}")


def err(msg: str) -> None:
    if in_actions():
        _workflow_command("error", msg)
        return
    console.print(f"[bold red]ERR[/] {escape(msg)}")


def print(*args, **kwargs):
    """Proxy to underlying rich Console.print()."""
    console.print(*args, **kwargs)


def rule(*args, **kwargs):
    """Proxy to underlying rich Console.rule()."""
    console.rule(*args, **kwargs)
