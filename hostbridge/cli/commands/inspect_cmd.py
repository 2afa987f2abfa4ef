"""``hostbridge hash`` and ``hostbridge locate`` — offline inspection helpers."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from hostbridge.core.hasher import payload_hash
from hostbridge.intercept.host_loader import DEFAULT_ANCHORS
from hostbridge.intercept.locator import locate
from hostbridge.models.locator import Anchor

console = Console()


def hash_cmd(
    payload: Path = typer.Argument(..., exists=True, dir_okay=False, help="Native code payload file."),
) -> None:
    """Print the trust hash of a native code payload."""
    console.print(payload_hash(payload.read_text(encoding="utf-8")))


def locate_cmd(
    host_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Host module source."),
    anchor: list[str] = typer.Option(
        None, "--anchor", help="Extra anchor as NAME=TEXT (declared-name mode)."
    ),
) -> None:
    """Run the pattern-locator over a host module and report each anchor."""
    code = host_file.read_text(encoding="utf-8")
    anchors: list[Anchor] = list(DEFAULT_ANCHORS)
    for spec in anchor or []:
        name, sep, text = spec.partition("=")
        if not sep or not name or not text:
            console.print(f"[red]Invalid anchor:[/red] {spec!r} (expected NAME=TEXT)")
            raise typer.Exit(code=2)
        anchors.append(Anchor(name=name, text=text))

    table = Table(title=f"Anchors in {host_file.name}")
    table.add_column("Anchor", style="cyan")
    table.add_column("Function")
    table.add_column("Offset", justify="right")
    table.add_column("Status", justify="center")

    missing = 0
    for item in anchors:
        match = locate(code, item)
        if match is None:
            missing += 1
            table.add_row(item.name, "-", "-", "[yellow]unavailable[/yellow]")
        else:
            table.add_row(item.name, match.name, str(match.offset), "[green]found[/green]")
    console.print(table)
    if missing == len(anchors):
        raise typer.Exit(code=1)
