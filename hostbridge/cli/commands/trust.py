"""``hostbridge trust`` — inspect and administer the native code trust store.

Revocation lives here, outside the bridge itself: the runtime only ever
adds hashes, on an explicit "always allow".
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from hostbridge.config import config
from hostbridge.core.hasher import payload_hash
from hostbridge.native.trust_store import TrustStore

console = Console()

trust_app = typer.Typer(help="Manage trusted native code hashes.", no_args_is_help=True)

StoreOption = typer.Option(None, "--store", help="Path to the trust store JSON file.")


def _open(store: Path | None) -> TrustStore:
    return TrustStore(store or Path(config.trust_store_path))


@trust_app.command("list")
def list_cmd(store: Path = StoreOption) -> None:
    """List every trusted hash."""
    trust_store = _open(store)
    if not len(trust_store):
        console.print("[dim]No trusted native code.[/dim]")
        return
    table = Table(title=f"Trusted native code ({trust_store.path})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("SHA-256", style="cyan")
    for index, code_hash in enumerate(trust_store, start=1):
        table.add_row(str(index), code_hash)
    console.print(table)


@trust_app.command("allow")
def allow_cmd(
    target: str = typer.Argument(..., help="A SHA-256 hex digest, or a payload file with --file."),
    from_file: bool = typer.Option(False, "--file", help="Treat TARGET as a payload file and hash it."),
    store: Path = StoreOption,
) -> None:
    """Trust a payload permanently."""
    code_hash = payload_hash(Path(target).read_text(encoding="utf-8")) if from_file else target
    trust_store = _open(store)
    try:
        added = trust_store.add(code_hash)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)
    if added:
        console.print(f"[green]Trusted[/green] {code_hash}")
    else:
        console.print(f"[yellow]Already trusted[/yellow] {code_hash}")


@trust_app.command("revoke")
def revoke_cmd(
    code_hash: str = typer.Argument(..., help="SHA-256 hex digest to revoke."),
    store: Path = StoreOption,
) -> None:
    """Revoke trust in a hash."""
    if _open(store).remove(code_hash):
        console.print(f"[green]Revoked[/green] {code_hash}")
    else:
        console.print(f"[red]Not trusted:[/red] {code_hash}")
        raise typer.Exit(code=1)
