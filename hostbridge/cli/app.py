"""Main Typer application — registers all CLI commands.

Entry point: ``hostbridge`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from hostbridge.cli.commands.inspect_cmd import hash_cmd, locate_cmd
from hostbridge.cli.commands.trust import trust_app
from hostbridge.config import config, configure_logging

app = typer.Typer(
    name="hostbridge",
    help="hostbridge: action interception and trust-gated native code for host extensions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.add_typer(trust_app, name="trust")
app.command(name="hash", help="Print the trust hash of a native code payload.")(hash_cmd)
app.command(name="locate", help="Run the pattern-locator over a host module.")(locate_cmd)


@app.callback()
def main_callback(
    log_level: str = typer.Option(None, "--log-level", help="Override HOSTBRIDGE_LOG_LEVEL."),
) -> None:
    configure_logging(log_level or config.log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
