"""
Shared CLI state: Typer apps, console, options, and utilities.
"""

from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Console

# Main app
app = typer.Typer(
    name="devwatch",
    help="Watch dev-session agents and send a ping when they finish",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Config subcommand group
config_app = typer.Typer(
    name="config",
    help="Manage configuration",
    no_args_is_help=False,
    invoke_without_command=True,
)
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

IntervalOption = Annotated[
    Optional[int],
    typer.Option("--interval", "-i", help="Poll interval in milliseconds (overrides POLL_INTERVAL)"),
]


def load_settings_or_exit(**overrides):
    """Resolve settings, turning a ConfigError into exit code 2."""
    from ..settings import ConfigError, load_settings

    try:
        return load_settings(**overrides)
    except ConfigError as e:
        rprint(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)
