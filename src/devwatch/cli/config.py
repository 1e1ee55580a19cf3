"""
Config commands: init, show, path.
"""

import os
from typing import Annotated

import typer
from rich import print as rprint

from ._shared import config_app, load_settings_or_exit


CONFIG_TEMPLATE = """\
# devwatch configuration
# Location: ~/.devwatch/config.yaml (or $DEVWATCH_DIR/config.yaml)
#
# Values here win over environment variables, which win over the defaults.

# monitor:
#   # ntfy relay and topic that completion pings are posted to
#   ntfy_server: http://localhost:8090        # NTFY_SERVER
#   ntfy_topic: dev-sessions                  # NTFY_TOPIC
#
#   # Where the "Monitor Started" ping (and port-less sessions) link to
#   dashboard_url: http://localhost:3333      # DASHBOARD_URL
#
#   # Timing, all in milliseconds
#   poll_interval_ms: 5000                    # POLL_INTERVAL
#   probe_timeout_ms: 3000                    # PROBE_TIMEOUT
#   notify_timeout_ms: 5000                   # NOTIFY_TIMEOUT
#   inventory_timeout_ms: 10000               # DEV_LIST_TIMEOUT
#
#   # Host the agent servers listen on, and the host put in deep links
#   # (e.g. a tailnet address so links open from your phone)
#   opencode_host: 127.0.0.1                  # OPENCODE_HOST
#   link_host: 100.64.0.1                     # LINK_HOST
#
#   # Command that prints the session inventory as JSON
#   inventory_command: [dev-list, --json]     # DEV_LIST_CMD
#
#   # Which conversation a completion links to: probe | last_busy
#   link_session_preference: probe           # LINK_SESSION_PREFERENCE
#
#   startup_notification: true                # STARTUP_NOTIFICATION
#   state_ttl_seconds: 86400                  # STATE_TTL
#   max_probe_workers: 16                     # MAX_PROBE_WORKERS
#   log_level: INFO                           # DEVWATCH_LOG_LEVEL
"""


@config_app.callback(invoke_without_command=True)
def config_default(ctx: typer.Context):
    """Show current configuration (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        _config_show()


@config_app.command("init")
def config_init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing config file")
    ] = False,
):
    """Create a config file with documented defaults.

    Creates ~/.devwatch/config.yaml with all options commented out.
    Use --force to overwrite an existing config file.
    """
    from .. import config as config_module

    path = config_module.CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists() and not force:
        rprint(f"[yellow]Config file already exists:[/yellow] {path}")
        rprint("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    path.write_text(CONFIG_TEMPLATE)
    rprint(f"[green]✓[/green] Created config file: [bold]{path}[/bold]")
    rprint("[dim]Edit to customize your settings[/dim]")


@config_app.command("show")
def config_show():
    """Show the resolved settings and where each one came from."""
    _config_show()


@config_app.command("path")
def config_path():
    """Print the config file location."""
    from .. import config as config_module

    print(config_module.CONFIG_PATH)


def _config_show():
    from .. import config as config_module
    from ..settings import ENV_VARS

    path = config_module.CONFIG_PATH
    file_config = config_module.get_monitor_config(path)
    settings = load_settings_or_exit()

    if path.exists():
        rprint(f"[bold]Configuration[/bold] ({path}):\n")
    else:
        rprint(f"[dim]No config file found at {path}[/dim]")
        rprint("[dim]Run 'devwatch config init' to create one[/dim]\n")

    for name, value in settings.to_dict().items():
        env_var = ENV_VARS[name]
        if file_config.get(name) is not None:
            source = "config file"
        elif os.environ.get(env_var, "") != "":
            source = f"${env_var}"
        else:
            source = "default"
        if isinstance(value, list):
            value = " ".join(value)
        rprint(f"  {name}: {value} [dim]({source})[/dim]")
