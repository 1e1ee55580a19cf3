"""
Monitor commands: run, check, link, notify-test, version.
"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.table import Table

from ._shared import app, console, IntervalOption, load_settings_or_exit


@app.command()
def run(
    interval: IntervalOption = None,
    no_startup_notice: Annotated[
        bool, typer.Option("--no-startup-notice", help="Don't send the 'Monitor Started' notification")
    ] = False,
    log_file: Annotated[
        Optional[Path], typer.Option("--log-file", help="Also append log lines to this file")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Debug logging")
    ] = False,
):
    """Run the agent monitor in the foreground.

    Polls every dev session's agent server and sends an ntfy notification
    each time an agent goes from busy to idle. Stop with Ctrl-C or SIGTERM.
    """
    from ..logging_config import setup_daemon_logging
    from ..monitor_daemon import MonitorDaemon

    settings = load_settings_or_exit(
        poll_interval_ms=interval,
        startup_notification=False if no_startup_notice else None,
    )
    setup_daemon_logging(level="DEBUG" if verbose else settings.log_level, log_file=log_file)

    daemon = MonitorDaemon(settings)
    raise typer.Exit(daemon.run())


def _probe_rows(settings):
    """Fetch the inventory and probe it once. Returns (descriptor, result) pairs."""
    from ..monitor_daemon import MonitorDaemon

    daemon = MonitorDaemon(settings)
    try:
        descriptors = daemon.source.fetch_inventory()
        results = daemon.probe_all([d for d in descriptors if d.probeable])
    finally:
        daemon.close()
    return [(d, results.get(d.name)) for d in descriptors]


def _agent_id(result) -> Optional[str]:
    from ..monitor_core import ProbeBusy, ProbeIdle

    if isinstance(result, ProbeBusy):
        return result.active_agent_session_id
    if isinstance(result, ProbeIdle):
        return result.last_agent_session_id
    return None


def _link(settings, descriptor, agent_id: Optional[str]) -> str:
    from ..links import build_link

    if descriptor.status_endpoint_port is None:
        return ""
    host = settings.link_host or descriptor.status_endpoint_host
    return build_link(host, descriptor.status_endpoint_port, descriptor.working_directory_path, agent_id)


@app.command()
def check(
    as_json: Annotated[
        bool, typer.Option("--json", help="Print results as JSON")
    ] = False,
):
    """Probe every session once and show what the monitor would see.

    Sends no notifications and keeps no state.
    """
    from ..logging_config import setup_cli_logging
    from ..status_constants import PROBE_SKIPPED, get_phase_color, get_phase_emoji

    settings = load_settings_or_exit()
    setup_cli_logging()

    rows = _probe_rows(settings)

    if as_json:
        payload = []
        for descriptor, result in rows:
            agent_id = _agent_id(result)
            payload.append({
                "name": descriptor.name,
                "port": descriptor.status_endpoint_port,
                "worktree": descriptor.working_directory_path,
                "tmux_exists": descriptor.is_host_process_active,
                "probe": result.kind if result is not None else PROBE_SKIPPED,
                "agent_session_id": agent_id,
                "reason": getattr(result, "reason", None),
                "link": _link(settings, descriptor, agent_id) or None,
            })
        print(json.dumps(payload, indent=2))
        return

    if not rows:
        rprint("[dim]No sessions in inventory[/dim]")
        rprint(f"[dim]Command: {' '.join(settings.inventory_command)}[/dim]")
        return

    table = Table(title="Dev sessions", show_lines=False)
    table.add_column("Session", style="bold")
    table.add_column("Port", justify="right")
    table.add_column("Probe")
    table.add_column("Agent session")
    table.add_column("Link", overflow="fold")

    for descriptor, result in rows:
        kind = result.kind if result is not None else PROBE_SKIPPED
        color = get_phase_color(kind)
        agent_id = _agent_id(result)
        probe_text = f"{get_phase_emoji(kind)} [{color}]{kind}[/{color}]"
        if result is not None and getattr(result, "reason", ""):
            probe_text += f" [dim]({result.reason})[/dim]"
        table.add_row(
            descriptor.name,
            str(descriptor.status_endpoint_port or "-"),
            probe_text,
            agent_id or "[dim]-[/dim]",
            _link(settings, descriptor, agent_id) or "[dim]-[/dim]",
        )

    console.print(table)


@app.command()
def link(
    name: Annotated[str, typer.Argument(help="Dev session name")],
    probe: Annotated[
        bool, typer.Option("--probe/--no-probe", help="Ask the agent server which conversation to link to")
    ] = True,
):
    """Print the opencode web link for a dev session."""
    from ..logging_config import setup_cli_logging
    from ..monitor_core import ProbeUnreachable

    settings = load_settings_or_exit()
    setup_cli_logging()

    if probe:
        rows = _probe_rows(settings)
    else:
        from ..inventory import CommandInventorySource

        source = CommandInventorySource(
            command=settings.inventory_command,
            host=settings.opencode_host,
            timeout=settings.inventory_timeout_seconds,
        )
        rows = [(d, None) for d in source.fetch_inventory()]

    for descriptor, result in rows:
        if descriptor.name != name:
            continue
        if descriptor.status_endpoint_port is None:
            rprint(f"[red]✗[/red] Session '[bold]{name}[/bold]' has no agent port")
            raise typer.Exit(1)
        if isinstance(result, ProbeUnreachable):
            rprint(f"[yellow]Agent server unreachable ({result.reason}); linking to session list[/yellow]")
        print(_link(settings, descriptor, _agent_id(result)))
        return

    rprint(f"[red]✗[/red] Session '[bold]{name}[/bold]' not found")
    raise typer.Exit(1)


@app.command("notify-test")
def notify_test(
    message: Annotated[
        str, typer.Option("--message", "-m", help="Message body")
    ] = "Test notification from devwatch",
):
    """Send one test notification to the configured ntfy topic."""
    from ..logging_config import setup_cli_logging
    from ..notifier import NtfyNotifier

    settings = load_settings_or_exit()
    setup_cli_logging()

    notifier = NtfyNotifier(
        settings.ntfy_server, settings.ntfy_topic, timeout=settings.notify_timeout_seconds
    )
    if notifier.notify("devwatch test", message, ["test_tube"], settings.dashboard_url):
        rprint(f"[green]✓[/green] Sent to [bold]{settings.relay_url}[/bold]")
    else:
        rprint(f"[red]✗[/red] Failed to send to {settings.relay_url}")
        raise typer.Exit(1)


@app.command()
def version():
    """Show the devwatch version."""
    from .. import __version__

    print(f"devwatch {__version__}")
