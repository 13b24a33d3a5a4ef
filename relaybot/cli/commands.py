"""CLI commands for relaybot."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from relaybot import __logo__, __version__

app = typer.Typer(
    name="relaybot",
    help=f"{__logo__} relaybot - chat command dispatcher",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} relaybot v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
) -> None:
    """relaybot - chat command dispatcher."""
    _configure_logging(verbose)


# ============================================================================
# Config
# ============================================================================


@app.command()
def onboard(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file to write"),
) -> None:
    """Write the default relaybot configuration."""
    from relaybot.config.loader import get_config_path, save_config
    from relaybot.config.schema import Config

    path = config_path or get_config_path()
    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), path)
    console.print(f"[green]✓[/green] Created config at {path}")
    console.print(f"\n{__logo__} relaybot is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Set [cyan]bot.ownerNumber[/cyan] in [cyan]{path}[/cyan]")
    console.print('  2. List plugin modules under [cyan]bot.plugins[/cyan] (e.g. "my_bot.commands:plugin")')
    console.print("  3. Try it: [cyan]relaybot simulate events.json[/cyan]")


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file to read"),
) -> None:
    """Print the effective configuration as JSON."""
    from relaybot.config.loader import convert_to_camel, load_config

    config = load_config(config_path)
    console.print_json(json.dumps(convert_to_camel(config.model_dump()), ensure_ascii=False))


# ============================================================================
# Commands
# ============================================================================


@app.command("commands")
def list_commands(
    category: str | None = typer.Option(None, "--category", help="Only show one category"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file to read"),
) -> None:
    """Load configured plugins and list their commands."""
    from relaybot.adapters.console_transport import ConsoleTransport
    from relaybot.app.bootstrap import build_runtime
    from relaybot.config.loader import load_config

    config = load_config(config_path)
    config.archive.enabled = False
    runtime = build_runtime(config, ConsoleTransport(console))
    try:
        commands = runtime.dispatcher.get_commands(category)
    finally:
        runtime.close()

    if not commands:
        console.print("[yellow]No commands registered.[/yellow]")
        return

    table = Table(title="Registered Commands")
    table.add_column("Command", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Usage", style="green")
    table.add_column("Scope")
    table.add_column("Cooldown", justify="right")
    table.add_column("Description")
    for cmd in commands:
        table.add_row(
            cmd.name,
            cmd.category,
            cmd.usage,
            _scope_label(cmd),
            f"{cmd.cooldown:g}s" if cmd.cooldown else "-",
            cmd.description,
        )
    console.print(table)
    if runtime.plugins.loaded:
        console.print(f"[dim]Plugins: {', '.join(runtime.plugins.loaded)}[/dim]")


def _scope_label(cmd: Any) -> str:
    flags = []
    if cmd.owner_only:
        flags.append("owner")
    if cmd.group_only:
        flags.append("group")
    if cmd.private_only:
        flags.append("private")
    return ", ".join(flags) or "everyone"


# ============================================================================
# Simulate
# ============================================================================


@app.command()
def simulate(
    events_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON event or list of events"),
    as_owner: bool = typer.Option(False, "--as-owner", help="Send every event as the configured owner"),
    show_metrics: bool = typer.Option(False, "--metrics", help="Print telemetry counters after the run"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file to read"),
) -> None:
    """Feed raw inbound events through a fully wired dispatcher."""
    from relaybot.adapters.console_transport import ConsoleTransport
    from relaybot.app.bootstrap import build_runtime
    from relaybot.config.loader import load_config
    from relaybot.utils.jid import display_jid

    try:
        payload = json.loads(events_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {events_file}:[/red] {e}")
        raise typer.Exit(1)
    events = payload if isinstance(payload, list) else [payload]

    config = load_config(config_path)
    owner = config.bot.owner_jid
    if as_owner:
        if not owner:
            console.print("[red]Error: bot.ownerNumber is not configured.[/red]")
            raise typer.Exit(1)
        events = [_as_identity(event, owner) for event in events]
        console.print(f"[dim]Sending as owner {display_jid(owner)}[/dim]")

    runtime = build_runtime(config, ConsoleTransport(console, show_presence=True))

    async def run() -> None:
        for event in events:
            await runtime.dispatcher.process(event)

    try:
        asyncio.run(run())
    finally:
        runtime.close()

    table = Table(title=f"{__logo__} Dispatch Stats")
    table.add_column("Counter", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for name, value in runtime.dispatcher.get_stats().items():
        table.add_row(name, str(value))
    console.print(table)

    faults = runtime.dispatcher.recent_faults
    if faults:
        console.print(f"[yellow]{len(faults)} fault(s):[/yellow]")
        for fault in faults:
            console.print(f"  [dim]{fault.kind}[/dim] {escape(fault.error)}", highlight=False)

    if show_metrics:
        metrics = Table(title="Telemetry")
        metrics.add_column("Metric", style="cyan")
        metrics.add_column("Count", justify="right", style="green")
        for name, value in runtime.telemetry.snapshot().items():
            metrics.add_row(name, str(value))
        console.print(metrics)


def _as_identity(event: Any, identity: str) -> Any:
    """Rewrite the author of one raw event to ``identity``."""
    if not isinstance(event, dict) or not isinstance(event.get("key"), dict):
        return event
    key = dict(event["key"])
    chat = str(key.get("remoteJid") or "")
    if chat.endswith("@g.us"):
        key["participant"] = identity
    else:
        key["remoteJid"] = identity
    return {**event, "key": key}
