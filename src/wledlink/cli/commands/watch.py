from __future__ import annotations

import asyncio
from contextlib import suppress

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from wledlink.cli.helpers import (
    format_status,
    load_registry_or_exit,
    load_settings_or_exit,
)
from wledlink.config import Settings
from wledlink.core import DeviceManager, SessionRoster
from wledlink.models import LiveState
from wledlink.storage import DeviceRegistry


def render_states(states: list[LiveState]) -> Table:
    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Status")
    table.add_column("Power")
    table.add_column("Brightness", justify="right")
    table.add_column("Color")
    table.add_column("Version")

    for state in states:
        power = ""
        brightness = ""
        if state.state is not None:
            power = "on" if state.state.on else "off"
            brightness = str(state.state.brightness)
        color = f"#{state.color:06x}"
        table.add_row(
            state.device.display_name,
            state.device.address,
            format_status(state.connection_status),
            power,
            brightness,
            f"[{color}]■[/] {color}",
            state.info.version if state.info and state.info.version else "",
        )
    return table


async def watch_devices(
    registry: DeviceRegistry,
    settings: Settings,
    console: Console,
    duration: float | None = None,
    discover: bool = False,
    show_hidden: bool = False,
) -> None:
    async with DeviceManager(registry, settings) as manager:
        roster: SessionRoster = manager.roster
        if discover:
            await manager.start_discovery()

        with Live(render_states([]), console=console, refresh_per_second=4) as live:

            def _redraw(_: list[LiveState]) -> None:
                live.update(render_states(roster.visible_states(show_hidden)))

            unsubscribe = roster.subscribe(_redraw)
            try:
                if duration is None:
                    await asyncio.Event().wait()
                else:
                    await asyncio.sleep(duration)
            finally:
                unsubscribe()


def watch(
    duration: float | None = typer.Option(
        None, "--for", help="Stop after this many seconds"
    ),
    discover: bool = typer.Option(
        False, "--discover", help="Also browse for new devices while watching"
    ),
    show_hidden: bool = typer.Option(
        False, "--all", "-a", help="Include hidden devices"
    ),
) -> None:
    """Connect to every known device and show live status."""
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    console = Console()

    if not len(registry) and not discover:
        console.print("No devices known yet. Use --discover or 'wledlink add'.")
        return

    with suppress(KeyboardInterrupt):
        asyncio.run(
            watch_devices(registry, settings, console, duration, discover, show_hidden)
        )


def register(app: typer.Typer) -> None:
    app.command()(watch)
