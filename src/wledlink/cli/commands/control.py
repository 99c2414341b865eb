from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console

from wledlink.cli.helpers import (
    load_registry_or_exit,
    load_settings_or_exit,
    print_error,
)
from wledlink.config import SessionConfig
from wledlink.core import DeviceSession
from wledlink.models import ConnectionStatus, Device, StateChange

logger = logging.getLogger(__name__)


async def send_once(
    device: Device, command: StateChange, config: SessionConfig
) -> bool:
    """Open a session to ``device``, send ``command`` once and close it."""
    connected = asyncio.Event()

    def _on_change(session: DeviceSession) -> None:
        if session.status is ConnectionStatus.CONNECTED:
            connected.set()

    session = DeviceSession(device, config=config, on_change=_on_change)
    session.start()
    try:
        await asyncio.wait_for(connected.wait(), timeout=config.connect_timeout)
    except TimeoutError:
        logger.debug("Timed out connecting to %s", device.address)
        return False
    else:
        return await session.send(command)
    finally:
        await session.stop()


def _send(identity: str, command: StateChange) -> None:
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    console = Console()

    device = asyncio.run(registry.find(identity))
    if device is None:
        console.print(f"[yellow]![/yellow] Device '{identity}' not found")
        raise typer.Exit(1)

    if not asyncio.run(send_once(device, command, settings.session)):
        print_error(console, f"Could not reach '{device.display_name}'")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Sent {command.to_json()} to {device.display_name}")


def power(
    identity: str = typer.Argument(..., help="Device MAC address"),
    state: str = typer.Argument(..., help="on or off"),
) -> None:
    """Switch a device on or off."""
    if state.lower() not in ("on", "off"):
        raise typer.BadParameter("state must be 'on' or 'off'")
    _send(identity, StateChange(on=state.lower() == "on"))


def brightness(
    identity: str = typer.Argument(..., help="Device MAC address"),
    level: int = typer.Argument(..., min=0, max=255, help="Brightness 0-255"),
    transition: int | None = typer.Option(
        None, "--transition", help="Fade time in tenths of a second"
    ),
) -> None:
    """Set the brightness of a device."""
    _send(identity, StateChange(brightness=level, transition=transition))


def register(app: typer.Typer) -> None:
    app.command()(power)
    app.command()(brightness)
