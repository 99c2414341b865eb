from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from wledlink.cli.helpers import (
    format_last_seen,
    load_registry_or_exit,
    load_settings_or_exit,
    print_error,
)
from wledlink.core import IdentityResolutionService, user_message
from wledlink.errors import IdentificationError
from wledlink.models import Device
from wledlink.storage import DeviceRegistry

logger = logging.getLogger(__name__)


def list_devices(
    show_hidden: bool = typer.Option(
        False, "--all", "-a", help="Include hidden devices"
    ),
) -> None:
    """List known devices."""
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    console = Console()

    devices = [d for d in registry.snapshot() if show_hidden or not d.hidden]
    if not devices:
        console.print("No devices known yet.")
        console.print("Use 'wledlink discover' or 'wledlink add ADDRESS' to add some.")
        return

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("MAC Address")
    table.add_column("Channel")
    table.add_column("Last Seen")

    for device in sorted(devices, key=lambda d: d.display_name.lower()):
        name = device.display_name
        if device.hidden:
            name = f"{name} [dim](hidden)[/dim]"
        table.add_row(
            name,
            device.address,
            device.identity,
            device.update_channel.value,
            format_last_seen(device.last_seen_at),
        )

    console.print(table)


def add_device(
    address: str = typer.Argument(..., help="Device hostname or IP address"),
) -> None:
    """Identify the device at ADDRESS and add it to the registry."""
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    service = IdentityResolutionService(
        registry, timeout=settings.session.identify_timeout
    )
    console = Console()

    console.print(f"Contacting {address}...")
    try:
        identity, device = asyncio.run(service.resolve(address))
    except IdentificationError as exc:
        logger.debug("Adding %s failed: %s", address, exc)
        print_error(console, user_message(exc))
        raise typer.Exit(1) from None

    console.print(
        f"[green]✓[/green] Added '{device.display_name}' ({identity})"
        f" at {device.address}"
    )


async def _edit(
    registry: DeviceRegistry, identity: str, **changes: object
) -> Device | None:
    return await registry.modify(
        identity, lambda existing: existing.model_copy(update=changes)
    )


def rename_device(
    identity: str = typer.Argument(..., help="Device MAC address"),
    name: str = typer.Argument("", help="Custom name; empty to use the device's own"),
) -> None:
    """Set or clear the custom name of a device."""
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    console = Console()

    device = asyncio.run(_edit(registry, identity, custom_name=name or None))
    if device is None:
        console.print(f"[yellow]![/yellow] Device '{identity}' not found")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {device.identity} is now '{device.display_name}'")


def hide_device(
    identity: str = typer.Argument(..., help="Device MAC address"),
    unhide: bool = typer.Option(False, "--unhide", help="Show the device again"),
) -> None:
    """Hide a device from listings."""
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    console = Console()

    device = asyncio.run(_edit(registry, identity, hidden=not unhide))
    if device is None:
        console.print(f"[yellow]![/yellow] Device '{identity}' not found")
        raise typer.Exit(1)
    action = "Unhid" if unhide else "Hid"
    console.print(f"[green]✓[/green] {action} '{device.display_name}'")


def remove_device(
    identity: str = typer.Argument(..., help="Device MAC address"),
) -> None:
    """Forget a device."""
    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    console = Console()

    if asyncio.run(registry.delete(identity)):
        console.print(f"[green]✓[/green] Removed device '{identity}'")
    else:
        console.print(f"[yellow]![/yellow] Device '{identity}' not found")
        raise typer.Exit(1)


def register(app: typer.Typer) -> None:
    app.command("list")(list_devices)
    app.command("add")(add_device)
    app.command("rename")(rename_device)
    app.command("hide")(hide_device)
    app.command("remove")(remove_device)
