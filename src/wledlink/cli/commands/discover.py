from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from wledlink.cli.helpers import load_registry_or_exit, load_settings_or_exit
from wledlink.config import Settings
from wledlink.core import DeviceManager, DiscoveryBroadcastListener, ListenerState
from wledlink.storage import DeviceRegistry
from wledlink.utils.redaction import Redactor

logger = logging.getLogger(__name__)

Sighting = tuple[str, str | None]


async def collect_sightings(
    registry: DeviceRegistry, settings: Settings, timeout: float, save: bool
) -> tuple[list[Sighting], ListenerState]:
    """Browse for ``timeout`` seconds and return every sighting.

    With ``save`` each sighting is also fed through identification, exactly as
    a running manager would handle it.
    """
    sightings: list[Sighting] = []
    manager = DeviceManager(registry, settings)

    async def _on_sighting(address: str, hint: str | None) -> None:
        sightings.append((address, hint))
        if save:
            await manager.on_discovered(address, hint)

    listener = DiscoveryBroadcastListener(
        _on_sighting,
        service_type=settings.discovery.service_type,
        probe_timeout=settings.discovery.probe_timeout,
    )
    try:
        await listener.browse(timeout)
    finally:
        await manager.close()
    return sightings, listener.state


def discover(
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to browse (config default if omitted)"
    ),
    save: bool = typer.Option(False, help="Identify and store discovered devices"),
    redact: bool = typer.Option(
        False,
        "--redact",
        help="Redact sensitive values in output",
    ),
) -> None:
    """Discover WLED devices via mDNS."""
    console = Console()

    settings = load_settings_or_exit()
    registry = load_registry_or_exit(settings)
    timeout = timeout or settings.discovery.browse_timeout

    console.print("Discovering WLED devices via mDNS...")
    logger.info(
        "mDNS discovery settings: timeout=%.2fs, service=%s",
        timeout,
        settings.discovery.service_type,
    )
    sightings, state = asyncio.run(collect_sightings(registry, settings, timeout, save))

    if state is ListenerState.FAILED:
        console.print("[red]✗[/red] Discovery failed; check the network interface")
        raise typer.Exit(1)

    if not sightings:
        console.print("No WLED devices found.")
        return

    known = {device.identity: device for device in registry.snapshot()}
    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("Address", style="cyan")
    table.add_column("MAC Address")
    table.add_column("Known As", style="yellow")

    for address, hint in sightings:
        device = known.get(hint) if hint else None
        table.add_row(
            redactor.redact_address(address),
            redactor.redact_mac(hint),
            device.display_name if device else "",
        )

    console.print(table)
    console.print(f"\n[green]Found {len(sightings)} device(s)[/green]")

    if save:
        console.print(f"[green]✓[/green] Registry now holds {len(registry)} device(s)")


def register(app: typer.Typer) -> None:
    app.command()(discover)
