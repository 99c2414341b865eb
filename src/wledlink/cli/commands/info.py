from __future__ import annotations

import typer
from rich.console import Console

from wledlink.cli.helpers import (
    build_database,
    load_registry_or_exit,
    load_settings_or_exit,
    resolve_config_path_or_exit,
)
from wledlink.models import UpdateChannel


def register(app: typer.Typer) -> None:
    @app.command()
    def info() -> None:
        """Show wledlink data directory info and stats."""
        settings = load_settings_or_exit()
        db = build_database(settings)
        registry = load_registry_or_exit(settings)
        devices = registry.snapshot()

        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)

        console = Console()

        console.print("[bold]wledlink Info[/bold]\n")
        console.print(f"Data directory: {db.path}")
        console.print(f"Device registry: {db.devices_path}")
        console.print(f"Config file: {config_path if config_exists else 'defaults'}")

        console.print("\n[bold]Configuration[/bold]")
        console.print(f"Service type: {settings.discovery.service_type}")
        console.print(f"Browse timeout: {settings.discovery.browse_timeout}s")
        console.print(
            f"Reconnect delay: {settings.session.base_delay}s"
            f" up to {settings.session.max_delay}s"
        )

        console.print("\n[bold]Statistics[/bold]")
        console.print(f"Known devices: {len(devices)}")
        console.print(f"Hidden: {sum(1 for d in devices if d.hidden)}")
        beta = sum(1 for d in devices if d.update_channel is UpdateChannel.BETA)
        console.print(f"On beta firmware: {beta}")
