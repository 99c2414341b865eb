from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console

from wledlink.config import (
    Settings,
    data_dir_from_settings,
    get_settings,
    resolve_config_path,
)
from wledlink.models import ConnectionStatus
from wledlink.storage import Database, DeviceRegistry

STATUS_STYLES = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.DISCONNECTED: "red",
}


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_database(settings: Settings, data_dir: Path | None = None) -> Database:
    path = data_dir or data_dir_from_settings(settings)
    return Database(path)


def load_registry_or_exit(settings: Settings) -> DeviceRegistry:
    try:
        return DeviceRegistry(build_database(settings))
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def format_status(status: ConnectionStatus) -> str:
    style = STATUS_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


def format_last_seen(value: datetime | None) -> str:
    if value is None:
        return "never"
    delta = datetime.now(timezone.utc) - value
    seconds = int(delta.total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60} min ago"
    if seconds < 86400:
        return f"{seconds // 3600} h ago"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def print_error(console: Console, message: str) -> None:
    console.print(f"[red]✗[/red] {message}")
