"""wledlink - keep live connections to the WLED controllers on your network."""

from __future__ import annotations

from importlib.metadata import version

from .config import DiscoveryConfig, SessionConfig, Settings, get_settings
from .models import ConnectionStatus, Device, LiveState, StateChange, UpdateChannel
from .storage import Database, DeviceRegistry

__all__ = [
    "ConnectionStatus",
    "Database",
    "Device",
    "DeviceRegistry",
    "DiscoveryConfig",
    "LiveState",
    "SessionConfig",
    "Settings",
    "StateChange",
    "UpdateChannel",
    "__version__",
    "get_settings",
]

__version__ = version("wledlink")
