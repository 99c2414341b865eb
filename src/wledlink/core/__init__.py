from __future__ import annotations

from .discovery import DiscoveryBroadcastListener, ListenerState
from .firmware import determine_asset_name, select_asset
from .identify import IdentityResolutionService, normalize_address
from .manager import DeviceManager, user_message
from .mock_device import MockWledDevice, run_mock_device
from .roster import SessionEntry, SessionRoster
from .session import DeviceSession, reconnect_delay

__all__ = [
    "DeviceManager",
    "DeviceSession",
    "DiscoveryBroadcastListener",
    "IdentityResolutionService",
    "ListenerState",
    "MockWledDevice",
    "SessionEntry",
    "SessionRoster",
    "determine_asset_name",
    "normalize_address",
    "reconnect_delay",
    "run_mock_device",
    "select_asset",
    "user_message",
]
