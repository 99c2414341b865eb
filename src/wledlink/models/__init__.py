"""Data models for wledlink."""

from wledlink.models.devices import (
    NEW_DEVICE_NAME,
    ConnectionStatus,
    Device,
    DeviceInfo,
    DeviceState,
    LiveState,
    Segment,
    StateChange,
    StatusPayload,
    UpdateChannel,
    normalize_mac,
)

__all__ = [
    "NEW_DEVICE_NAME",
    "ConnectionStatus",
    "Device",
    "DeviceInfo",
    "DeviceState",
    "LiveState",
    "Segment",
    "StateChange",
    "StatusPayload",
    "UpdateChannel",
    "normalize_mac",
]
