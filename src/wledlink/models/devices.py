from __future__ import annotations

import string
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

NEW_DEVICE_NAME = "(New Device)"
BETA_VERSION_MARKER = "-b"
DEFAULT_COLOR = 0x808080


def normalize_mac(value: str | None) -> str:
    """Return a MAC address as 12 lowercase hex digits, the way WLED reports it.

    Values that do not look like a MAC address are only stripped and lowercased.
    """
    if not value:
        return ""
    cleaned = value.strip().replace(":", "").replace("-", "").replace(".", "")
    if len(cleaned) == 12 and all(ch in string.hexdigits for ch in cleaned):
        return cleaned.lower()
    return value.strip().lower()


class UpdateChannel(str, Enum):
    STABLE = "stable"
    BETA = "beta"
    UNKNOWN = "unknown"

    @classmethod
    def from_version(cls, version: str | None) -> UpdateChannel:
        if version and BETA_VERSION_MARKER in version:
            return cls.BETA
        return cls.STABLE


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Device(BaseModel):
    """A known device, keyed by its hardware identity."""

    model_config = {"frozen": True, "extra": "forbid"}

    identity: str = Field(min_length=1)
    address: str = ""
    custom_name: str | None = None
    original_name: str | None = None
    update_channel: UpdateChannel = UpdateChannel.UNKNOWN
    hidden: bool = False
    last_seen_at: datetime | None = None

    @field_validator("identity")
    @classmethod
    def _normalize_identity(cls, value: str) -> str:
        normalized = normalize_mac(value)
        if not normalized:
            raise ValueError("identity must not be blank")
        return normalized

    @property
    def display_name(self) -> str:
        if self.custom_name:
            return self.custom_name
        if self.original_name:
            return self.original_name
        return NEW_DEVICE_NAME


class WifiInfo(BaseModel):
    model_config = {"extra": "ignore"}

    signal: int | None = None
    rssi: int | None = None


class DeviceInfo(BaseModel):
    """The ``info`` object of ``/json/info`` and of websocket status frames."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    name: str | None = None
    version: str | None = Field(default=None, alias="ver")
    platform: str | None = Field(default=None, alias="arch")
    release: str | None = None
    mac: str | None = None
    wifi: WifiInfo = Field(default_factory=WifiInfo)

    @property
    def identity(self) -> str:
        return normalize_mac(self.mac)


class Segment(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    on: bool | None = None
    brightness: int | None = Field(default=None, alias="bri")
    colors: list[list[int] | str] = Field(default_factory=list, alias="col")


class DeviceState(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    on: bool = False
    brightness: int = Field(default=0, alias="bri")
    segments: list[Segment] = Field(default_factory=list, alias="seg")


class StatusPayload(BaseModel):
    model_config = {"extra": "ignore", "frozen": True}

    info: DeviceInfo
    state: DeviceState


class StateChange(BaseModel):
    """Partial state update sent to a device.

    Only the fields that were set are serialized, so the device keeps
    everything else as it is.
    """

    model_config = {"populate_by_name": True}

    on: bool | None = None
    brightness: int | None = Field(default=None, alias="bri", ge=0, le=255)
    transition: int | None = Field(default=None, ge=0)
    preset: int | None = Field(default=None, alias="ps")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class LiveState(BaseModel):
    """What a session currently knows about its device."""

    model_config = {"frozen": True}

    device: Device
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    info: DeviceInfo | None = None
    state: DeviceState | None = None

    @property
    def identity(self) -> str:
        return self.device.identity

    @property
    def is_online(self) -> bool:
        return self.connection_status is ConnectionStatus.CONNECTED

    @property
    def color(self) -> int:
        """First color of the first segment as ``0xRRGGBB``."""
        if self.state is None or not self.state.segments:
            return DEFAULT_COLOR
        colors = self.state.segments[0].colors
        if not colors or not isinstance(colors[0], list) or len(colors[0]) < 3:
            return DEFAULT_COLOR
        red, green, blue = colors[0][:3]
        return (red << 16) | (green << 8) | blue
