"""Exception hierarchy for device connectivity."""

from __future__ import annotations


class WledLinkError(Exception):
    """Base class for all wledlink errors."""


class IdentificationError(WledLinkError):
    """A device could not be identified from its address."""


class InvalidAddress(IdentificationError):
    def __init__(self, address: str, reason: str = "not a valid host") -> None:
        super().__init__(f"Invalid address {address!r}: {reason}")
        self.address = address


class NoIdentity(IdentificationError):
    def __init__(self, address: str) -> None:
        super().__init__(f"Device at {address} did not report a MAC address")
        self.address = address


class Unreachable(IdentificationError):
    def __init__(self, address: str, cause: Exception | None = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Could not reach device at {address}{detail}")
        self.address = address


class DecodeFailure(WledLinkError):
    """An inbound websocket frame was not a valid status payload."""


class TransportFailure(WledLinkError):
    """The websocket transport failed; the session will reconnect."""


class PersistenceFailure(WledLinkError):
    """The device file could not be written."""
