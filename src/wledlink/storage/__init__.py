from __future__ import annotations

from .database import Database
from .registry import DeviceRegistry

__all__ = ["Database", "DeviceRegistry"]
