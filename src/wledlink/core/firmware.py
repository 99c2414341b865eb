"""Firmware asset naming for WLED releases."""

from __future__ import annotations

from collections.abc import Iterable

from wledlink.models import DeviceInfo

ASSET_PREFIX = "WLED_"
ASSET_SUFFIX = ".bin"

# Platforms served by the pre-0.15 naming scheme
SUPPORTED_PLATFORMS = frozenset({"esp01", "esp02", "esp32", "esp8266"})


def _asset_name(tag_name: str, variant: str) -> str:
    combined = f"{tag_name}_{variant}"
    if combined.lower().startswith("v"):
        combined = combined[1:]
    return f"{ASSET_PREFIX}{combined}{ASSET_SUFFIX}"


def asset_name_by_release(tag_name: str, release: str | None) -> str | None:
    """Asset name from the ``release`` field reported by WLED 0.15 and later."""
    if not tag_name or not release:
        return None
    return _asset_name(tag_name, release)


def asset_name_by_platform(tag_name: str, platform: str | None) -> str | None:
    """Asset name for older devices, derived from the chip platform."""
    if not tag_name or not platform:
        return None
    if platform.lower() not in SUPPORTED_PLATFORMS:
        return None
    return _asset_name(tag_name, platform.upper())


def determine_asset_name(tag_name: str, info: DeviceInfo | None) -> str | None:
    if info is None:
        return None
    return asset_name_by_release(tag_name, info.release) or asset_name_by_platform(
        tag_name, info.platform
    )


def find_asset(asset_name: str | None, available: Iterable[str]) -> str | None:
    if not asset_name:
        return None
    return next((name for name in available if name == asset_name), None)


def select_asset(
    tag_name: str, info: DeviceInfo | None, available: Iterable[str]
) -> str | None:
    """Pick the release asset for a device, preferring the release naming."""
    if info is None:
        return None
    names = list(available)
    for candidate in (
        asset_name_by_release(tag_name, info.release),
        asset_name_by_platform(tag_name, info.platform),
    ):
        found = find_asset(candidate, names)
        if found is not None:
            return found
    return None
