from __future__ import annotations

import json
import logging
import tomllib
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from wledlink.errors import PersistenceFailure
from wledlink.models import Device

logger = logging.getLogger(__name__)

DEVICES_FILE = "devices.toml"


def _toml_value(value: object) -> str:
    return json.dumps(value)


def _render_devices_toml(devices: Iterable[Device]) -> str:
    lines = [
        "# wledlink device registry",
        "# One table per device, keyed by MAC address",
        "",
    ]

    for device in sorted(devices, key=lambda item: item.identity):
        lines.append(f"[devices.{_toml_value(device.identity)}]")
        fields = device.model_dump(mode="json", exclude={"identity"}, exclude_none=True)
        for key, value in fields.items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")

    return "\n".join(lines)


class Database:
    """Durable storage of device records in a TOML file."""

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._devices_path = data_dir / DEVICES_FILE

    @property
    def path(self) -> Path:
        return self._data_dir

    @property
    def devices_path(self) -> Path:
        return self._devices_path

    def ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)

    def load_devices(self) -> list[Device]:
        if not self._devices_path.exists():
            return []

        try:
            with self._devices_path.open("rb") as handle:
                data = tomllib.load(handle) or {}
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(
                f"Invalid TOML in devices file: {self._devices_path}\n{exc}"
            ) from exc

        devices: list[Device] = []
        for identity, fields in data.get("devices", {}).items():
            try:
                devices.append(Device.model_validate({**fields, "identity": identity}))
            except ValidationError as exc:
                raise ValueError(
                    f"Invalid device {identity!r} in {self._devices_path}\n{exc}"
                ) from exc
        return devices

    def save_devices(self, devices: Iterable[Device]) -> None:
        rendered = _render_devices_toml(devices)
        tmp_path = self._devices_path.with_suffix(".toml.tmp")
        try:
            self.ensure_dirs()
            tmp_path.write_text(rendered)
            tmp_path.replace(self._devices_path)
        except OSError as exc:
            raise PersistenceFailure(
                f"Could not write devices file {self._devices_path}: {exc}"
            ) from exc

    def init(self, force: bool = False) -> bool:
        """Create the data directory and an empty devices file.

        Returns True when a devices file was written.
        """
        self.ensure_dirs()
        if self._devices_path.exists() and not force:
            return False
        self.save_devices([])
        logger.debug("Initialized devices file at %s", self._devices_path)
        return True
