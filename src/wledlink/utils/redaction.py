from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Redactor:
    """Masks addresses in CLI output so it can be pasted into bug reports."""

    enabled: bool = True
    _mac_map: dict[str, int] = field(default_factory=dict)
    _mac_counter: int = 0

    def redact_address(self, address: str) -> str:
        if not self.enabled:
            return address
        host, sep, port = address.rpartition(":")
        if not sep or not port.isdigit():
            host, port = address, ""
        parts = host.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            masked = f"x.x.x.{parts[3]}"
            return f"{masked}:{port}" if port else masked
        return address

    def redact_mac(self, mac: str | None) -> str:
        if not mac:
            return ""
        if not self.enabled:
            return mac
        compact = mac.replace(":", "").lower()
        if len(compact) != 12:
            return mac
        counter = self._mac_map.get(compact)
        if counter is None:
            self._mac_counter += 1
            counter = self._mac_counter
            self._mac_map[compact] = counter
        return f"{compact[:6]}xxxx{counter:02d}"
