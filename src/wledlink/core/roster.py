from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from wledlink.config import SessionConfig
from wledlink.core.session import Connector, DeviceSession
from wledlink.models import Device, LiveState, StateChange
from wledlink.storage import DeviceRegistry

logger = logging.getLogger(__name__)

StatesListener = Callable[[list[LiveState]], Any]


@dataclass
class SessionEntry:
    session: DeviceSession
    last_known_address: str


class SessionRoster:
    """Owns one session per known device and keeps the set in step with
    the registry.

    ``reconcile`` must not run concurrently with itself; it is driven from
    the registry's change stream, which delivers snapshots one at a time.
    """

    def __init__(
        self,
        registry: DeviceRegistry | None = None,
        *,
        config: SessionConfig | None = None,
        connector: Connector | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or SessionConfig()
        self._connector = connector
        self._entries: dict[str, SessionEntry] = {}
        self._listeners: list[StatesListener] = []
        self._paused = False
        self.states: list[LiveState] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    @property
    def paused(self) -> bool:
        return self._paused

    def identities(self) -> set[str]:
        return set(self._entries)

    def session(self, identity: str) -> DeviceSession | None:
        entry = self._entries.get(identity)
        return entry.session if entry else None

    def entry(self, identity: str) -> SessionEntry | None:
        return self._entries.get(identity)

    async def reconcile(self, devices: Iterable[Device]) -> None:
        wanted = {device.identity: device for device in devices}

        for identity in set(self._entries) - set(wanted):
            logger.info("Device removed: %s, stopping its session", identity)
            entry = self._entries.pop(identity)
            await entry.session.stop()

        for identity, device in wanted.items():
            entry = self._entries.get(identity)
            if entry is None:
                logger.info("Device added: %s, creating session", identity)
                self._add(device)
            elif entry.last_known_address != device.address:
                logger.info(
                    "Address changed for %s (%s -> %s), recreating session",
                    identity,
                    entry.last_known_address,
                    device.address,
                )
                # the old socket must be gone before the new one opens
                await entry.session.stop()
                self._add(device)
            else:
                entry.session.refresh_device(device)

        self.publish()

    async def pause_all(self) -> None:
        logger.info("Pausing %d session(s)", len(self._entries))
        self._paused = True
        for entry in list(self._entries.values()):
            await entry.session.stop()

    def resume_all(self) -> None:
        logger.info("Resuming %d session(s)", len(self._entries))
        self._paused = False
        for entry in self._entries.values():
            entry.session.start()

    def refresh_offline(self) -> None:
        """Kick every session that is not currently online."""
        if self._paused:
            return
        for entry in self._entries.values():
            if not entry.session.live_state.is_online:
                entry.session.start()

    async def close(self) -> None:
        for entry in list(self._entries.values()):
            await entry.session.stop()
        self._entries.clear()
        self.publish()

    async def send(self, identity: str, command: StateChange) -> bool:
        session = self.session(identity)
        if session is None:
            logger.warning("No session for %s", identity)
            return False
        return await session.send(command)

    async def set_power(self, identity: str, on: bool) -> bool:
        return await self.send(identity, StateChange(on=on))

    async def set_brightness(self, identity: str, brightness: int) -> bool:
        return await self.send(identity, StateChange(brightness=brightness))

    def subscribe(self, listener: StatesListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self) -> None:
        self.states = [entry.session.live_state for entry in self._entries.values()]
        for listener in list(self._listeners):
            try:
                listener(self.states)
            except Exception:
                logger.exception("Roster listener failed")

    def visible_states(self, show_hidden: bool = False) -> list[LiveState]:
        """Live states for display: online devices first, then by name."""
        states = [
            state for state in self.states if show_hidden or not state.device.hidden
        ]
        return sorted(
            states,
            key=lambda state: (not state.is_online, state.device.display_name.lower()),
        )

    def _add(self, device: Device) -> None:
        session = DeviceSession(
            device,
            self._registry,
            config=self._config,
            on_change=self._on_session_change,
            connector=self._connector,
        )
        self._entries[device.identity] = SessionEntry(session, device.address)
        if not self._paused:
            session.start()

    def _on_session_change(self, session: DeviceSession) -> None:
        entry = self._entries.get(session.identity)
        if entry is None or entry.session is not session:
            return
        self.publish()
