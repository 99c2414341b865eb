from __future__ import annotations

import asyncio
import logging

import httpx

from wledlink.config import Settings
from wledlink.core.discovery import DiscoveryBroadcastListener
from wledlink.core.identify import IdentityResolutionService
from wledlink.core.roster import SessionRoster
from wledlink.core.session import Connector
from wledlink.errors import IdentificationError, InvalidAddress
from wledlink.models import Device
from wledlink.storage import DeviceRegistry

logger = logging.getLogger(__name__)

INVALID_ADDRESS_MESSAGE = "Please enter a valid address"
CANT_CONNECT_MESSAGE = "Could not connect to the device. Verify the address"


def user_message(error: IdentificationError) -> str:
    if isinstance(error, InvalidAddress):
        return INVALID_ADDRESS_MESSAGE
    return CANT_CONNECT_MESSAGE


class DeviceManager:
    """Ties discovery, identification, the registry and the roster together.

    Discovery sightings and manual adds go through identification into the
    registry; every registry change is reconciled into the roster.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        settings: Settings | None = None,
        *,
        connector: Connector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or Settings()
        self.registry = registry
        self.identification = IdentityResolutionService(
            registry, timeout=settings.session.identify_timeout, transport=transport
        )
        self.roster = SessionRoster(
            registry, config=settings.session, connector=connector
        )
        self.discovery = DiscoveryBroadcastListener(
            self.on_discovered,
            service_type=settings.discovery.service_type,
            probe_timeout=settings.discovery.probe_timeout,
        )
        self._sync_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> DeviceManager:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def start(self) -> None:
        if self._sync_task is None or self._sync_task.done():
            self._sync_task = asyncio.create_task(self.run(), name="registry-sync")

    async def run(self) -> None:
        async for snapshot in self.registry.changes():
            await self.roster.reconcile(snapshot)

    async def close(self) -> None:
        task, self._sync_task = self._sync_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.discovery.stop()
        await self.roster.close()

    async def add_device(self, address: str) -> Device:
        """Identify the device at ``address`` and store it.

        Raises an IdentificationError; ``user_message`` turns it into text
        fit for the user.
        """
        _, device = await self.identification.resolve(address)
        return device

    async def on_discovered(self, address: str, identity_hint: str | None) -> None:
        if await self.identification.fast_path_update(identity_hint, address):
            return
        try:
            await self.identification.resolve(address)
        except IdentificationError as exc:
            logger.warning("Ignoring discovered device at %s: %s", address, exc)

    async def delete_device(self, identity: str) -> bool:
        logger.info("Deleting device %s", identity)
        return await self.registry.delete(identity)

    async def start_discovery(self) -> None:
        await self.discovery.start()

    async def stop_discovery(self) -> None:
        await self.discovery.stop()

    async def pause(self) -> None:
        await self.discovery.stop()
        await self.roster.pause_all()

    async def resume(self) -> None:
        self.roster.resume_all()
        await self.discovery.start()

    async def refresh(self) -> None:
        """Restart discovery and retry every offline device."""
        await self.discovery.stop()
        await self.discovery.start()
        self.roster.refresh_offline()
