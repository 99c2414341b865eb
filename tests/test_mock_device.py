"""End-to-end tests against the bundled mock device."""

from __future__ import annotations

import asyncio

import httpx
from conftest import wait_until

from wledlink.config import SessionConfig, Settings
from wledlink.core import DeviceManager, IdentityResolutionService, MockWledDevice
from wledlink.models import ConnectionStatus, UpdateChannel
from wledlink.storage import DeviceRegistry

SETTINGS = Settings(
    session=SessionConfig(
        identify_timeout=2.0, connect_timeout=2.0, base_delay=0.05, max_delay=0.2
    )
)


def _online(manager: DeviceManager, identity: str) -> bool:
    session = manager.roster.session(identity)
    return session is not None and session.status is ConnectionStatus.CONNECTED


def test_mock_serves_info_and_unknown_paths():
    async def _run():
        device = MockWledDevice(name="Porch", mac="A1B2C3D4E5F6", port=0)
        await device.start()
        try:
            async with httpx.AsyncClient(base_url=f"http://{device.address}") as client:
                info = await client.get("/json/info")
                missing = await client.get("/json/nothing")
        finally:
            await device.stop()
        return info, missing

    info, missing = asyncio.run(_run())
    assert info.status_code == 200
    assert info.json()["name"] == "Porch"
    assert missing.status_code == 404


def test_identify_mock_device():
    async def _run():
        device = MockWledDevice(mac="A1B2C3D4E5F6", port=0)
        await device.start()
        try:
            service = IdentityResolutionService(DeviceRegistry(), timeout=2.0)
            return await service.resolve(device.address), device.address
        finally:
            await device.stop()

    (identity, record), address = asyncio.run(_run())
    assert identity == "a1b2c3d4e5f6"
    assert record.address == address
    assert record.original_name == "WLED Mock"


def test_manager_tracks_and_controls_mock_device():
    async def _run():
        device = MockWledDevice(
            name="Desk", mac="a1b2c3d4e5f6", port=0, brightness=10
        )
        await device.start()
        registry = DeviceRegistry()
        try:
            async with DeviceManager(registry, SETTINGS) as manager:
                added = await manager.add_device(device.address)
                await wait_until(lambda: _online(manager, added.identity))
                await wait_until(
                    lambda: registry.snapshot()[0].update_channel
                    is not UpdateChannel.UNKNOWN
                )

                assert await manager.roster.set_brightness(added.identity, 200)
                await wait_until(lambda: device.brightness == 200)
                state = manager.roster.session(added.identity).live_state
                await wait_until(
                    lambda: manager.roster.session(added.identity)
                    .live_state.state.brightness
                    == 200
                )

                # a rebooting device drops the socket; the session comes back
                await device.drop_clients()
                await wait_until(lambda: device.client_count == 1)
                await wait_until(lambda: _online(manager, added.identity))

                await manager.delete_device(added.identity)
                await wait_until(lambda: added.identity not in manager.roster)
                await wait_until(lambda: device.client_count == 0)
        finally:
            await device.stop()
        return state, device.received, registry.snapshot()

    state, received, remaining = asyncio.run(_run())
    assert state.info is not None and state.info.name == "Desk"
    assert {"bri": 200} in received
    assert remaining == ()
