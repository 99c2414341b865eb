from __future__ import annotations

import asyncio

import httpx
from conftest import FakeConnector, info_payload, make_device, wait_until

from wledlink.config import SessionConfig, Settings
from wledlink.core import DeviceManager, user_message
from wledlink.errors import InvalidAddress, NoIdentity, Unreachable
from wledlink.storage import DeviceRegistry

SETTINGS = Settings(session=SessionConfig(base_delay=0.01, max_delay=0.04))


def _manager(registry, requests, connector=None):
    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=info_payload(mac="112233445566"))

    return DeviceManager(
        registry,
        SETTINGS,
        connector=connector or FakeConnector(),
        transport=httpx.MockTransport(_handler),
    )


def test_user_message():
    assert user_message(InvalidAddress("x")) == "Please enter a valid address"
    expected = "Could not connect to the device. Verify the address"
    assert user_message(Unreachable("10.0.0.5")) == expected
    assert user_message(NoIdentity("10.0.0.5")) == expected


def test_known_sighting_takes_fast_path():
    registry = DeviceRegistry()
    requests: list[httpx.Request] = []

    async def _run():
        await registry.upsert(make_device("aabbccddeeff", "10.0.0.5"))
        manager = _manager(registry, requests)
        await manager.on_discovered("10.0.0.9", "aabbccddeeff")
        return await registry.find("aabbccddeeff")

    device = asyncio.run(_run())
    assert device.address == "10.0.0.9"
    assert requests == []


def test_unknown_sighting_is_identified():
    registry = DeviceRegistry()
    requests: list[httpx.Request] = []

    async def _run():
        manager = _manager(registry, requests)
        await manager.on_discovered("10.0.0.7", None)
        await manager.on_discovered("10.0.0.7", "ffeeddccbbaa")

    asyncio.run(_run())
    assert len(requests) == 2
    assert [d.identity for d in registry.snapshot()] == ["112233445566"]


def test_registry_changes_drive_the_roster():
    registry = DeviceRegistry()
    connector = FakeConnector()

    async def _run():
        async with _manager(registry, [], connector) as manager:
            await manager.add_device("10.0.0.7")
            await wait_until(lambda: "112233445566" in manager.roster)

            await registry.upsert(make_device("aabbccddeeff", "10.0.0.5"))
            await wait_until(lambda: len(manager.roster) == 2)

            await manager.delete_device("112233445566")
            await wait_until(lambda: manager.roster.identities() == {"aabbccddeeff"})

            browsed: list[bool] = []

            async def _no_browse() -> None:
                browsed.append(True)

            manager.discovery.start = _no_browse
            await manager.pause()
            paused = manager.roster.paused
            await manager.resume()
            resumed = manager.roster.paused
            await manager.stop_discovery()
        return paused, resumed, browsed, len(manager.roster)

    paused, resumed, browsed, remaining = asyncio.run(_run())
    assert paused is True
    assert resumed is False
    assert browsed == [True]
    assert remaining == 0
    assert connector.for_url("ws://10.0.0.7/ws")
