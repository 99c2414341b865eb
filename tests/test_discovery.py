from __future__ import annotations

import asyncio

from wledlink.core import DiscoveryBroadcastListener, ListenerState
from wledlink.core.discovery import (
    first_reachable,
    format_address,
    identity_hint,
    order_candidates,
)


async def _listening_port() -> tuple[asyncio.Server, int]:
    async def _accept(reader, writer):
        writer.close()

    server = await asyncio.start_server(_accept, "127.0.0.1", 0)
    return server, server.sockets[0].getsockname()[1]


async def _closed_port() -> int:
    server, port = await _listening_port()
    server.close()
    await server.wait_closed()
    return port


def test_identity_hint():
    assert identity_hint({b"mac": b"AA:BB:CC:DD:EE:FF"}) == "aabbccddeeff"
    assert identity_hint({b"mac": b""}) is None
    assert identity_hint({b"mac": None}) is None
    assert identity_hint({}) is None


def test_order_candidates_prefers_ipv4():
    addresses = ["fe80::1", "192.168.1.20", "fe80::1", "10.0.0.5"]
    assert order_candidates(addresses) == ["192.168.1.20", "10.0.0.5", "fe80::1"]


def test_format_address():
    assert format_address("192.168.1.20", 80) == "192.168.1.20"
    assert format_address("192.168.1.20", 8080) == "192.168.1.20:8080"
    assert format_address("fe80::1%eth0", 80) == "[fe80::1]"


def test_first_reachable():
    async def _run():
        server, port = await _listening_port()
        try:
            found = await first_reachable(["127.0.0.1"], port, timeout=1.0)
        finally:
            server.close()
            await server.wait_closed()
        missing = await first_reachable(["127.0.0.1"], await _closed_port(), 1.0)
        empty = await first_reachable([], port, 1.0)
        return found, missing, empty

    assert asyncio.run(_run()) == ("127.0.0.1", None, None)


def test_handle_service_reports_reachable_sighting():
    sightings: list[tuple[str, str | None]] = []

    async def _run():
        async def _on_sighting(address, hint):
            sightings.append((address, hint))

        listener = DiscoveryBroadcastListener(_on_sighting, probe_timeout=1.0)
        server, port = await _listening_port()
        try:
            await listener.handle_service(
                "desk._wled._tcp.local.",
                ["127.0.0.1"],
                port,
                {b"mac": b"aabbccddeeff"},
            )
        finally:
            server.close()
            await server.wait_closed()
        await listener.handle_service(
            "gone._wled._tcp.local.", ["127.0.0.1"], await _closed_port(), {}
        )
        return port

    port = asyncio.run(_run())
    assert sightings == [(f"127.0.0.1:{port}", "aabbccddeeff")]


def test_listener_starts_idle_and_sync_callbacks_work():
    sightings: list[tuple[str, str | None]] = []

    async def _run():
        listener = DiscoveryBroadcastListener(
            lambda address, hint: sightings.append((address, hint)), probe_timeout=1.0
        )
        state = listener.state
        server, port = await _listening_port()
        try:
            await listener.handle_service("x", ["127.0.0.1"], port, {})
        finally:
            server.close()
            await server.wait_closed()
        return state

    assert asyncio.run(_run()) is ListenerState.IDLE
    assert len(sightings) == 1
    assert sightings[0][1] is None
