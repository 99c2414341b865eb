from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import pytest

from wledlink.config import get_settings
from wledlink.models import Device


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.delenv("WLEDLINK_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def info_payload(
    mac: str = "aabbccddeeff",
    name: str = "Desk Strip",
    version: str = "0.15.0",
) -> dict:
    return {
        "name": name,
        "ver": version,
        "arch": "esp32",
        "release": "ESP32",
        "mac": mac,
    }


def status_message(bri: int = 128, on: bool = True, **info: str) -> str:
    return json.dumps(
        {
            "info": info_payload(**info),
            "state": {"on": on, "bri": bri, "seg": [{"col": [[255, 0, 0]]}]},
        }
    )


def make_device(identity: str = "aabbccddeeff", address: str = "10.0.0.5") -> Device:
    return Device(identity=identity, address=address)


async def wait_until(
    predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01
) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(interval)


class FakeSocket:
    """Websocket double: ``feed`` queues frames, ``close`` ends ``recv``."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue[str | Exception] = asyncio.Queue()

    def feed(self, message: str) -> None:
        self._inbox.put_nowait(message)

    def drop(self) -> None:
        self._inbox.put_nowait(ConnectionResetError("peer went away"))

    async def recv(self) -> str:
        item = await self._inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket is closed")
        self.sent.append(message)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.drop()


class FakeConnector:
    """Hands out FakeSockets, or raises while ``failures`` remain."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.sockets: list[FakeSocket] = []
        self.calls: list[str] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.calls.append(url)
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError(f"refused: {url}")
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket

    def for_url(self, url: str) -> list[FakeSocket]:
        return [socket for socket in self.sockets if socket.url == url]
