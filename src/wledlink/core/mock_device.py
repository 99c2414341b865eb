"""Fake WLED device for development and tests.

Serves ``GET /json/info`` and the ``/ws`` status socket on one port,
which is all the connectivity code talks to.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from wledlink.core.identify import INFO_PATH
from wledlink.core.session import WEBSOCKET_PATH

logger = logging.getLogger(__name__)


@dataclass
class MockWledDevice:
    name: str = "WLED Mock"
    mac: str = "aabbccddeeff"
    version: str = "0.15.0"
    platform: str = "esp32"
    release: str = "ESP32"
    host: str = "127.0.0.1"
    port: int = 8080

    on: bool = True
    brightness: int = 128
    color: list[int] = field(default_factory=lambda: [255, 160, 0])

    _server: Server | None = field(default=None, repr=False)
    _clients: set[ServerConnection] = field(default_factory=set, repr=False)
    received: list[dict[str, Any]] = field(default_factory=list, repr=False)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def info_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ver": self.version,
            "arch": self.platform,
            "release": self.release,
            "mac": self.mac,
            "wifi": {"signal": 90, "rssi": -55},
        }

    def state_payload(self) -> dict[str, Any]:
        return {
            "on": self.on,
            "bri": self.brightness,
            "seg": [{"on": self.on, "bri": 255, "col": [self.color, [0, 0, 0]]}],
        }

    def status_message(self) -> str:
        return json.dumps({"state": self.state_payload(), "info": self.info_payload()})

    async def start(self) -> None:
        self._server = await serve(
            self._handle_client,
            self.host,
            self.port,
            process_request=self._process_request,
        )
        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        logger.info("Mock device '%s' listening on %s", self.name, self.address)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Mock device '%s' stopped", self.name)

    async def run_forever(self) -> None:
        await self.start()
        if self._server:
            await self._server.serve_forever()

    async def drop_clients(self) -> None:
        """Close every open socket, as a rebooting device would."""
        for client in list(self._clients):
            await client.close()

    async def broadcast(self) -> None:
        message = self.status_message()
        for client in list(self._clients):
            try:
                await client.send(message)
            except ConnectionClosed:
                self._clients.discard(client)

    def _process_request(
        self, connection: ServerConnection, request: Request
    ) -> Response | None:
        path = request.path.split("?", 1)[0]
        if path == INFO_PATH:
            return connection.respond(HTTPStatus.OK, json.dumps(self.info_payload()))
        if path != WEBSOCKET_PATH:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    async def _handle_client(self, connection: ServerConnection) -> None:
        logger.info("Client connected: %s", connection.remote_address)
        self._clients.add(connection)
        try:
            await connection.send(self.status_message())
            async for message in connection:
                if self._apply(message):
                    await self.broadcast()
        except ConnectionClosed:
            logger.debug("Client disconnected: %s", connection.remote_address)
        finally:
            self._clients.discard(connection)

    def _apply(self, message: str | bytes) -> bool:
        try:
            change = json.loads(message)
        except ValueError:
            logger.warning("Ignoring malformed command: %r", message)
            return False
        if not isinstance(change, dict):
            return False

        self.received.append(change)
        if "on" in change:
            self.on = bool(change["on"])
        if "bri" in change:
            self.brightness = int(change["bri"])
        logger.info("State changed: on=%s bri=%d", self.on, self.brightness)
        return True


async def run_mock_device(
    name: str = "WLED Mock",
    port: int = 8080,
    mac: str = "aabbccddeeff",
    host: str = "0.0.0.0",
) -> None:
    device = MockWledDevice(name=name, mac=mac, host=host, port=port)
    await device.run_forever()
