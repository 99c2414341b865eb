"""Long-lived websocket session with one device.

A session runs a single task that connects to ``ws://{address}/ws``,
reads status frames until the socket closes, then waits out a capped
exponential backoff before connecting again. ``stop()`` cancels that task,
so a stopped session neither reconnects nor publishes anything further.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from wledlink.config import SessionConfig
from wledlink.core.identify import normalize_address
from wledlink.errors import DecodeFailure, InvalidAddress, TransportFailure
from wledlink.models import (
    ConnectionStatus,
    Device,
    DeviceInfo,
    LiveState,
    StateChange,
    StatusPayload,
    UpdateChannel,
)
from wledlink.storage import DeviceRegistry

logger = logging.getLogger(__name__)

WEBSOCKET_PATH = "/ws"
BASE_DELAY = 2.5
MAX_DELAY = 60.0
_MAX_EXPONENT = 32


class WebSocketLike(Protocol):
    async def recv(self) -> str | bytes: ...

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[WebSocketLike]]


def reconnect_delay(
    retry_count: int, base_delay: float = BASE_DELAY, max_delay: float = MAX_DELAY
) -> float:
    exponent = min(max(retry_count, 0), _MAX_EXPONENT)
    return min(base_delay * 2**exponent, max_delay)


def decode_status(message: str | bytes) -> StatusPayload:
    try:
        return StatusPayload.model_validate_json(message)
    except ValidationError as exc:
        count = exc.error_count()
        raise DecodeFailure(f"Not a status payload: {count} error(s)") from exc


def websocket_url(address: str) -> str:
    return f"ws://{normalize_address(address)}{WEBSOCKET_PATH}"


class DeviceSession:
    def __init__(
        self,
        device: Device,
        registry: DeviceRegistry | None = None,
        *,
        config: SessionConfig | None = None,
        on_change: Callable[[DeviceSession], Any] | None = None,
        connector: Connector | None = None,
    ) -> None:
        self._device = device
        self._registry = registry
        self._config = config or SessionConfig()
        self._on_change = on_change
        self._connect = connector or self._open_websocket

        self._status = ConnectionStatus.DISCONNECTED
        self._live = LiveState(device=device)
        self._socket: WebSocketLike | None = None
        self._task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()
        # set whenever no connect attempt is in flight
        self._settled = asyncio.Event()
        self._settled.set()
        self._pending: set[asyncio.Task[None]] = set()
        self._manually_stopped = False
        self.retry_count = 0

    def __repr__(self) -> str:
        return f"<DeviceSession {self.identity} {self.address} {self._status.value}>"

    @property
    def identity(self) -> str:
        return self._device.identity

    @property
    def address(self) -> str:
        return self._device.address

    @property
    def device(self) -> Device:
        return self._device

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def live_state(self) -> LiveState:
        return self._live

    @property
    def manually_stopped(self) -> bool:
        return self._manually_stopped

    def start(self) -> None:
        if self._status is not ConnectionStatus.DISCONNECTED:
            logger.debug("Already %s to %s", self._status.value, self.address)
            return

        self._manually_stopped = False
        try:
            url = websocket_url(self.address)
        except InvalidAddress as exc:
            logger.error("Not connecting to %s: %s", self._device.display_name, exc)
            return

        self._set_status(ConnectionStatus.CONNECTING)
        if self._task is not None and not self._task.done():
            # waiting out a reconnect delay; connect now
            self._wakeup.set()
            return
        self._task = asyncio.create_task(
            self._run(url), name=f"session-{self.identity}"
        )

    async def stop(self) -> None:
        logger.debug("Stopping session with %s", self.address)
        self._manually_stopped = True
        self._set_status(ConnectionStatus.DISCONNECTED)

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release_socket()

        # registry writes from this session must not outlive it
        pending = list(self._pending)
        for contact in pending:
            contact.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    async def send(self, command: StateChange) -> bool:
        """Send ``command`` to the device.

        A disconnected session is started first and the command goes out
        once that connect attempt succeeds. Returns False when the attempt
        fails or times out, or when the send itself fails.
        """
        if self._status is not ConnectionStatus.CONNECTED:
            logger.info("Not connected to %s, reconnecting", self.address)
            self.start()
            if not await self._wait_settled():
                logger.warning("Connecting to %s timed out", self.address)
                return False

        socket = self._socket
        if socket is None or self._status is not ConnectionStatus.CONNECTED:
            logger.warning("Dropping command for %s: no open connection", self.address)
            return False

        payload = command.to_json()
        logger.debug("Sending %s to %s", payload, self.address)
        try:
            await socket.send(payload)
        except (WebSocketException, OSError) as exc:
            logger.warning("Failed to send to %s: %s", self.address, exc)
            await self._release_socket()
            return False
        return True

    def refresh_device(self, device: Device) -> None:
        """Swap in a newer registry record for the same device."""
        if device == self._device:
            return
        self._device = device
        self._live = self._live.model_copy(update={"device": device})
        self._publish()

    async def _open_websocket(self, url: str) -> WebSocketLike:
        return await connect(url, open_timeout=self._config.connect_timeout)

    async def _run(self, url: str) -> None:
        reconnecting = False
        while True:
            if reconnecting:
                self.retry_count += 1
            await self._connect_and_listen(url)
            if self._manually_stopped:
                return

            delay = reconnect_delay(
                self.retry_count, self._config.base_delay, self._config.max_delay
            )
            logger.info("Reconnecting to %s in %.1fs", self.address, delay)
            reconnecting = not await self._wait_for_wakeup(delay)

    async def _wait_settled(self) -> bool:
        try:
            await asyncio.wait_for(
                self._settled.wait(), timeout=self._config.connect_timeout
            )
        except TimeoutError:
            return False
        return True

    async def _wait_for_wakeup(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    async def _connect_and_listen(self, url: str) -> None:
        self._wakeup.clear()
        self._set_status(ConnectionStatus.CONNECTING)
        logger.info("Connecting to %s", url)
        try:
            self._socket = await self._open(url)
            self.retry_count = 0
            self._set_status(ConnectionStatus.CONNECTED)
            logger.info("Connected to %s", self.address)
            while True:
                self._handle_message(await self._receive())
        except TransportFailure as exc:
            if not self._manually_stopped:
                logger.warning("%s: %s", self._device.display_name, exc)
        finally:
            await self._release_socket()
            self._set_status(ConnectionStatus.DISCONNECTED)

    async def _open(self, url: str) -> WebSocketLike:
        try:
            return await self._connect(url)
        except (WebSocketException, OSError, TimeoutError) as exc:
            raise TransportFailure(f"Could not connect to {url}: {exc}") from exc

    async def _receive(self) -> str | bytes:
        socket = self._socket
        if socket is None:
            raise TransportFailure("Connection was released")
        try:
            return await socket.recv()
        except ConnectionClosed as exc:
            raise TransportFailure(f"Connection closed ({exc})") from exc
        except (WebSocketException, OSError) as exc:
            raise TransportFailure(f"Receive failed: {exc}") from exc

    async def _release_socket(self) -> None:
        socket, self._socket = self._socket, None
        if socket is None:
            return
        try:
            await socket.close()
        except (WebSocketException, OSError) as exc:
            logger.debug("Error closing socket to %s: %s", self.address, exc)

    def _handle_message(self, message: str | bytes) -> None:
        try:
            payload = decode_status(message)
        except DecodeFailure as exc:
            logger.warning("Ignoring message from %s: %s", self.address, exc)
            return

        self._live = self._live.model_copy(
            update={"info": payload.info, "state": payload.state}
        )
        self._publish()

        if self._registry is not None:
            task = asyncio.create_task(self._record_contact(payload.info))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _record_contact(self, info: DeviceInfo) -> None:
        if self._registry is None:
            return
        seen_at = datetime.now(timezone.utc)

        def _apply(existing: Device) -> Device:
            update: dict[str, Any] = {"last_seen_at": seen_at}
            if info.name is not None:
                update["original_name"] = info.name
            if existing.update_channel is UpdateChannel.UNKNOWN:
                update["update_channel"] = UpdateChannel.from_version(info.version)
            return existing.model_copy(update=update)

        await self._registry.modify(self.identity, _apply)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        if status is ConnectionStatus.CONNECTING:
            self._settled.clear()
        else:
            self._settled.set()
        self._live = self._live.model_copy(update={"connection_status": status})
        self._publish()

    def _publish(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self)
        except Exception:
            logger.exception("State listener failed for %s", self.address)
