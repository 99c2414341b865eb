from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from enum import Enum
from typing import Any

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from wledlink.config import WLED_SERVICE_TYPE
from wledlink.models import normalize_mac

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 80
INFO_TIMEOUT_MS = 3000

SightingCallback = Callable[[str, str | None], Awaitable[None] | None]


class ListenerState(str, Enum):
    IDLE = "idle"
    BROWSING = "browsing"
    READY = "ready"
    FAILED = "failed"


def _decode_txt_properties(properties: dict[bytes, bytes | None]) -> dict[str, str]:
    decoded: dict[str, str] = {}
    for key, value in properties.items():
        key_text = key.decode("utf-8", errors="replace")
        if value is None:
            value_text = ""
        elif isinstance(value, bytes):
            value_text = value.decode("utf-8", errors="replace")
        else:
            value_text = str(value)
        decoded[key_text] = value_text
    return decoded


def identity_hint(properties: dict[bytes, bytes | None]) -> str | None:
    """The MAC address a WLED device advertises in its ``mac`` TXT record."""
    mac = normalize_mac(_decode_txt_properties(properties).get("mac"))
    return mac or None


def order_candidates(addresses: Iterable[str]) -> list[str]:
    """IPv4 candidates first, keeping announcement order otherwise."""
    unique = list(dict.fromkeys(addresses))
    return [a for a in unique if ":" not in a] + [a for a in unique if ":" in a]


def format_address(host: str, port: int) -> str:
    if ":" in host:
        host = f"[{host.split('%', 1)[0]}]"
    return host if port == DEFAULT_HTTP_PORT else f"{host}:{port}"


async def _probe(host: str, port: int) -> str:
    _, writer = await asyncio.open_connection(host, port)
    writer.close()
    with suppress(OSError):
        await writer.wait_closed()
    return host


async def first_reachable(
    candidates: Iterable[str], port: int, timeout: float
) -> str | None:
    """Return the first candidate that accepts a TCP connection on ``port``.

    All candidates are probed at once; the earliest completed handshake wins.
    """
    pending = {
        asyncio.create_task(_probe(host, port), name=f"probe-{host}")
        for host in candidates
    }
    if not pending:
        return None

    try:
        async with asyncio.timeout(timeout):
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task.exception() is None:
                        return task.result()
                    logger.debug("Probe failed: %s", task.exception())
    except TimeoutError:
        logger.debug("Probes timed out after %.1fs", timeout)
    finally:
        for task in pending:
            task.cancel()
    return None


class DiscoveryBroadcastListener:
    """Browse zeroconf for WLED announcements and report each one once.

    For every newly announced service the callback receives the reachable
    address and the MAC address hint from the TXT record, if any. The
    listener does not retry on failure; call ``start()`` again.
    """

    def __init__(
        self,
        on_sighting: SightingCallback,
        service_type: str = WLED_SERVICE_TYPE,
        probe_timeout: float = 2.0,
    ) -> None:
        self._on_sighting = on_sighting
        self._service_type = service_type
        self._probe_timeout = probe_timeout
        self._state = ListenerState.IDLE
        self._zeroconf: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._seen: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ListenerState:
        return self._state

    async def start(self) -> None:
        if self._state in (ListenerState.BROWSING, ListenerState.READY):
            return

        self._seen.clear()
        self._state = ListenerState.BROWSING
        logger.info("Browsing for %s", self._service_type)
        try:
            self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)
            self._browser = AsyncServiceBrowser(
                self._zeroconf.zeroconf,
                [self._service_type],
                handlers=[self._on_service_state_change],
            )
        except OSError:
            logger.warning("Discovery failed to start", exc_info=True)
            await self._fail()
            return
        self._state = ListenerState.READY

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self._close()
        if self._state is not ListenerState.FAILED:
            self._state = ListenerState.IDLE

    async def browse(self, timeout: float) -> None:
        """Run one timed browsing window."""
        await self.start()
        try:
            await asyncio.sleep(timeout)
        finally:
            await self.stop()

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is not ServiceStateChange.Added or name in self._seen:
            return
        self._seen.add(name)
        task = asyncio.create_task(self._resolve_service(zeroconf, service_type, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve_service(
        self, zeroconf: Zeroconf, service_type: str, name: str
    ) -> None:
        info = AsyncServiceInfo(service_type, name)
        try:
            found = await info.async_request(zeroconf, INFO_TIMEOUT_MS)
        except OSError:
            logger.warning("Discovery transport failed", exc_info=True)
            await self._fail()
            return
        if not found:
            logger.debug("No service info for %s", name)
            return
        await self.handle_service(
            name, info.parsed_addresses(), info.port, info.properties
        )

    async def handle_service(
        self,
        name: str,
        addresses: Iterable[str],
        port: int | None,
        properties: dict[bytes, bytes | None],
    ) -> None:
        port = port or DEFAULT_HTTP_PORT
        hint = identity_hint(properties)
        host = await first_reachable(
            order_candidates(addresses), port, self._probe_timeout
        )
        if host is None:
            logger.debug("No reachable address for %s", name)
            return

        address = format_address(host, port)
        logger.info("Discovered %s at %s (mac=%s)", name, address, hint or "?")
        result: Any = self._on_sighting(address, hint)
        if asyncio.iscoroutine(result):
            await result

    async def _fail(self) -> None:
        self._state = ListenerState.FAILED
        await self._close()

    async def _close(self) -> None:
        browser, self._browser = self._browser, None
        zeroconf, self._zeroconf = self._zeroconf, None
        if browser is not None:
            await browser.async_cancel()
        if zeroconf is not None:
            await zeroconf.async_close()
