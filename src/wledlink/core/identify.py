from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import urlsplit

import httpx

from wledlink.errors import InvalidAddress, NoIdentity, Unreachable
from wledlink.models import Device, DeviceInfo, normalize_mac
from wledlink.storage import DeviceRegistry

logger = logging.getLogger(__name__)

INFO_PATH = "/json/info"
DEFAULT_TIMEOUT = 5.0


def _split_address(raw: str) -> tuple[str, str]:
    cleaned = raw.strip()
    if not cleaned:
        raise InvalidAddress(raw, "address is empty")

    lowered = cleaned.lower()
    if lowered.startswith(("http://", "https://")):
        with_scheme = cleaned
    elif "://" in cleaned:
        raise InvalidAddress(raw, "only http and https are supported")
    else:
        with_scheme = f"http://{cleaned}"

    try:
        parts = urlsplit(with_scheme)
        host = parts.hostname
        port = parts.port
    except ValueError as exc:
        raise InvalidAddress(raw, str(exc)) from exc

    if not host or any(ch.isspace() for ch in host):
        raise InvalidAddress(raw)

    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None else f"{host}:{port}"
    return parts.scheme, netloc


def normalize_address(raw: str) -> str:
    """Reduce user input like ``http://10.0.0.5/`` to ``10.0.0.5``.

    Raises InvalidAddress when no usable host remains.
    """
    return _split_address(raw)[1]


class IdentityResolutionService:
    """Identify devices by address and keep the registry in step."""

    def __init__(
        self,
        registry: DeviceRegistry,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._transport = transport

    async def fetch_info(self, raw_address: str) -> tuple[str, DeviceInfo]:
        scheme, address = _split_address(raw_address)
        url = f"{scheme}://{address}{INFO_PATH}"
        logger.debug("Requesting %s", url)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Cache-Control": "no-cache"},
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                info = DeviceInfo.model_validate(response.json())
        except httpx.HTTPError as exc:
            raise Unreachable(address, exc) from exc
        except ValueError as exc:
            # JSON decode errors and pydantic validation errors
            raise Unreachable(address, exc) from exc

        return address, info

    async def resolve(self, raw_address: str) -> tuple[str, Device]:
        """Identify the device at ``raw_address`` and upsert its record."""
        logger.debug("Trying to create or update device at %s", raw_address)
        address, info = await self.fetch_info(raw_address)

        identity = info.identity
        if not identity:
            logger.error("Could not retrieve MAC address for device at %s", address)
            raise NoIdentity(address)

        async with self._registry.identity_lock(identity):
            existing = await self._registry.find(identity)
            now = datetime.now(timezone.utc)

            if existing is None:
                logger.info("New device %s at %s", identity, address)
                device = await self._registry.upsert(
                    Device(
                        identity=identity,
                        address=address,
                        original_name=info.name,
                        hidden=False,
                        last_seen_at=now,
                    )
                )
            elif existing.address == address and existing.original_name == info.name:
                logger.debug("Device %s is unchanged", identity)
                device = existing
            else:
                logger.info("Updating device %s (now at %s)", identity, address)
                device = await self._registry.upsert(
                    existing.model_copy(
                        update={
                            "address": address,
                            "original_name": info.name,
                            "last_seen_at": now,
                        }
                    )
                )

        return identity, device

    async def fast_path_update(self, identity: str | None, address: str) -> bool:
        """Update the address of a known device without contacting it.

        Returns False when no record matches ``identity`` or ``address`` is
        not usable; the caller should fall back to ``resolve``.
        """
        identity = normalize_mac(identity)
        if not identity:
            return False
        try:
            address = normalize_address(address)
        except InvalidAddress as exc:
            logger.debug("Fast update skipped for %s: %s", identity, exc)
            return False

        def _apply(existing: Device) -> Device | None:
            if existing.address == address:
                logger.debug("Fast update: address unchanged for %s", identity)
                return None
            logger.info(
                "Fast update: %s moved from %s to %s",
                existing.display_name,
                existing.address,
                address,
            )
            return existing.model_copy(update={"address": address})

        return await self._registry.modify(identity, _apply) is not None
