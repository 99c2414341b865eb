"""In-memory device registry with durable backing and change notification.

All mutations commit through a single lock: the record is updated in
memory first, then written to the devices file, then every subscriber is
handed the new snapshot. A failed write is logged and the in-memory state
is kept.

Writers that read a record and then write it back (identification, status
updates from sessions) hold ``identity_lock(identity)`` around the pair so
that two writers for the same device cannot lose each other's update.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import suppress

from wledlink.errors import PersistenceFailure
from wledlink.models import Device, normalize_mac
from wledlink.storage.database import Database

logger = logging.getLogger(__name__)

Snapshot = tuple[Device, ...]


class DeviceRegistry:
    def __init__(self, database: Database | None = None) -> None:
        self._database = database
        self._devices: dict[str, Device] = {}
        self._commit_lock = asyncio.Lock()
        self._identity_locks: dict[str, asyncio.Lock] = {}
        self._subscribers: list[asyncio.Queue[Snapshot]] = []

        if database is not None:
            for device in database.load_devices():
                self._devices[device.identity] = device

    def __len__(self) -> int:
        return len(self._devices)

    def snapshot(self) -> Snapshot:
        return tuple(sorted(self._devices.values(), key=lambda item: item.identity))

    def identity_lock(self, identity: str) -> asyncio.Lock:
        key = normalize_mac(identity)
        lock = self._identity_locks.get(key)
        if lock is None:
            lock = self._identity_locks[key] = asyncio.Lock()
        return lock

    async def find(self, identity: str) -> Device | None:
        return self._devices.get(normalize_mac(identity))

    async def upsert(self, device: Device) -> Device:
        """Create ``device`` or merge it into the existing record.

        Only fields that were explicitly set on ``device`` overwrite the
        stored record; the last writer wins per field.
        """
        async with self._commit_lock:
            existing = self._devices.get(device.identity)
            if existing is None:
                merged = device
            else:
                changes = {
                    name: getattr(device, name)
                    for name in device.model_fields_set
                    if name != "identity"
                }
                merged = existing.model_copy(update=changes)
                if merged == existing:
                    return existing

            self._devices[merged.identity] = merged
            await self._commit()
            return merged

    async def modify(
        self, identity: str, mutate: Callable[[Device], Device | None]
    ) -> Device | None:
        """Read-modify-write a record under its identity lock.

        ``mutate`` returns the replacement record, or None to leave the
        record untouched. Returns the stored record, or None if unknown.
        """
        async with self.identity_lock(identity):
            existing = await self.find(identity)
            if existing is None:
                return None
            replacement = mutate(existing)
            if replacement is None or replacement == existing:
                return existing
            return await self.upsert(replacement)

    async def delete(self, identity: str) -> bool:
        key = normalize_mac(identity)
        async with self._commit_lock:
            if self._devices.pop(key, None) is None:
                return False
            await self._commit()
        lock = self._identity_locks.get(key)
        if lock is not None and not lock.locked():
            del self._identity_locks[key]
        return True

    async def changes(self) -> AsyncIterator[Snapshot]:
        """Yield the current snapshot, then a new one after every commit.

        A slow consumer only ever sees the most recent snapshot; older
        pending ones are dropped.
        """
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        queue.put_nowait(self.snapshot())
        self._subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)

    async def _commit(self) -> None:
        snapshot = self.snapshot()
        if self._database is not None:
            try:
                await asyncio.to_thread(self._database.save_devices, snapshot)
            except PersistenceFailure:
                logger.exception("Keeping in-memory registry after failed write")
        for queue in self._subscribers:
            with suppress(asyncio.QueueEmpty):
                queue.get_nowait()
            queue.put_nowait(snapshot)
