from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from wledlink.errors import PersistenceFailure
from wledlink.models import Device, UpdateChannel
from wledlink.storage import Database, DeviceRegistry


def test_devices_roundtrip(tmp_path):
    db = Database(tmp_path)
    seen = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    devices = [
        Device(
            identity="AA:BB:CC:DD:EE:FF",
            address="10.0.0.5",
            custom_name="Desk",
            update_channel=UpdateChannel.BETA,
            last_seen_at=seen,
        ),
        Device(identity="112233445566", address="[fe80::1]:8080", hidden=True),
    ]
    db.save_devices(devices)

    loaded = {device.identity: device for device in db.load_devices()}
    assert loaded["aabbccddeeff"] == devices[0]
    assert loaded["112233445566"].hidden is True
    assert loaded["112233445566"].address == "[fe80::1]:8080"


def test_init_does_not_clobber(tmp_path):
    db = Database(tmp_path / "data")
    assert db.init() is True
    db.save_devices([Device(identity="aabbccddeeff")])

    assert db.init() is False
    assert len(db.load_devices()) == 1

    assert db.init(force=True) is True
    assert db.load_devices() == []


def test_invalid_devices_file(tmp_path):
    db = Database(tmp_path)
    db.devices_path.write_text('[devices."aabbccddeeff"]\nhidden = "maybe"\n')
    with pytest.raises(ValueError, match="Invalid device"):
        db.load_devices()


def test_registry_loads_and_persists(tmp_path):
    db = Database(tmp_path)
    db.save_devices([Device(identity="aabbccddeeff", address="10.0.0.5")])

    registry = DeviceRegistry(db)
    assert len(registry) == 1

    asyncio.run(registry.upsert(Device(identity="112233445566", address="10.0.0.6")))
    assert {device.identity for device in db.load_devices()} == {
        "aabbccddeeff",
        "112233445566",
    }


def test_upsert_merges_only_set_fields():
    async def _run():
        registry = DeviceRegistry()
        await registry.upsert(
            Device(identity="aabbccddeeff", address="10.0.0.5", custom_name="Desk")
        )
        await registry.upsert(Device(identity="aabbccddeeff", address="10.0.0.9"))
        return await registry.find("AA:BB:CC:DD:EE:FF")

    device = asyncio.run(_run())
    assert device is not None
    assert device.address == "10.0.0.9"
    assert device.custom_name == "Desk"


def test_modify_and_delete():
    async def _run():
        registry = DeviceRegistry()
        await registry.upsert(Device(identity="aabbccddeeff"))

        hidden = await registry.modify(
            "aabbccddeeff", lambda d: d.model_copy(update={"hidden": True})
        )
        missing = await registry.modify("112233445566", lambda d: d)
        removed = await registry.delete("aabbccddeeff")
        removed_again = await registry.delete("aabbccddeeff")
        return hidden, missing, removed, removed_again, len(registry)

    hidden, missing, removed, removed_again, remaining = asyncio.run(_run())
    assert hidden is not None and hidden.hidden is True
    assert missing is None
    assert removed is True
    assert removed_again is False
    assert remaining == 0


def test_changes_yields_current_then_latest():
    async def _run():
        registry = DeviceRegistry()
        await registry.upsert(Device(identity="aabbccddeeff"))
        stream = registry.changes()

        first = await anext(stream)
        # two commits before the consumer looks again: only the last survives
        await registry.upsert(Device(identity="112233445566"))
        await registry.delete("aabbccddeeff")
        second = await anext(stream)
        await stream.aclose()
        return first, second

    first, second = asyncio.run(_run())
    assert [d.identity for d in first] == ["aabbccddeeff"]
    assert [d.identity for d in second] == ["112233445566"]


def test_failed_write_keeps_memory_state(tmp_path, monkeypatch, caplog):
    db = Database(tmp_path)
    registry = DeviceRegistry(db)

    def _broken_save(_devices):
        raise PersistenceFailure("disk full")

    monkeypatch.setattr(db, "save_devices", _broken_save)

    async def _run():
        stream = registry.changes()
        await anext(stream)
        await registry.upsert(Device(identity="aabbccddeeff"))
        snapshot = await anext(stream)
        await stream.aclose()
        return snapshot

    snapshot = asyncio.run(_run())
    assert [d.identity for d in snapshot] == ["aabbccddeeff"]
    assert len(registry) == 1
    assert "failed write" in caplog.text


def test_delete_releases_identity_lock():
    async def _run():
        registry = DeviceRegistry()
        await registry.upsert(Device(identity="aabbccddeeff"))
        await registry.modify("aabbccddeeff", lambda d: d)
        created = "aabbccddeeff" in registry._identity_locks
        await registry.delete("aabbccddeeff")
        return created, "aabbccddeeff" in registry._identity_locks

    assert asyncio.run(_run()) == (True, False)


def test_delete_keeps_lock_that_is_held():
    async def _run():
        registry = DeviceRegistry()
        await registry.upsert(Device(identity="aabbccddeeff"))
        lock = registry.identity_lock("aabbccddeeff")
        async with lock:
            await registry.delete("aabbccddeeff")
            return registry.identity_lock("aabbccddeeff") is lock

    assert asyncio.run(_run()) is True
