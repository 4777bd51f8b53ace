"""Tests for the background vault runtime."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import vault_config
from gmai.vault import (
    BROADCAST_CHANNEL_REQUEST_FULL_VAULT,
    BROADCAST_CHANNEL_RESPONSE_FULL_VAULT,
    ROOM_METADATA_FULL_CONFIG,
    FileRoom,
    MemoryRoom,
    VaultRuntime,
    VaultRuntimeState,
    VaultSyncSettings,
)


@pytest.fixture
def runtime():
    instance = VaultRuntime(settings=VaultSyncSettings(poll_interval=3600, reply_timeout=1.0))
    yield instance
    instance.stop()


def test_disabled_runtime_does_not_start():
    runtime = VaultRuntime(settings=VaultSyncSettings(enabled=False))

    assert runtime.start() is False
    assert runtime.state is VaultRuntimeState.DISABLED
    assert runtime.refresh() is False
    with pytest.raises(RuntimeError):
        runtime.call(runtime.sync.invalidate_cache)


def test_start_without_room_runs_but_finds_nothing(runtime):
    assert runtime.start() is True

    status = runtime.status()
    assert status["state"] == "running"
    assert status["room"] is None
    assert status["available"] is False
    assert runtime.refresh() is False


def test_runtime_loads_memory_room(runtime):
    room = MemoryRoom({ROOM_METADATA_FULL_CONFIG: vault_config("Tavern", "Keep")})

    assert runtime.start(room.join("ai", "GM AI")) is True

    status = runtime.status()
    assert status["available"] is True
    assert status["pages"] == 2
    assert status["categories"] == 1
    assert status["player"] == "GM AI"
    assert status["polling"] is True
    assert "## GM Vault Content" in runtime.sync.get_summary()


def test_refresh_waits_for_live_reply(runtime):
    room = MemoryRoom()
    gm = room.join("gm", "Game Master")

    def _answer(event):
        room.deliver(
            gm,
            BROADCAST_CHANNEL_RESPONSE_FULL_VAULT,
            {"config": vault_config("Tavern"), "requesterId": event.data["requesterId"]},
        )

    gm.on_message(BROADCAST_CHANNEL_REQUEST_FULL_VAULT, _answer)
    runtime.start(room.join("ai", "GM AI"))

    assert runtime.refresh(wait_for_reply=True) is True
    assert runtime.status()["pages"] == 1


def test_invalidate_clears_and_reloads(runtime):
    room = MemoryRoom({ROOM_METADATA_FULL_CONFIG: vault_config("Tavern")})
    runtime.start(room.join())

    room.delete_metadata(ROOM_METADATA_FULL_CONFIG)
    assert runtime.invalidate() is False
    assert runtime.sync.get_data() is None


def test_runtime_builds_file_room_from_settings(tmp_path: Path):
    FileRoom(tmp_path).set_metadata({ROOM_METADATA_FULL_CONFIG: vault_config("Tavern")})
    runtime = VaultRuntime(settings=VaultSyncSettings(room_dir=str(tmp_path), poll_interval=3600))
    try:
        assert runtime.start() is True
        status = runtime.status()
        assert status["room"] == "FileRoomHandle"
        assert status["pages"] == 1
    finally:
        runtime.stop()

    assert runtime.state is VaultRuntimeState.STOPPED
