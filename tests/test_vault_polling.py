"""Polling behaviour under virtual time."""

from __future__ import annotations

from typing import Any, Mapping

import pytest

from conftest import drain, vault_config
from gmai.vault import ROOM_METADATA_FULL_CONFIG, MemoryRoom, RoomHandle, VaultSync, VaultSyncSettings

INTERVAL = 20.0


class _GrowingRoom(RoomHandle):
    """Each metadata read returns one more page than the last."""

    def __init__(self) -> None:
        self.reads = 0

    async def get_player_id(self) -> str:
        return "ai"

    async def get_player_name(self) -> str:
        return "GM AI"

    async def get_metadata(self) -> Mapping[str, Any]:
        self.reads += 1
        titles = [f"Page {idx}" for idx in range(self.reads)]
        return {ROOM_METADATA_FULL_CONFIG: vault_config(*titles)}

    async def send_message(self, channel: str, data: Mapping[str, Any]) -> None:
        return None

    def on_message(self, channel, handler):
        return lambda: None


def _sync(clock, callback) -> VaultSync:
    return VaultSync(
        VaultSyncSettings(poll_interval=INTERVAL),
        on_vault_updated=callback,
        sleep=clock.sleep,
    )


@pytest.mark.asyncio
async def test_double_start_keeps_one_timer(clock):
    calls = []
    sync = _sync(clock, lambda: calls.append(clock.now))
    await sync.init(_GrowingRoom())

    assert sync.start_polling() is False
    await drain()
    assert clock.pending == 1

    await sync.invalidate_cache()
    await clock.advance(3 * INTERVAL)

    assert calls == [INTERVAL, 2 * INTERVAL, 3 * INTERVAL]
    await sync.close()


@pytest.mark.asyncio
async def test_restart_after_stop_keeps_one_timer(clock):
    calls = []
    sync = _sync(clock, lambda: calls.append(clock.now))
    await sync.init(_GrowingRoom())
    await drain()

    sync.stop_polling()
    assert sync.start_polling() is True
    assert sync.start_polling() is False
    await drain()
    assert clock.pending == 1

    await clock.advance(2 * INTERVAL)

    assert len(calls) == 2
    await sync.close()


@pytest.mark.asyncio
async def test_no_callback_when_page_count_is_unchanged(clock):
    calls = []
    room = MemoryRoom({ROOM_METADATA_FULL_CONFIG: vault_config("Tavern")})
    sync = _sync(clock, lambda: calls.append(clock.now))
    await sync.init(room.join())

    await clock.advance(2 * INTERVAL)
    assert calls == []

    room.set_metadata({ROOM_METADATA_FULL_CONFIG: vault_config("Tavern", "Keep")})
    await clock.advance(INTERVAL)
    assert calls == [3 * INTERVAL]
    await sync.close()


@pytest.mark.asyncio
async def test_stop_polling_cancels_timer(clock):
    calls = []
    sync = _sync(clock, lambda: calls.append(clock.now))
    await sync.init(_GrowingRoom())
    await drain()

    sync.stop_polling()
    await drain()

    assert not sync.is_polling
    assert clock.pending == 0
    await clock.advance(5 * INTERVAL)
    assert calls == []


@pytest.mark.asyncio
async def test_failed_poll_read_keeps_polling(clock):
    class _FlakyRoom(_GrowingRoom):
        def __init__(self) -> None:
            super().__init__()
            self.attempts = 0

        async def get_metadata(self):
            self.attempts += 1
            if self.attempts == 2:
                raise OSError("transient")
            return await super().get_metadata()

    calls = []
    sync = _sync(clock, lambda: calls.append(clock.now))
    await sync.init(_FlakyRoom())

    await clock.advance(2 * INTERVAL)

    assert calls == [2 * INTERVAL]
    assert sync.is_polling
    await sync.close()
