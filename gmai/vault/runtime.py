"""Background event loop that hosts vault synchronization for the CLI."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .file_room import FileRoom
from .room import RoomHandle
from .service import VaultSync, VaultSyncSettings

logger = logging.getLogger("gmai.vault.runtime")

T = TypeVar("T")


class VaultRuntimeState(str, Enum):
    """Vault runtime lifecycle states."""
    STOPPED = "stopped"
    RUNNING = "running"
    DISABLED = "disabled"
    ERROR = "error"


@dataclass
class VaultRuntime:
    """Runs a :class:`VaultSync` on its own event-loop thread.

    The terminal UI is blocking, so it talks to the loop through
    ``run_coroutine_threadsafe`` and waits with a timeout.
    """

    settings: VaultSyncSettings = field(default_factory=VaultSyncSettings)
    on_vault_updated: Optional[Callable[[], None]] = None
    call_timeout: float = 15.0

    sync: VaultSync = field(init=False)
    room: Optional[RoomHandle] = field(default=None, init=False)
    _state: VaultRuntimeState = field(default=VaultRuntimeState.STOPPED, init=False)
    _loop: Optional[asyncio.AbstractEventLoop] = field(default=None, init=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False)
    _ready: threading.Event = field(default_factory=threading.Event, init=False)

    def __post_init__(self) -> None:
        self.sync = VaultSync(self.settings, on_vault_updated=self.on_vault_updated)

    @property
    def state(self) -> VaultRuntimeState:
        return self._state

    def start(self, room: Optional[RoomHandle] = None) -> bool:
        """Start the loop thread and attach to ``room`` (or the configured room dir)."""

        if self._state == VaultRuntimeState.RUNNING:
            return True

        if not self.settings.enabled:
            logger.info("Vault integration disabled via configuration")
            self._state = VaultRuntimeState.DISABLED
            return False

        if room is None and self.settings.room_dir:
            room = FileRoom(Path(self.settings.room_dir)).join(player_name=self.settings.player_name)
        self.room = room

        self._ready.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="gmai-vault-sync",
        )
        self._thread.start()
        if not self._ready.wait(timeout=2.0):
            logger.error("Vault event loop failed to start")
            self._state = VaultRuntimeState.ERROR
            return False

        self._state = VaultRuntimeState.RUNNING
        try:
            self.call(lambda: self.sync.init(self.room))
        except Exception as exc:
            logger.warning("Vault initialization did not complete: %s", exc)
        return True

    def _run_loop(self) -> None:
        try:
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)
            self._loop.call_soon(self._ready.set)
            self._loop.run_forever()
        except Exception as exc:
            logger.exception("Vault loop thread error: %s", exc)
            self._state = VaultRuntimeState.ERROR
        finally:
            if self._loop:
                self._loop.close()

    def call(self, factory: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
        """Run the coroutine produced by ``factory`` on the vault loop and wait."""

        if self._loop is None or self._state != VaultRuntimeState.RUNNING:
            raise RuntimeError("Vault runtime is not running")

        async def _runner() -> T:
            return await factory()

        future = asyncio.run_coroutine_threadsafe(_runner(), self._loop)
        try:
            return future.result(timeout=timeout or self.call_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    def refresh(self, wait_for_reply: Optional[bool] = None) -> bool:
        """Blocking wrapper around ``request_vault_from_gm``."""

        if self._state != VaultRuntimeState.RUNNING:
            return False
        return self.call(lambda: self.sync.request_vault_from_gm(wait_for_reply=wait_for_reply))

    def invalidate(self) -> bool:
        if self._state != VaultRuntimeState.RUNNING:
            return False
        return self.call(self.sync.invalidate_cache)

    def status(self) -> Dict[str, Any]:
        snapshot = self.sync.get_data()
        return {
            "state": self._state.value,
            "room": type(self.room).__name__ if self.room is not None else None,
            "player": self.sync.player_name,
            "available": self.sync.is_available(),
            "pages": snapshot.page_count if snapshot else 0,
            "categories": snapshot.category_count if snapshot else 0,
            "last_update": snapshot.last_update if snapshot else None,
            "polling": self.sync.is_polling,
        }

    def stop(self) -> None:
        """Stop polling, close the room and join the loop thread."""

        if self._state != VaultRuntimeState.RUNNING or self._loop is None:
            return

        async def _shutdown() -> None:
            await self.sync.close()
            if self.room is not None:
                await self.room.close()

        try:
            self.call(_shutdown, timeout=5.0)
        except Exception as exc:
            logger.warning("Error stopping vault sync: %s", exc)

        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

        self._state = VaultRuntimeState.STOPPED
        self._thread = None
        self._loop = None


__all__ = ["VaultRuntime", "VaultRuntimeState"]
