"""Vault synchronization with a peer GM Vault extension in the same room.

The peer publishes its vault in three ways and this module listens to all of
them:

* persistent room metadata (read on start, on refresh, and on every poll);
* a request/response broadcast exchange (best-effort, only when the peer is
  open);
* a lightweight "visible pages" broadcast pushed by the peer.

Every path feeds ``process_vault_config``, which builds a fresh
``VaultSnapshot`` and swaps it in with a single assignment.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .models import VaultSnapshot, flatten_vault_config, is_vault_config, render_summary
from .room import BroadcastEvent, RoomHandle, Unsubscribe

logger = logging.getLogger("gmai.vault.sync")

ROOM_METADATA_VAULT_SUMMARY = "com.dmscreen/vaultSummaryForGMIA"
ROOM_METADATA_FULL_CONFIG = "com.dmscreen/fullConfig"
ROOM_METADATA_PAGES_CONFIG = "com.dmscreen/pagesConfig"
METADATA_KEY_PRIORITY = (
    (ROOM_METADATA_VAULT_SUMMARY, "vault summary (GM Vault bridge)"),
    (ROOM_METADATA_FULL_CONFIG, "full vault config"),
    (ROOM_METADATA_PAGES_CONFIG, "visible pages config"),
)

BROADCAST_CHANNEL_REQUEST_FULL_VAULT = "com.dmscreen/requestFullVault"
BROADCAST_CHANNEL_RESPONSE_FULL_VAULT = "com.dmscreen/responseFullVault"
BROADCAST_CHANNEL_VISIBLE_PAGES = "com.dmscreen/visiblePages"

POLL_INTERVAL_SEC = 20.0
REPLY_TIMEOUT_SEC = 5.0
DEFAULT_PLAYER_NAME = "GM AI"

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class VaultSyncSettings:
    """Settings for vault synchronization."""

    enabled: bool = True
    room_dir: str = ""
    player_name: str = DEFAULT_PLAYER_NAME
    poll_interval: float = POLL_INTERVAL_SEC
    reply_timeout: float = REPLY_TIMEOUT_SEC
    wait_for_reply: bool = False

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "VaultSyncSettings":
        raw = config.get("vault", {}) if config else {}
        raw = raw or {}
        return cls(
            enabled=bool(raw.get("enabled", True)),
            room_dir=str(raw.get("room_dir", "") or ""),
            player_name=str(raw.get("player_name") or DEFAULT_PLAYER_NAME),
            poll_interval=float(raw.get("poll_interval", POLL_INTERVAL_SEC)),
            reply_timeout=float(raw.get("reply_timeout", REPLY_TIMEOUT_SEC)),
            wait_for_reply=bool(raw.get("wait_for_reply", False)),
        )


class VaultSync:
    """Keeps the best available vault snapshot for the current room."""

    def __init__(
        self,
        settings: Optional[VaultSyncSettings] = None,
        *,
        on_vault_updated: Optional[Callable[[], None]] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.settings = settings or VaultSyncSettings()
        self.room: Optional[RoomHandle] = None
        self.player_id: Optional[str] = None
        self.player_name: str = self.settings.player_name or DEFAULT_PLAYER_NAME

        self._snapshot: Optional[VaultSnapshot] = None
        self._on_vault_updated = on_vault_updated
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._poll_task: Optional["asyncio.Task[None]"] = None
        self._unsubscribers: List[Unsubscribe] = []
        self._pending_reply: Optional["asyncio.Future[Mapping[str, Any]]"] = None
        self._pending_waiters = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_on_vault_updated(self, callback: Optional[Callable[[], None]]) -> None:
        """Set the callback fired when a background poll changes the page count."""

        self._on_vault_updated = callback

    @property
    def is_listening(self) -> bool:
        return bool(self._unsubscribers)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def init(self, room: Optional[RoomHandle]) -> bool:
        """Attach to ``room``, load shared state and start polling.

        Returns whether vault data was found in shared state.
        """

        if room is None:
            logger.warning("Room not available for vault integration")
            return False

        self.room = room
        await self._resolve_identity(room)
        logger.info("Vault integration initialized for: %s", self.player_name)

        self._setup_broadcast_listeners()
        found = await self.load_from_shared_state()
        self.start_polling()
        return found

    async def close(self) -> None:
        """Stop polling and detach broadcast listeners."""

        self.stop_polling()
        for unsubscribe in self._unsubscribers:
            try:
                unsubscribe()
            except Exception as exc:
                logger.debug("Failed to unsubscribe vault listener: %s", exc)
        self._unsubscribers = []
        self._clear_pending_reply()

    async def _resolve_identity(self, room: RoomHandle) -> None:
        try:
            self.player_id = await room.get_player_id()
            name = await room.get_player_name()
        except Exception as exc:
            logger.warning("Could not resolve player identity; using '%s': %s", self.player_name, exc)
            return
        if name:
            self.player_name = name

    def _setup_broadcast_listeners(self) -> None:
        if self.room is None or self._unsubscribers:
            return

        self._unsubscribers = [
            self.room.on_message(BROADCAST_CHANNEL_RESPONSE_FULL_VAULT, self._handle_full_vault),
            self.room.on_message(BROADCAST_CHANNEL_VISIBLE_PAGES, self._handle_visible_pages),
        ]

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(self) -> bool:
        """Start the background poll; a second call while running is a no-op."""

        if self.is_polling:
            return False
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.debug("Vault polling started (every %ss)", self.settings.poll_interval)
        return True

    def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Vault polling stopped")

    async def _poll_loop(self) -> None:
        while True:
            await self._sleep(self.settings.poll_interval)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Vault poll failed")

    async def poll_once(self) -> bool:
        """Re-read shared state; notify the callback if the page count changed."""

        if self.room is None:
            return False

        previous = self._page_count()
        await self.load_from_shared_state(silent=True)
        changed = self._page_count() != previous
        if changed and self._on_vault_updated is not None:
            self._on_vault_updated()
        return changed

    def _page_count(self) -> int:
        snapshot = self._snapshot
        return snapshot.page_count if snapshot is not None else 0

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def load_from_shared_state(self, silent: bool = False) -> bool:
        """Parse the first vault payload present in room metadata."""

        if self.room is None:
            return False

        log = logger.debug if silent else logger.info
        try:
            metadata = await self.room.get_metadata()
        except Exception as exc:
            log("Error reading room metadata: %s", exc)
            return False

        if not isinstance(metadata, Mapping):
            log("Room metadata is not a mapping; ignoring")
            return False

        for key, label in METADATA_KEY_PRIORITY:
            value = metadata.get(key)
            if value:
                log("Found %s in room metadata", label)
                self.process_vault_config(value, silent=silent)
                return True

        log("No vault data in room metadata. Open GM Vault and save to publish it.")
        return False

    async def request_vault_from_gm(
        self,
        *,
        wait_for_reply: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        """Refresh from shared state, then ask any listening peer for its vault.

        The broadcast step never turns a successful shared-state read into a
        failure. When waiting, at most ``timeout`` seconds are spent on a reply.
        """

        if self.room is None:
            return False

        found = await self.load_from_shared_state()

        should_wait = self.settings.wait_for_reply if wait_for_reply is None else wait_for_reply
        pending: Optional["asyncio.Future[Mapping[str, Any]]"] = None
        if should_wait:
            pending = self._pending_reply
            if pending is None or pending.done():
                pending = asyncio.get_running_loop().create_future()
                self._pending_reply = pending
            self._pending_waiters += 1

        try:
            await self.room.send_message(
                BROADCAST_CHANNEL_REQUEST_FULL_VAULT,
                {
                    "requesterId": self.player_id,
                    "requesterName": self.player_name,
                    "timestamp": int(time.time() * 1000),
                },
            )
            logger.info("Broadcast vault request sent (used if GM Vault is open)")
        except Exception as exc:
            logger.debug("Broadcast vault request failed: %s", exc)
            if pending is not None:
                self._release_pending_reply(pending)
            return found

        if pending is None:
            return found

        received = await self._wait_for_reply(pending, self.settings.reply_timeout if timeout is None else timeout)
        return found or received

    async def _wait_for_reply(self, pending: "asyncio.Future[Mapping[str, Any]]", timeout: float) -> bool:
        try:
            await asyncio.wait_for(asyncio.shield(pending), timeout)
        except asyncio.TimeoutError:
            logger.debug("No vault reply within %ss", timeout)
            return False
        finally:
            self._release_pending_reply(pending)
        return True

    def _release_pending_reply(self, pending: "asyncio.Future[Mapping[str, Any]]") -> None:
        # Concurrent waiters share one future; the last one out clears the slot.
        self._pending_waiters = max(0, self._pending_waiters - 1)
        if self._pending_waiters:
            return
        self._clear_pending_reply(pending)
        if not pending.done():
            pending.cancel()

    def _clear_pending_reply(self, expected: Optional["asyncio.Future[Mapping[str, Any]]"] = None) -> None:
        current = self._pending_reply
        if current is None:
            return
        if expected is not None and current is not expected:
            return
        self._pending_reply = None

    def _resolve_pending_reply(self, config: Mapping[str, Any], requester_id: Any) -> bool:
        pending = self._pending_reply
        if pending is None or pending.done():
            return False
        if requester_id is not None and self.player_id is not None and requester_id != self.player_id:
            return False
        self._pending_reply = None
        pending.set_result(config)
        return True

    def _handle_full_vault(self, event: BroadcastEvent) -> None:
        self._handle_broadcast(event, "live vault update")

    def _handle_visible_pages(self, event: BroadcastEvent) -> None:
        self._handle_broadcast(event, "visible pages update")

    def _handle_broadcast(self, event: BroadcastEvent, label: str) -> None:
        data = event.data if isinstance(event.data, Mapping) else {}
        config = data.get("config")
        if not config:
            return
        logger.info("Received %s from GM", label)
        if self.process_vault_config(config) is not None:
            self._resolve_pending_reply(config, data.get("requesterId"))

    # ------------------------------------------------------------------
    # Parsing and queries
    # ------------------------------------------------------------------

    def process_vault_config(self, config: Any, silent: bool = False) -> Optional[VaultSnapshot]:
        """Flatten ``config`` into a new snapshot and swap it in.

        Payloads without a categories collection leave the cache untouched.
        """

        if not is_vault_config(config):
            if not silent:
                logger.warning("Invalid vault config received: %r", type(config).__name__)
            return None

        snapshot = flatten_vault_config(config)
        self._snapshot = snapshot
        if not silent:
            logger.info(
                "Vault data processed: %d pages in %d categories",
                snapshot.page_count,
                snapshot.category_count,
            )
            if snapshot.pages:
                logger.debug("Sample pages: %s", [page.title for page in snapshot.pages[:3]])
        return snapshot

    def is_available(self) -> bool:
        snapshot = self._snapshot
        return snapshot is not None and bool(snapshot.pages)

    def get_data(self) -> Optional[VaultSnapshot]:
        return self._snapshot

    def get_summary(self) -> str:
        """Text block describing the vault, ready to append to a system prompt."""

        return render_summary(self._snapshot)

    async def invalidate_cache(self) -> bool:
        """Drop the cached snapshot and refresh from every channel."""

        self._snapshot = None
        if self.room is None:
            return False
        return await self.request_vault_from_gm()


__all__ = [
    "BROADCAST_CHANNEL_REQUEST_FULL_VAULT",
    "BROADCAST_CHANNEL_RESPONSE_FULL_VAULT",
    "BROADCAST_CHANNEL_VISIBLE_PAGES",
    "DEFAULT_PLAYER_NAME",
    "METADATA_KEY_PRIORITY",
    "POLL_INTERVAL_SEC",
    "REPLY_TIMEOUT_SEC",
    "ROOM_METADATA_FULL_CONFIG",
    "ROOM_METADATA_PAGES_CONFIG",
    "ROOM_METADATA_VAULT_SUMMARY",
    "VaultSync",
    "VaultSyncSettings",
]
