"""Directory-backed room transport.

Lets participants in separate processes share a room through a common
directory (local disk or a synced folder):

    <room_dir>/
    ├── metadata.json              # persistent shared room state
    └── broadcast/
        └── <channel-slug>/
            └── <time_ns>-<id>.json  # one file per broadcast message

Broadcasts are ephemeral: a handle only sees messages sent after it joined,
and files older than the TTL are pruned.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .room import BroadcastEvent, BroadcastHandler, RoomHandle, Unsubscribe

logger = logging.getLogger("gmai.vault.file_room")

METADATA_FILENAME = "metadata.json"
BROADCAST_DIRNAME = "broadcast"
DEFAULT_SCAN_INTERVAL = 0.5
DEFAULT_MESSAGE_TTL = 60.0


def _channel_slug(channel: str) -> str:
    return channel.replace("/", "__").replace(os.sep, "__")


@dataclass
class RoomMessage:
    """A broadcast message as stored on disk."""

    channel: str
    sender: str
    data: Dict[str, Any] = field(default_factory=dict)
    sent_at: float = field(default_factory=time.time)
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "channel": self.channel,
            "sender": self.sender,
            "data": self.data,
            "sent_at": self.sent_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoomMessage":
        return cls(
            channel=data["channel"],
            sender=data.get("sender", ""),
            data=data.get("data") or {},
            sent_at=float(data.get("sent_at", 0.0)),
            message_id=data.get("message_id", ""),
        )


class FileRoom:
    """A room stored under a shared directory."""

    def __init__(self, room_dir: Path, ttl: float = DEFAULT_MESSAGE_TTL) -> None:
        self.room_dir = Path(room_dir).expanduser()
        self.ttl = ttl
        self._metadata_path = self.room_dir / METADATA_FILENAME
        self._broadcast_dir = self.room_dir / BROADCAST_DIRNAME

    def initialize(self) -> None:
        self._broadcast_dir.mkdir(parents=True, exist_ok=True)

    def join(
        self,
        player_id: Optional[str] = None,
        player_name: str = "Player",
        scan_interval: float = DEFAULT_SCAN_INTERVAL,
    ) -> "FileRoomHandle":
        self.initialize()
        return FileRoomHandle(
            self,
            player_id=player_id or uuid.uuid4().hex[:8],
            player_name=player_name,
            scan_interval=scan_interval,
        )

    def read_metadata(self) -> Dict[str, Any]:
        """Read shared metadata; a missing file is an empty room."""

        if not self._metadata_path.exists():
            return {}
        data = json.loads(self._metadata_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Room metadata in '{self._metadata_path}' is not a mapping")
        return data

    def set_metadata(self, values: Mapping[str, Any]) -> None:
        """Merge ``values`` into shared metadata with an atomic replace."""

        self.room_dir.mkdir(parents=True, exist_ok=True)
        try:
            current = self.read_metadata()
        except (OSError, ValueError) as exc:
            logger.warning("Replacing unreadable room metadata: %s", exc)
            current = {}
        current.update(values)
        self._write_json(self._metadata_path, current)

    def publish(self, channel: str, sender: str, data: Mapping[str, Any]) -> RoomMessage:
        message = RoomMessage(channel=channel, sender=sender, data=dict(data))
        channel_dir = self._broadcast_dir / _channel_slug(channel)
        channel_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{time.time_ns()}-{message.message_id}.json"
        self._write_json(channel_dir / filename, message.to_dict())
        logger.debug("Published to '%s': %s", channel, message.message_id)
        return message

    def list_messages(self, channel: str) -> List[RoomMessage]:
        """Return unexpired messages for ``channel`` in send order."""

        channel_dir = self._broadcast_dir / _channel_slug(channel)
        if not channel_dir.is_dir():
            return []

        cutoff = time.time() - self.ttl
        messages: List[RoomMessage] = []
        for msg_file in sorted(channel_dir.glob("*.json")):
            try:
                message = RoomMessage.from_dict(json.loads(msg_file.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping invalid message %s: %s", msg_file.name, exc)
                continue
            if message.sent_at < cutoff:
                continue
            messages.append(message)
        return messages

    def purge_expired(self) -> int:
        """Delete broadcast files older than the TTL."""

        removed = 0
        if not self._broadcast_dir.is_dir():
            return removed

        cutoff = time.time() - self.ttl
        for msg_file in self._broadcast_dir.glob("*/*.json"):
            try:
                if msg_file.stat().st_mtime < cutoff:
                    msg_file.unlink()
                    removed += 1
            except OSError:
                continue
        if removed:
            logger.debug("Purged %d expired broadcast messages", removed)
        return removed

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)


class FileRoomHandle(RoomHandle):
    """Participant handle for a :class:`FileRoom`."""

    def __init__(
        self,
        room: FileRoom,
        player_id: str,
        player_name: str,
        scan_interval: float = DEFAULT_SCAN_INTERVAL,
    ) -> None:
        self.room = room
        self.player_id = player_id
        self.player_name = player_name
        self.scan_interval = scan_interval
        self.joined_at = time.time()
        self._handlers: Dict[str, List[BroadcastHandler]] = {}
        self._seen: Dict[str, float] = {}
        self._scan_task: Optional["asyncio.Task[None]"] = None

    async def get_player_id(self) -> str:
        return self.player_id

    async def get_player_name(self) -> str:
        return self.player_name

    async def get_metadata(self) -> Mapping[str, Any]:
        self._ensure_scanner()
        return self.room.read_metadata()

    async def send_message(self, channel: str, data: Mapping[str, Any]) -> None:
        self._ensure_scanner()
        message = self.room.publish(channel, self.player_id, data)
        self._seen[message.message_id] = message.sent_at

    def on_message(self, channel: str, handler: BroadcastHandler) -> Unsubscribe:
        self._handlers.setdefault(channel, []).append(handler)
        self._ensure_scanner()

        def _unsubscribe() -> None:
            handlers = self._handlers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def scan_once(self) -> int:
        """Deliver new messages on every subscribed channel; returns the count."""

        self._forget_expired()
        dispatched = 0
        for channel, handlers in list(self._handlers.items()):
            if not handlers:
                continue
            for message in self.room.list_messages(channel):
                if message.message_id in self._seen:
                    continue
                self._seen[message.message_id] = message.sent_at
                if message.sender == self.player_id or message.sent_at < self.joined_at:
                    continue
                event = BroadcastEvent(data=message.data, sender_id=message.sender, channel=channel)
                for handler in list(handlers):
                    try:
                        handler(event)
                        dispatched += 1
                    except Exception as exc:
                        logger.error("Callback error on '%s': %s", channel, exc)
        return dispatched

    def _forget_expired(self) -> None:
        # Expired messages are never listed again, so their ids can go.
        cutoff = time.time() - self.room.ttl
        self._seen = {
            message_id: sent_at for message_id, sent_at in self._seen.items() if sent_at >= cutoff
        }

    def _ensure_scanner(self) -> None:
        if self._scan_task is not None and not self._scan_task.done():
            return
        if not self._handlers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._scan_task = loop.create_task(self._scan_loop())

    async def _scan_loop(self) -> None:
        while True:
            try:
                self.scan_once()
                self.room.purge_expired()
            except Exception:
                logger.exception("Broadcast scan failed in '%s'", self.room.room_dir)
            await asyncio.sleep(self.scan_interval)

    async def close(self) -> None:
        self._handlers.clear()
        task, self._scan_task = self._scan_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


__all__ = ["FileRoom", "FileRoomHandle", "RoomMessage"]
