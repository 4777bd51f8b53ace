"""Room handles: the host environment boundary for vault synchronization."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger("gmai.vault.room")


@dataclass
class BroadcastEvent:
    """A broadcast message as delivered to a listener."""

    data: Dict[str, Any] = field(default_factory=dict)
    sender_id: Optional[str] = None
    channel: str = ""


BroadcastHandler = Callable[[BroadcastEvent], None]
Unsubscribe = Callable[[], None]


class RoomHandle(ABC):
    """One participant's view of a shared room."""

    @abstractmethod
    async def get_player_id(self) -> str:
        """Return the local participant id."""

    @abstractmethod
    async def get_player_name(self) -> str:
        """Return the local participant display name."""

    @abstractmethod
    async def get_metadata(self) -> Mapping[str, Any]:
        """Return the room's persistent shared metadata."""

    @abstractmethod
    async def send_message(self, channel: str, data: Mapping[str, Any]) -> None:
        """Broadcast ``data`` to every other participant listening on ``channel``."""

    @abstractmethod
    def on_message(self, channel: str, handler: BroadcastHandler) -> Unsubscribe:
        """Register ``handler`` for ``channel`` and return an unsubscribe callable."""

    async def close(self) -> None:
        """Release transport resources."""


class MemoryRoom:
    """In-process room shared by several participants.

    Broadcasts are delivered synchronously to every participant except the
    sender, mirroring how the host only delivers to currently listening peers.
    """

    def __init__(self, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._metadata: Dict[str, Any] = dict(metadata or {})
        self._participants: List["MemoryRoomHandle"] = []

    @property
    def metadata(self) -> Dict[str, Any]:
        return deepcopy(self._metadata)

    def set_metadata(self, values: Mapping[str, Any]) -> None:
        self._metadata.update(deepcopy(dict(values)))

    def delete_metadata(self, *keys: str) -> None:
        for key in keys:
            self._metadata.pop(key, None)

    def join(self, player_id: Optional[str] = None, player_name: str = "Player") -> "MemoryRoomHandle":
        handle = MemoryRoomHandle(self, player_id or uuid.uuid4().hex[:8], player_name)
        self._participants.append(handle)
        return handle

    def leave(self, handle: "MemoryRoomHandle") -> None:
        if handle in self._participants:
            self._participants.remove(handle)

    def deliver(self, sender: "MemoryRoomHandle", channel: str, data: Mapping[str, Any]) -> int:
        delivered = 0
        for participant in list(self._participants):
            if participant is sender:
                continue
            delivered += participant.dispatch(
                BroadcastEvent(data=deepcopy(dict(data)), sender_id=sender.player_id, channel=channel)
            )
        return delivered


class MemoryRoomHandle(RoomHandle):
    """Participant handle for a :class:`MemoryRoom`."""

    def __init__(self, room: MemoryRoom, player_id: str, player_name: str) -> None:
        self.room = room
        self.player_id = player_id
        self.player_name = player_name
        self._handlers: Dict[str, List[BroadcastHandler]] = {}

    async def get_player_id(self) -> str:
        return self.player_id

    async def get_player_name(self) -> str:
        return self.player_name

    async def get_metadata(self) -> Mapping[str, Any]:
        return self.room.metadata

    async def send_message(self, channel: str, data: Mapping[str, Any]) -> None:
        self.room.deliver(self, channel, data)

    def on_message(self, channel: str, handler: BroadcastHandler) -> Unsubscribe:
        self._handlers.setdefault(channel, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def listener_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, []))

    def dispatch(self, event: BroadcastEvent) -> int:
        handlers = list(self._handlers.get(event.channel, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Broadcast handler failed on '%s'", event.channel)
        return len(handlers)

    async def close(self) -> None:
        self._handlers.clear()
        self.room.leave(self)


__all__ = [
    "BroadcastEvent",
    "BroadcastHandler",
    "MemoryRoom",
    "MemoryRoomHandle",
    "RoomHandle",
    "Unsubscribe",
]
