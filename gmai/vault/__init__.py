"""GM Vault integration for GM AI."""

from __future__ import annotations

from .models import (
    CATEGORY_SEPARATOR,
    DEFAULT_PAGE_ICON,
    Page,
    VaultSnapshot,
    flatten_vault_config,
    render_summary,
)
from .room import (
    BroadcastEvent,
    MemoryRoom,
    MemoryRoomHandle,
    RoomHandle,
)
from .file_room import (
    FileRoom,
    FileRoomHandle,
    RoomMessage,
)
from .service import (
    BROADCAST_CHANNEL_REQUEST_FULL_VAULT,
    BROADCAST_CHANNEL_RESPONSE_FULL_VAULT,
    BROADCAST_CHANNEL_VISIBLE_PAGES,
    ROOM_METADATA_FULL_CONFIG,
    ROOM_METADATA_PAGES_CONFIG,
    ROOM_METADATA_VAULT_SUMMARY,
    VaultSync,
    VaultSyncSettings,
)
from .runtime import (
    VaultRuntime,
    VaultRuntimeState,
)

__all__ = [
    # Models
    "CATEGORY_SEPARATOR",
    "DEFAULT_PAGE_ICON",
    "Page",
    "VaultSnapshot",
    "flatten_vault_config",
    "render_summary",
    # Rooms
    "BroadcastEvent",
    "MemoryRoom",
    "MemoryRoomHandle",
    "RoomHandle",
    "FileRoom",
    "FileRoomHandle",
    "RoomMessage",
    # Sync
    "BROADCAST_CHANNEL_REQUEST_FULL_VAULT",
    "BROADCAST_CHANNEL_RESPONSE_FULL_VAULT",
    "BROADCAST_CHANNEL_VISIBLE_PAGES",
    "ROOM_METADATA_FULL_CONFIG",
    "ROOM_METADATA_PAGES_CONFIG",
    "ROOM_METADATA_VAULT_SUMMARY",
    "VaultSync",
    "VaultSyncSettings",
    # Runtime
    "VaultRuntime",
    "VaultRuntimeState",
]
