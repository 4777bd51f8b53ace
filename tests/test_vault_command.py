"""Tests for the /vault, /status, /history and /clear commands."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import vault_config
from gmai.app import build_router
from gmai.chat import ChatHistory
from gmai.configuration import ConfigurationBundle
from gmai.vault import ROOM_METADATA_FULL_CONFIG, MemoryRoom, VaultRuntime, VaultSyncSettings


@pytest.fixture
def room() -> MemoryRoom:
    config = vault_config("Tavern", "Goblin Lair", category="Region")
    return MemoryRoom({ROOM_METADATA_FULL_CONFIG: config})


@pytest.fixture
def runtime(room):
    instance = VaultRuntime(settings=VaultSyncSettings(poll_interval=3600))
    instance.start(room.join("ai", "GM AI"))
    yield instance
    instance.stop()


def _router(tmp_path: Path, **metadata):
    bundle = ConfigurationBundle(home_dir=tmp_path, status="ready")
    return build_router(bundle, metadata=metadata)


def test_vault_without_runtime(tmp_path: Path):
    router = _router(tmp_path)

    assert "not running" in router.handle("vault", [])


def test_vault_status_shows_counts(tmp_path: Path, runtime):
    router = _router(tmp_path, vault_runtime=runtime)

    output = router.handle("vault", ["status"])

    assert "GM Vault" in output
    assert "RUNNING" in output
    assert "2" in output


def test_vault_summary_and_pages(tmp_path: Path, runtime):
    router = _router(tmp_path, vault_runtime=runtime)

    summary = router.handle("vault", ["summary"])
    pages = router.handle("vault", ["pages", "goblin"])

    assert summary.startswith("## GM Vault Content")
    assert "**Region:**" in summary
    assert "Goblin Lair" in pages
    assert "Tavern" not in pages
    assert "No pages matching" in router.handle("vault", ["pages", "dragon"])


def test_vault_refresh_and_invalidate(tmp_path: Path, runtime, room):
    router = _router(tmp_path, vault_runtime=runtime)

    room.set_metadata({ROOM_METADATA_FULL_CONFIG: vault_config("Tavern", "Keep", "Dock")})
    assert "3 page(s)" in router.handle("vault", ["refresh"])

    room.delete_metadata(ROOM_METADATA_FULL_CONFIG)
    assert "no vault data available" in router.handle("vault", ["invalidate"])
    assert router.handle("vault", ["summary"]) == "[vault] No vault pages available."


def test_vault_unknown_subcommand(tmp_path: Path, runtime):
    router = _router(tmp_path, vault_runtime=runtime)

    assert "Unknown subcommand 'sync'" in router.handle("vault", ["sync"])
    assert "/vault refresh" in router.handle("vault", ["help"])


def test_status_includes_vault_panel(tmp_path: Path, runtime):
    router = _router(tmp_path, vault_runtime=runtime, chat_history=ChatHistory())

    output = router.handle("status", [])

    assert "Runtime Status" in output
    assert "Vault" in output
    assert "Diagnostics" in output


def test_history_and_clear(tmp_path: Path):
    history = ChatHistory()
    history.add_user_message("What is a bonus action?")
    history.add_assistant_message("A second, smaller action on your turn.")
    router = _router(tmp_path, chat_history=history)

    output = router.handle("history", ["bonus"])
    assert "bonus action" in output

    assert "2 message(s) removed" in router.handle("clear", [])
    assert history.is_empty()
    assert "No messages" in router.handle("history", [])
