"""Tests covering UI helpers and the chat round-trip."""

from __future__ import annotations

from pathlib import Path

from gmai.ai import ChatResult
from gmai.app import _resolve_log_level, _resolve_ui_verbose, build_router, send_chat_message
from gmai.chat import ChatHistory
from gmai.configuration import ConfigurationBundle


def _bundle(merged: dict | None = None) -> ConfigurationBundle:
    return ConfigurationBundle(
        home_dir=Path("/tmp/gmai"),
        status="ready",
        merged=merged or {},
    )


class _FakeBackend:
    def __init__(self, result: ChatResult) -> None:
        self.result = result
        self.calls: list[tuple[list, str]] = []

    def chat(self, messages, *, vault_context=""):
        self.calls.append((messages, vault_context))
        return self.result


def test_resolve_ui_verbose_defaults_to_true(monkeypatch):
    monkeypatch.delenv("GMAI_UI_VERBOSE", raising=False)
    bundle = _bundle()
    assert _resolve_ui_verbose(bundle) is True


def test_resolve_ui_verbose_reads_config(monkeypatch):
    monkeypatch.delenv("GMAI_UI_VERBOSE", raising=False)
    bundle = _bundle({"ui": {"verbose": False}})
    assert _resolve_ui_verbose(bundle) is False


def test_resolve_ui_verbose_env_override(monkeypatch):
    bundle = _bundle({"ui": {"verbose": True}})
    monkeypatch.setenv("GMAI_UI_VERBOSE", "0")
    assert _resolve_ui_verbose(bundle) is False


def test_resolve_log_level_prefers_env(monkeypatch):
    bundle = _bundle({"logging": {"level": "info"}})
    monkeypatch.setenv("GMAI_LOG_LEVEL", "debug")
    assert _resolve_log_level(bundle) == "DEBUG"

    monkeypatch.delenv("GMAI_LOG_LEVEL")
    assert _resolve_log_level(bundle) == "INFO"


def test_build_router_registers_commands():
    router = build_router(_bundle(), metadata={"chat_history": ChatHistory()})

    assert {"help", "status", "vault", "config", "history", "clear"} <= set(router.command_names)
    assert "chat_history" in router.metadata


def test_send_chat_message_passes_vault_summary():
    history = ChatHistory()
    backend = _FakeBackend(ChatResult(content="Roll a d20."))

    result = send_chat_message("How do checks work?", history, backend, lambda: "\n\n## GM Vault Content\n")

    assert result.ok
    messages, vault_context = backend.calls[0]
    assert messages == [{"role": "user", "content": "How do checks work?"}]
    assert vault_context == "\n\n## GM Vault Content\n"
    assert [m.role for m in history.messages] == ["user", "assistant"]


def test_send_chat_message_records_error_reply():
    history = ChatHistory()
    backend = _FakeBackend(ChatResult(error="Message limit reached."))

    result = send_chat_message("hello", history, backend, lambda: "")

    assert not result.ok
    assert history.messages[-1].is_error
    assert history.api_messages() == [{"role": "user", "content": "hello"}]


def test_send_chat_message_wraps_backend_exception():
    class _Broken:
        def chat(self, messages, *, vault_context=""):
            raise RuntimeError("boom")

    history = ChatHistory()

    result = send_chat_message("hello", history, _Broken(), lambda: "")

    assert result.error == "boom"
    assert history.messages[-1].is_error
