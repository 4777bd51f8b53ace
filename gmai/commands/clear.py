"""Slash command that starts a fresh conversation."""

from __future__ import annotations

from typing import List

from ..slash_commands import SlashCommand, SlashCommandContext


def _handler(context: SlashCommandContext, _: List[str]) -> str:
    history = context.metadata.get("chat_history")
    if history is None:
        return "[clear] No conversation to clear."
    removed = len(history)
    history.clear()
    return f"[clear] Conversation cleared ({removed} message(s) removed)."


COMMAND = SlashCommand(
    name="clear",
    description="Clear the current conversation.",
    handler=_handler,
)
