"""Slash command for displaying the chat transcript."""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.table import Table

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)

PREVIEW_CHARS = 80


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Display the conversation with optional filtering."""

    history = context.metadata.get("chat_history")
    messages = list(history.messages) if history is not None else []

    search_term = None
    limit = 20

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-n", "--limit") and i + 1 < len(args):
            try:
                limit = int(args[i + 1])
            except ValueError:
                return f"[history] invalid limit '{args[i + 1]}'."
            i += 2
        elif arg in ("-s", "--search") and i + 1 < len(args):
            search_term = args[i + 1]
            i += 2
        elif not arg.startswith("-"):
            search_term = arg
            i += 1
        else:
            i += 1

    if not messages:
        return "[history] No messages in this conversation yet."

    filtered = messages
    if search_term:
        search_lower = search_term.lower()
        filtered = [m for m in messages if search_lower in m.content.lower()]

    if not filtered:
        return f"[history] No messages matching '{search_term}' found."

    # Keep the most recent messages.
    filtered = filtered[-limit:] if limit > 0 else filtered

    def _render(console: Console) -> None:
        table = Table(
            title=f"Conversation (showing {len(filtered)} of {len(messages)})",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("#", style="dim", width=4)
        table.add_column("Role", style="green", no_wrap=True)
        table.add_column("Message", overflow="fold")

        for idx, message in enumerate(filtered, 1):
            preview = message.content[:PREVIEW_CHARS].replace("\n", " ").strip()
            if len(message.content) > PREVIEW_CHARS:
                preview += "..."
            role = "error" if message.is_error else message.role
            table.add_row(str(idx), role, preview)

        console.print(table)

    return render_rich(_render)


COMMAND = SlashCommand(
    name="history",
    description="Show the conversation. Usage: /history [-n LIMIT] [-s SEARCH]",
    handler=_handler,
)
