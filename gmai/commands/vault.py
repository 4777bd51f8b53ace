"""Slash command for the GM Vault integration."""

from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)
from ..vault import DEFAULT_PAGE_ICON, VaultRuntime
from .status import format_timestamp

MAX_PAGE_ROWS = 50
WAIT_FLAGS = {"--wait", "-w"}


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Inspect and refresh the shared vault."""

    runtime: Optional[VaultRuntime] = context.metadata.get("vault_runtime")
    if runtime is None:
        return "[vault] Vault integration is not running."

    if not args:
        return _show_status(runtime)

    subcommand = args[0].lower()
    rest = args[1:]

    if subcommand == "status":
        return _show_status(runtime)
    elif subcommand == "refresh":
        return _refresh(runtime, wait=any(arg.lower() in WAIT_FLAGS for arg in rest))
    elif subcommand == "summary":
        return _show_summary(runtime)
    elif subcommand == "pages":
        return _show_pages(runtime, rest)
    elif subcommand == "invalidate":
        return _invalidate(runtime)
    elif subcommand == "help":
        return _show_help()
    else:
        return f"[vault] Unknown subcommand '{subcommand}'. Use /vault help for usage."


def _show_status(runtime: VaultRuntime) -> str:
    status = runtime.status()

    def _render(console: Console) -> None:
        table = Table(title="GM Vault", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("State", str(status["state"]).upper())
        table.add_row("Room", str(status["room"] or "(none)"))
        table.add_row("Player", str(status["player"]))
        table.add_row("Available", "yes" if status["available"] else "no")
        table.add_row("Pages", str(status["pages"]))
        table.add_row("Categories", str(status["categories"]))
        table.add_row("Last update", format_timestamp(status["last_update"]))
        table.add_row("Polling", "yes" if status["polling"] else "no")

        console.print(table)

    return render_rich(_render)


def _refresh(runtime: VaultRuntime, *, wait: bool) -> str:
    try:
        found = runtime.refresh(wait_for_reply=True if wait else None)
    except FutureTimeoutError:
        return "[vault] Refresh timed out."
    except RuntimeError as exc:
        return f"[vault] Refresh failed: {exc}"

    snapshot = runtime.sync.get_data()
    if found and snapshot is not None:
        return (
            f"[vault] Vault refreshed: {snapshot.page_count} page(s) "
            f"in {snapshot.category_count} categories."
        )
    return "[vault] No vault data yet. Open GM Vault in the room and save to publish it."


def _invalidate(runtime: VaultRuntime) -> str:
    try:
        found = runtime.invalidate()
    except FutureTimeoutError:
        return "[vault] Reload timed out."
    except RuntimeError as exc:
        return f"[vault] Reload failed: {exc}"
    if found:
        return "[vault] Cache cleared and vault reloaded."
    return "[vault] Cache cleared; no vault data available."


def _show_summary(runtime: VaultRuntime) -> str:
    summary = runtime.sync.get_summary()
    if not summary:
        return "[vault] No vault pages available."
    return summary.strip()


def _show_pages(runtime: VaultRuntime, args: List[str]) -> str:
    snapshot = runtime.sync.get_data()
    if snapshot is None or not snapshot.pages:
        return "[vault] No vault pages available."

    search = " ".join(args).strip().lower()
    pages = [
        page
        for page in snapshot.pages
        if not search or search in page.title.lower() or search in page.category.lower()
    ]
    if not pages:
        return f"[vault] No pages matching '{search}'."

    def _render(console: Console) -> None:
        table = Table(title=f"Vault Pages ({len(pages)})", show_header=True)
        table.add_column("Category", style="cyan")
        table.add_column("Page")
        table.add_column("Link", style="dim", overflow="fold")

        ordered = sorted(pages, key=lambda page: (page.category, page.title))
        for page in ordered[:MAX_PAGE_ROWS]:
            table.add_row(page.category, f"{page.icon or DEFAULT_PAGE_ICON} {page.title}", page.url or "")

        if len(pages) > MAX_PAGE_ROWS:
            console.print(f"(showing first {MAX_PAGE_ROWS} of {len(pages)} pages)")

        console.print(table)

    return render_rich(_render)


def _show_help() -> str:
    """Show vault command help."""
    return """[vault] GM Vault integration

Usage:
  /vault              Show vault status
  /vault status       Show vault status
  /vault refresh      Re-read shared state and ask the GM for the vault
  /vault refresh --wait
                      Same, and wait briefly for a live reply
  /vault summary      Show the text appended to the system prompt
  /vault pages [TEXT] List pages, optionally filtered by title or category
  /vault invalidate   Drop the cache and reload from every source
  /vault help         Show this help

The GM publishes the vault from the GM Vault extension in the same room.
Set vault.room_dir to the shared room directory."""


COMMAND = SlashCommand(
    name="vault",
    description="Inspect and refresh the GM Vault. Usage: /vault [status|refresh|summary|pages|invalidate]",
    handler=_handler,
)
