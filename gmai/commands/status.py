"""Slash command for runtime status."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..slash_commands import SlashCommand, SlashCommandContext, render_rich

SECTION_ALIASES: Dict[str, Sequence[str]] = {
    "info": ("info", "summary"),
    "vault": ("vault",),
    "diagnostics": ("diagnostics", "diag", "diags"),
}
DEFAULT_MAX_ROWS = 5


def _resolve_sections(args: Iterable[str]) -> Tuple[List[str], bool]:
    """Return sections to render and whether all rows should be shown."""

    normalized = [arg.strip().lower() for arg in args]
    show_all = any(arg in {"--all", "-a", "all"} for arg in normalized)

    requested: List[str] = []
    for section, aliases in SECTION_ALIASES.items():
        if any(arg in aliases for arg in normalized):
            requested.append(section)

    if not requested:
        requested = list(SECTION_ALIASES.keys())

    return requested, show_all


def _add_rows_with_limit(
    table: Table,
    rows: Sequence[Sequence[str]],
    *,
    max_rows: int,
) -> Tuple[int, bool]:
    """Append up to max_rows rows and return total + truncated flag."""

    for row in rows[:max_rows]:
        table.add_row(*row)

    return len(rows), len(rows) > max_rows


def format_timestamp(value: float | None) -> str:
    if not value:
        return "(never)"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    config = context.config
    sections, show_all = _resolve_sections(args)
    api_cfg = config.section("api")

    def _render_summary(console: Console) -> None:
        info = Table.grid(padding=(0, 1))
        info.add_column("Key", style="bold", no_wrap=True)
        info.add_column("Value", overflow="fold")
        info.add_row("Home", str(config.home_dir))
        info.add_row("Status", config.status)
        info.add_row("Config files", str(len(config.files_loaded)))
        info.add_row("Log path", str(config.log_path or "(not initialized)"))
        info.add_row("Backend", str(api_cfg.get("backend", "proxy")))
        info.add_row("Backend URL", str(api_cfg.get("base_url") or "(not configured)"))
        info.add_row("Model", str(api_cfg.get("model") or "(default)"))
        history = context.metadata.get("chat_history")
        info.add_row("Messages", str(len(history) if history is not None else 0))

        console.print(
            Panel(
                info,
                title="Runtime Status",
                border_style="green",
                padding=(0, 1),
            )
        )

    def _render_vault(console: Console) -> None:
        runtime = context.metadata.get("vault_runtime")
        if runtime is None:
            console.print(Panel("[yellow]Vault integration not started.", title="Vault", border_style="blue"))
            return

        status = runtime.status()
        info = Table.grid(padding=(0, 1))
        info.add_column("Key", style="bold", no_wrap=True)
        info.add_column("Value", overflow="fold")
        info.add_row("State", str(status["state"]).upper())
        info.add_row("Room", str(status["room"] or "(none)"))
        info.add_row("Player", str(status["player"]))
        info.add_row("Available", "yes" if status["available"] else "no")
        info.add_row("Pages", str(status["pages"]))
        info.add_row("Categories", str(status["categories"]))
        info.add_row("Last update", format_timestamp(status["last_update"]))
        info.add_row("Polling", "yes" if status["polling"] else "no")
        console.print(Panel(info, title="Vault", border_style="blue", padding=(0, 1)))

    def _render_diagnostics(console: Console) -> None:
        if not config.diagnostics:
            console.print(Panel("[green]No diagnostics reported.", title="Diagnostics", border_style="red"))
            return

        diag_table = Table(
            show_header=True,
            header_style="bold red",
            box=box.SIMPLE,
            pad_edge=False,
        )
        diag_table.add_column("Lvl", style="red", no_wrap=True)
        diag_table.add_column("Message", overflow="fold", ratio=2)
        diag_table.add_column("Source", overflow="fold", ratio=2)

        max_rows = len(config.diagnostics) if show_all else DEFAULT_MAX_ROWS
        rows = [
            (
                diag.level.upper(),
                diag.message,
                str(diag.source or config.home_dir),
            )
            for diag in config.diagnostics
        ]
        total_rows, truncated = _add_rows_with_limit(diag_table, rows, max_rows=max_rows)

        console.print(
            Panel(
                diag_table,
                title="Diagnostics",
                border_style="red",
                padding=(0, 1),
            )
        )
        if truncated:
            console.print(
                f"\n[dim]Showing {max_rows}/{total_rows}. "
                "Use '/status diagnostics --all' for the full list.[/dim]"
            )

    renderers = {
        "info": _render_summary,
        "vault": _render_vault,
        "diagnostics": _render_diagnostics,
    }

    def _render(console: Console) -> None:
        for section in sections:
            renderers[section](console)

    return render_rich(_render)


COMMAND = SlashCommand(
    name="status",
    description="Show backend, vault, logging, and configuration diagnostics.",
    handler=_handler,
)
