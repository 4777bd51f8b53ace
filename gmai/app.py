"""
Interactive terminal loop for GM AI.

Plain lines go to the chat backend together with the current vault summary;
lines starting with ``/`` are dispatched to slash commands.
"""

from __future__ import annotations

import logging
import os
import queue
from pathlib import Path
try:
    import readline
except ImportError:  # pragma: no cover
    readline = None
from shutil import get_terminal_size
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.text import Text

from .ai import ChatResult, build_chat_backend
from .chat import MAX_MESSAGES_IN_CONTEXT, UNKNOWN_ERROR, ChatHistory
from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_home_dir,
)
from .logging_utils import setup_logging
from .slash_commands import CommandRouter
from .vault import VaultRuntime, VaultSyncSettings

REPO_ROOT = Path(__file__).resolve().parent.parent
logger = logging.getLogger("gmai")
TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off"}
EMPTY_REPLY = "I was unable to generate a response. Please try again."


def _log_path_within_home(log_path: Path, home_dir: Path) -> bool:
    try:
        log_path.relative_to(home_dir)
        return True
    except ValueError:
        return False


def print_banner() -> None:
    """Print the runtime header."""

    terminal_width = get_terminal_size(fallback=(80, 24)).columns

    def _wide_banner() -> str:
        inner_width = 78
        title = "GM AI :: D&D 5E RULES ASSISTANT"
        slogan = "SRD 5.2 ◇ GM Vault aware"

        def _line(content: str = "") -> str:
            return f"║{content.center(inner_width)}║"

        lines = [
            "╔" + "═" * inner_width + "╗",
            _line(),
            _line(title),
            _line(slogan),
            _line(),
            "╚" + "═" * inner_width + "╝",
        ]
        return "\n".join(lines)

    def _narrow_banner() -> str:
        return "GM AI :: D&D 5e Rules Assistant"

    banner = _wide_banner() if terminal_width >= 80 else _narrow_banner()

    print(banner)
    print("Type a rules question, /help for commands, or 'exit' to quit.")
    print()


def _parse_env_flag(value: str, *, default: bool = True) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_STRINGS:
        return True
    if normalized in FALSE_STRINGS:
        return False
    return default


def _resolve_ui_verbose(config_bundle: ConfigurationBundle) -> bool:
    """Resolve whether the CLI should display the full header or a quiet view."""

    env_value = os.environ.get("GMAI_UI_VERBOSE")
    if env_value is not None:
        return _parse_env_flag(env_value)

    verbose_setting = config_bundle.section("ui").get("verbose")
    if verbose_setting is None:
        return True
    return bool(verbose_setting)


def _resolve_log_level(config_bundle: ConfigurationBundle) -> str:
    configured_level = config_bundle.section("logging").get("level")
    env_level = os.environ.get("GMAI_LOG_LEVEL")
    return str(env_level or configured_level or "WARNING").upper()


def build_router(
    config: ConfigurationBundle,
    metadata: Optional[Dict[str, Any]] = None,
) -> CommandRouter:
    """Create the router and register every slash command."""

    router = CommandRouter(
        config,
        metadata={
            "repo_root": str(REPO_ROOT),
            **(metadata or {}),
        },
    )
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so operators can correct issues quickly."""

    if not config.diagnostics:
        print(
            f"[config] Loaded {len(config.files_loaded)} file(s) "
            f"from repo and home config directories."
        )
        return

    print("[config] Diagnostics:")
    for diag in config.diagnostics:
        prefix = diag.source or config.home_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]")


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for slash commands."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        buffer = readline.get_line_buffer()
        if not buffer.startswith("/"):
            return None
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def execute_cli_command(command_line: str, router: CommandRouter) -> str:
    """Run one slash command line (without the leading ``/``) and print it."""

    stripped = command_line.strip()
    if not stripped:
        return ""

    parts = stripped.split()
    command, args = parts[0], parts[1:]
    result = router.handle(command, args)
    print(result)
    logger.info("Executed CLI command: %s", stripped)
    return result


def send_chat_message(
    text: str,
    history: ChatHistory,
    backend: Any,
    vault_context: Callable[[], str],
) -> ChatResult:
    """Record ``text``, ask the backend and record the reply or error."""

    history.add_user_message(text)
    try:
        result = backend.chat(history.api_messages(), vault_context=vault_context())
    except Exception as exc:
        logger.exception("Chat backend failed")
        result = ChatResult(error=str(exc) or UNKNOWN_ERROR)

    if result.ok:
        history.add_assistant_message(result.content or EMPTY_REPLY)
    else:
        history.add_error_message(result.error)
    return result


def show_reply(console: Console, result: ChatResult, *, verbose: bool = True) -> None:
    """Render an assistant reply as markdown, or an error line."""

    console.print()
    if not result.ok:
        console.print(Text(f"Error: {result.error}", style="bold red"))
        console.print()
        return
    if verbose:
        console.print(Text("[GM AI]", style="bold cyan"))
    console.print(Markdown(result.content or EMPTY_REPLY))
    console.print()


def _vault_context(runtime: Optional[VaultRuntime]) -> str:
    if runtime is None:
        return ""
    return runtime.sync.get_summary()


def main() -> None:
    """Entry point for the `gmai` console script."""

    console = Console()
    home_dir = resolve_home_dir()
    try:
        (home_dir / "config").mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        print(f"[config] Unable to create home directory '{home_dir}': {exc}")

    config_bundle = load_runtime_configuration(home_dir)
    ui_verbose = _resolve_ui_verbose(config_bundle)
    if ui_verbose:
        print_banner()
    else:
        print("[GM AI] ready (quiet mode)")
        print()

    log_path = setup_logging(
        config_bundle.home_dir,
        _resolve_log_level(config_bundle),
        structured=bool(config_bundle.section("logging").get("structured", True)),
    )
    config_bundle.log_path = log_path
    if not _log_path_within_home(log_path, config_bundle.home_dir):
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=(
                    "Home log directory is not writable; "
                    f"logging to fallback path '{log_path}'."
                ),
                source=log_path,
            )
        )
    logger.info("Logging initialized at %s", log_path)
    logger.info("UI verbosity: %s", "enabled" if ui_verbose else "disabled")
    if ui_verbose:
        emit_configuration_report(config_bundle)

    notices: "queue.SimpleQueue[str]" = queue.SimpleQueue()
    runtime = VaultRuntime(settings=VaultSyncSettings.from_config(config_bundle.merged))

    def _on_vault_updated() -> None:
        snapshot = runtime.sync.get_data()
        count = snapshot.page_count if snapshot else 0
        notices.put(f"[vault] Vault updated: {count} page(s) available.")

    runtime.sync.set_on_vault_updated(_on_vault_updated)
    runtime.start()

    chat_cfg = config_bundle.section("chat")
    history = ChatHistory(int(chat_cfg.get("max_context_messages", MAX_MESSAGES_IN_CONTEXT)))
    state: Dict[str, Any] = {"backend": build_chat_backend(config_bundle.merged)}

    def _on_config_reloaded(bundle: ConfigurationBundle) -> None:
        state["backend"] = build_chat_backend(bundle.merged)
        history.max_context_messages = int(
            bundle.section("chat").get("max_context_messages", MAX_MESSAGES_IN_CONTEXT)
        )
        logger.info("Chat backend rebuilt after configuration change")

    router = build_router(
        config_bundle,
        metadata={
            "chat_history": history,
            "vault_runtime": runtime,
            "on_config_reloaded": _on_config_reloaded,
        },
    )
    configure_autocomplete(router)

    try:
        while True:
            while not notices.empty():
                print(notices.get())

            try:
                raw_line = input("> ")
            except (EOFError, KeyboardInterrupt):
                print("\n[Exiting GM AI]")
                break

            if raw_line == "\x0c":  # Ctrl-L (form feed)
                print("\033[2J\033[H", end="")
                if ui_verbose:
                    print_banner()
                continue

            line = raw_line.strip()

            if line.lower() in {"quit", "exit"}:
                print("[Goodbye]")
                break

            if not line:
                continue

            if line.startswith("/"):
                command_line = line[1:]
                if command_line.lower() in {"quit", "exit"}:
                    print("[Goodbye]")
                    break
                execute_cli_command(command_line, router)
                continue

            logger.info("User prompt (%d chars)", len(line))
            if ui_verbose:
                with console.status("[cyan]Thinking…", spinner="dots"):
                    result = send_chat_message(line, history, state["backend"], lambda: _vault_context(runtime))
            else:
                result = send_chat_message(line, history, state["backend"], lambda: _vault_context(runtime))
            show_reply(console, result, verbose=ui_verbose)
    finally:
        runtime.stop()


__all__ = [
    "build_router",
    "configure_autocomplete",
    "emit_configuration_report",
    "execute_cli_command",
    "main",
    "send_chat_message",
    "show_reply",
]
