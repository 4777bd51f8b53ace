"""Slash command registry."""

from __future__ import annotations

from .clear import COMMAND as CLEAR_COMMAND
from .config import COMMAND as CONFIG_COMMAND
from .help import COMMAND as HELP_COMMAND
from .history import COMMAND as HISTORY_COMMAND
from .status import COMMAND as STATUS_COMMAND
from .vault import COMMAND as VAULT_COMMAND

COMMANDS = [
    STATUS_COMMAND,
    HELP_COMMAND,
    CLEAR_COMMAND,
    CONFIG_COMMAND,
    HISTORY_COMMAND,
    VAULT_COMMAND,
]

__all__ = ["COMMANDS"]
