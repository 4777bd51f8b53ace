"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Tuple

import pytest


def vault_config(*titles: str, category: str = "Notes") -> Dict[str, Any]:
    """Build a one-category vault payload with the given page titles."""

    return {
        "categories": [
            {
                "name": category,
                "pages": [{"id": str(idx), "title": title} for idx, title in enumerate(titles)],
            }
        ]
    }


async def drain(rounds: int = 10) -> None:
    """Let ready callbacks and tasks on the running loop execute."""

    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Virtual time for code that takes an injectable ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._waiters: List[Tuple[float, "asyncio.Future[None]"]] = []

    async def sleep(self, delay: float) -> None:
        entry = (self.now + delay, asyncio.get_running_loop().create_future())
        self._waiters.append(entry)
        try:
            await entry[1]
        finally:
            if entry in self._waiters:
                self._waiters.remove(entry)

    @property
    def pending(self) -> int:
        return sum(1 for _, future in self._waiters if not future.done())

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await drain()
        while True:
            due = [entry for entry in self._waiters if entry[0] <= target and not entry[1].done()]
            if not due:
                break
            deadline = min(when for when, _ in due)
            self.now = deadline
            for entry in list(self._waiters):
                when, future = entry
                if when <= deadline and not future.done():
                    self._waiters.remove(entry)
                    future.set_result(None)
            await drain()
        self.now = target
        await drain()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_gmai_logger():
    """Undo ``setup_logging`` so records reach pytest's capture handler."""

    yield
    logger = logging.getLogger("gmai")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
