"""Exception types and the repeated-failure error handler."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from procdeck.utils.logger import get_logger

logger = get_logger("procdeck.utils.errors")

ESCALATION_THRESHOLD = 5
RESET_INTERVAL_S = 300


class ProcdeckError(Exception):
    """Base class for procdeck errors."""


class ConfigError(ProcdeckError):
    """A run configuration or config file is invalid."""


class EngineError(ProcdeckError):
    """The execution engine rejected a request."""

    def __init__(self, process_id: str, message: str) -> None:
        super().__init__(f"[{process_id}] {message}")
        self.process_id = process_id
        self.message = message


class SpawnError(EngineError):
    """The engine could not launch the process (bad path, permissions, cwd)."""


class ProcessNotFoundError(EngineError):
    """The engine has no live process for the id."""


EscalationHook = Callable[[str, str, int], Awaitable[None]]


class ErrorHandler:
    """Log engine failures, count them per type, escalate repeats."""

    def __init__(self, on_escalate: EscalationHook | None = None) -> None:
        self.on_escalate = on_escalate
        self.error_counts: dict[str, int] = {}
        self._reset_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the periodic count reset."""
        self._reset_task = asyncio.create_task(self._periodic_reset())

    async def stop(self) -> None:
        if self._reset_task:
            self._reset_task.cancel()

    async def handle(self, error: Exception, context: str) -> None:
        error_type = type(error).__name__
        count = self.error_counts.get(error_type, 0) + 1
        self.error_counts[error_type] = count

        logger.error(f"[{context}] {error_type}: {error}")

        if count == ESCALATION_THRESHOLD:
            await self._escalate(error_type, context, count)

    async def _escalate(self, error_type: str, context: str, count: int) -> None:
        logger.warning(f"{error_type} seen {count} times (last in {context})")
        if self.on_escalate is None:
            return
        try:
            await self.on_escalate(error_type, context, count)
        except Exception:
            logger.exception(f"Escalation hook failed for {error_type}")

    async def _periodic_reset(self) -> None:
        while True:
            await asyncio.sleep(RESET_INTERVAL_S)
            self.error_counts.clear()
