"""Execution engine interface — what the session core needs from a process host."""

from __future__ import annotations

from typing import Callable, Protocol

OutputCallback = Callable[[str, str], None]
ExitCallback = Callable[[str, "int | None"], None]
Unsubscribe = Callable[[], None]


class ExecutionEngine(Protocol):
    """Runs processes in pseudo-terminals, addressed by config id.

    ``spawn`` raises ``SpawnError`` when the command cannot be launched and
    ``kill`` raises ``ProcessNotFoundError`` when nothing is running for the
    id. Output and exit notifications are delivered to subscribers; output
    arrives in order per id and exit exactly once per spawned lifetime.
    """

    async def spawn(
        self,
        process_id: str,
        command: str,
        args: list[str],
        working_dir: str,
        env: dict[str, str],
    ) -> None: ...

    async def kill(self, process_id: str) -> None: ...

    async def write(self, process_id: str, data: str) -> None: ...

    async def resize(self, process_id: str, cols: int, rows: int) -> None: ...

    def subscribe(
        self, on_output: OutputCallback, on_exit: ExitCallback
    ) -> Unsubscribe: ...
