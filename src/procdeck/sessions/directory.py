"""Session directory — the single mutation surface over all process sessions."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from procdeck.engine.base import ExecutionEngine, Unsubscribe
from procdeck.sessions.exporter import default_export_filename, write_export
from procdeck.sessions.filter_view import FilterView
from procdeck.sessions.lifecycle import DEFAULT_SETTLE_DELAY_S, LifecycleController
from procdeck.sessions.models import ParsedLogLine, ProcessState, RunConfig
from procdeck.sessions.output_buffer import OutputBuffer
from procdeck.sessions.split_layout import SplitLayout
from procdeck.utils.errors import ErrorHandler
from procdeck.utils.logger import get_logger

logger = get_logger("procdeck.sessions.directory")

DEFAULT_START_ALL_DELAY_S = 0.5

# Receives the suggested file name, returns the chosen path or None if cancelled.
PathChooser = Callable[[str], Awaitable["str | Path | None"]]


class SessionDirectory:
    """Aggregate of lifecycle state, output buffers, filters and split layout.

    Everything the UI changes goes through this class, on one event loop.
    The engine's output and exit events are wired in by ``attach()`` and
    released by ``close()``.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        settle_delay: float = DEFAULT_SETTLE_DELAY_S,
        start_all_delay: float = DEFAULT_START_ALL_DELAY_S,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._engine = engine
        self.lifecycle = LifecycleController(
            engine, settle_delay=settle_delay, error_handler=error_handler
        )
        self.filters = FilterView()
        self.split = SplitLayout()
        self.start_all_delay = start_all_delay
        self.active_config_id: str | None = None
        self._buffers: dict[str, OutputBuffer] = {}
        self._unsubscribe: Unsubscribe | None = None

    async def __aenter__(self) -> SessionDirectory:
        self.attach()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Engine subscription ──

    def attach(self) -> None:
        """Subscribe to engine output/exit events (once)."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._engine.subscribe(self.append, self.lifecycle.handle_exit)
        logger.debug("Subscribed to engine events")

    async def close(self) -> None:
        """Release the engine subscription and cancel automatic restarts."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.debug("Unsubscribed from engine events")
        await self.lifecycle.close()

    # ── Selection ──

    def set_active(self, process_id: str | None) -> None:
        self.active_config_id = process_id

    # ── Lifecycle ──

    async def start(self, config: RunConfig) -> ProcessState | None:
        self._buffer(config.id)
        return await self.lifecycle.start(config)

    async def stop(self, process_id: str) -> ProcessState | None:
        return await self.lifecycle.stop(process_id)

    async def restart(self, config: RunConfig) -> ProcessState:
        self._buffer(config.id)
        return await self.lifecycle.restart(config)

    async def start_all(self, configs: Iterable[RunConfig]) -> None:
        """Start every config that is not already running, one at a time."""
        for config in configs:
            state = self.lifecycle.get(config.id)
            if state is not None and state.status == "running":
                continue
            await self.start(config)
            await asyncio.sleep(self.start_all_delay)

    async def stop_all(self) -> None:
        """Stop every process that is starting or running."""
        for process_id, state in self.lifecycle.states().items():
            if state.status in ("starting", "running"):
                await self.stop(process_id)

    def get_state(self, process_id: str) -> ProcessState | None:
        return self.lifecycle.get(process_id)

    def states(self) -> dict[str, ProcessState]:
        return self.lifecycle.states()

    def running_count(self) -> int:
        return self.lifecycle.running_count()

    # ── Terminal I/O ──

    async def write(self, process_id: str, data: str) -> None:
        try:
            await self._engine.write(process_id, data)
        except Exception as e:
            logger.warning(f"Write to {process_id} failed: {e}")

    async def resize(self, process_id: str, cols: int, rows: int) -> None:
        try:
            await self._engine.resize(process_id, cols, rows)
        except Exception as e:
            logger.warning(f"Resize of {process_id} failed: {e}")

    # ── Output ──

    def _buffer(self, process_id: str) -> OutputBuffer:
        buffer = self._buffers.get(process_id)
        if buffer is None:
            buffer = OutputBuffer()
            self._buffers[process_id] = buffer
        return buffer

    def append(self, process_id: str, data: str) -> None:
        self._buffer(process_id).append(data)

    def clear(self, process_id: str) -> None:
        self._buffer(process_id).clear()

    def raw_output(self, process_id: str) -> str:
        buffer = self._buffers.get(process_id)
        return buffer.text() if buffer else ""

    def clear_generation(self, process_id: str) -> int:
        buffer = self._buffers.get(process_id)
        return buffer.clear_generation if buffer else 0

    def export(self, process_id: str) -> str | None:
        """Plain-text output for ``process_id``, or None if nothing is buffered."""
        buffer = self._buffers.get(process_id)
        return buffer.export_text() if buffer else None

    async def export_logs(
        self, process_id: str, config_name: str, path_chooser: PathChooser
    ) -> Path | None:
        """Ask for a destination and save the plain-text log there.

        Returns:
            The written path, or None if there was nothing to export or the
            chooser was cancelled. Write errors are raised.
        """
        content = self.export(process_id)
        if content is None:
            logger.info(f"Nothing to export for {process_id}")
            return None

        chosen = await path_chooser(default_export_filename(config_name))
        if not chosen:
            return None

        path = await asyncio.to_thread(write_export, chosen, content)
        logger.info(f"Exported {len(content)} chars of {process_id} output to {path}")
        return path

    # ── Filtering ──

    def toggle_filter_mode(self, process_id: str) -> bool:
        return self.filters.toggle_filter_mode(process_id)

    def set_level(self, process_id: str, level: str, enabled: bool) -> None:
        self.filters.set_level(process_id, level, enabled)

    def filtered_lines(self, process_id: str) -> list[ParsedLogLine]:
        buffer = self._buffers.get(process_id)
        if buffer is None:
            return []
        return self.filters.render(process_id, buffer)

    # ── Split layout ──

    def set_split_mode(self, mode: str) -> None:
        active = self.active_config_id
        if active is not None and not self.lifecycle.knows(active):
            active = None
        self.split.set_mode(mode, active)

    def toggle_split_member(self, process_id: str) -> bool:
        """Add or remove a pane; unknown processes are refused."""
        if not self.lifecycle.knows(process_id):
            logger.warning(f"Cannot show {process_id} in split view: never started")
            return False
        return self.split.toggle(process_id)
