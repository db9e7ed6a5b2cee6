"""Filter view — per-process severity filters over buffered output."""

from __future__ import annotations

from dataclasses import dataclass, fields

from procdeck.sessions.classifier import normalize_level, parse_log_lines
from procdeck.sessions.models import ParsedLogLine
from procdeck.sessions.output_buffer import OutputBuffer


@dataclass
class LevelFilter:
    """One flag per log level; all levels shown by default."""

    error: bool = True
    warn: bool = True
    info: bool = True
    debug: bool = True
    unknown: bool = True

    def set(self, level: str, enabled: bool) -> None:
        setattr(self, normalize_level(level), enabled)

    def levels(self) -> frozenset[str]:
        return frozenset(f.name for f in fields(self) if getattr(self, f.name))


@dataclass
class FilterState:
    enabled: bool = False
    levels: LevelFilter | None = None


class FilterView:
    """Track filter settings per process and render filtered lines.

    Rendering re-parses the whole buffer, so results are cached per process
    and reused while the buffer length, clear generation and active levels
    are unchanged.
    """

    def __init__(self) -> None:
        self._states: dict[str, FilterState] = {}
        self._cache: dict[str, tuple[tuple, list[ParsedLogLine]]] = {}

    def _state(self, process_id: str) -> FilterState:
        state = self._states.get(process_id)
        if state is None:
            state = FilterState()
            self._states[process_id] = state
        return state

    def _levels(self, process_id: str) -> LevelFilter:
        state = self._state(process_id)
        if state.levels is None:
            state.levels = LevelFilter()
        return state.levels

    def is_enabled(self, process_id: str) -> bool:
        state = self._states.get(process_id)
        return state.enabled if state else False

    def active_levels(self, process_id: str) -> frozenset[str]:
        state = self._states.get(process_id)
        if state is None or state.levels is None:
            return LevelFilter().levels()
        return state.levels.levels()

    def toggle_filter_mode(self, process_id: str) -> bool:
        """Flip filter mode for a process and return the new value."""
        state = self._state(process_id)
        state.enabled = not state.enabled
        self._levels(process_id)
        return state.enabled

    def set_level(self, process_id: str, level: str, enabled: bool) -> None:
        """Show or hide one level without touching the others.

        Raises:
            ValueError: For an unknown level name.
        """
        self._levels(process_id).set(level, enabled)

    def render(self, process_id: str, buffer: OutputBuffer) -> list[ParsedLogLine]:
        """Classified lines of ``buffer`` whose level is currently shown."""
        levels = self.active_levels(process_id)
        key = (buffer.chunk_count, buffer.clear_generation, levels)
        cached = self._cache.get(process_id)
        if cached is not None and cached[0] == key:
            return list(cached[1])

        lines = [
            line for line in parse_log_lines(buffer.chunks) if line.level in levels
        ]
        self._cache[process_id] = (key, lines)
        return list(lines)
