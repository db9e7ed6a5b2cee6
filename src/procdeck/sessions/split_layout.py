"""Split layout — which processes occupy panes in the multi-view."""

from __future__ import annotations

from procdeck.utils.logger import get_logger

logger = get_logger("procdeck.sessions.split_layout")

SPLIT_CAPACITY = {
    "single": 1,
    "horizontal-2": 2,
    "vertical-2": 2,
    "grid-4": 4,
}


class SplitLayout:
    """Ordered pane membership with a per-mode capacity.

    Capacity is only checked when adding a pane. Shrinking the mode keeps
    existing members so nothing visible disappears unexpectedly; ``single``
    is the exception and always empties the list.
    """

    def __init__(self) -> None:
        self.mode: str = "single"
        self._members: list[str] = []

    @property
    def capacity(self) -> int:
        return SPLIT_CAPACITY[self.mode]

    @property
    def members(self) -> list[str]:
        return list(self._members)

    @property
    def empty_slots(self) -> int:
        """Placeholder panes to draw next to the members."""
        return max(0, self.capacity - len(self._members))

    def contains(self, process_id: str) -> bool:
        return process_id in self._members

    def set_mode(self, mode: str, active_id: str | None = None) -> None:
        """Switch layout mode.

        Args:
            mode: One of ``SPLIT_CAPACITY``.
            active_id: Currently selected process, used to seed an empty
                multi-pane layout.

        Raises:
            ValueError: For an unknown mode.
        """
        if mode not in SPLIT_CAPACITY:
            raise ValueError(
                f"Unknown split mode '{mode}' (expected one of {', '.join(SPLIT_CAPACITY)})"
            )
        self.mode = mode
        if mode == "single":
            self._members = []
        elif not self._members and active_id:
            self._members = [active_id]
        logger.debug(f"Split mode {mode}, members={self._members}")

    def toggle(self, process_id: str) -> bool:
        """Remove ``process_id`` if present, otherwise add it if a pane is free.

        Returns:
            ``True`` if membership changed, ``False`` if the layout was full.
        """
        if process_id in self._members:
            self._members.remove(process_id)
            return True
        if len(self._members) < self.capacity:
            self._members.append(process_id)
            return True
        return False
