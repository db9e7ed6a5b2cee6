"""Output buffer — append-only raw chunk store with clear generations."""

from __future__ import annotations

import re

_OSC_RE = re.compile(r"\x1B\][^\x07\x1B]*(?:\x07|\x1B\\)")
_ANSI_RE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")


class OutputBuffer:
    """Raw output chunks for one process, in arrival order.

    ``clear_generation`` increases on every ``clear()`` so renderers that
    remember the generation they drew can tell when to reset.
    """

    def __init__(self) -> None:
        self.chunks: list[str] = []
        self.clear_generation: int = 0

    def append(self, chunk: str) -> None:
        self.chunks.append(chunk)

    def clear(self) -> None:
        """Drop everything written so far and bump the generation."""
        self.chunks = []
        self.clear_generation += 1

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    def is_empty(self) -> bool:
        return not self.chunks

    def text(self) -> str:
        """Raw buffered output, escape sequences included."""
        return "".join(self.chunks)

    def export_text(self) -> str | None:
        """Plain-text rendition of the buffer for saving to a file.

        Returns:
            The concatenated output with escape and control sequences
            removed, or ``None`` when there is nothing to export.
        """
        if self.is_empty():
            return None
        return self._strip_ansi(self.text())

    @staticmethod
    def _strip_ansi(text: str) -> str:
        """Remove ANSI escapes (colours, cursor moves, titles) and stray controls.

        Newlines and tabs survive; ``\\r\\n`` becomes ``\\n``.
        """
        text = _OSC_RE.sub("", text)
        text = _ANSI_RE.sub("", text)
        text = text.replace("\r\n", "\n")
        return _CONTROL_RE.sub("", text)
