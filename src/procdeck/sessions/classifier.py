"""Log level detection — classify output lines by severity."""

from __future__ import annotations

import re
from typing import Iterable

from procdeck.sessions.models import LOG_LEVELS, ParsedLogLine

ERROR_PATTERNS = [
    r"\b(?:ERROR|FATAL|SEVERE|CRITICAL)\b",
    r"\[ERROR\]",
    r"\[FATAL\]",
    r"error:",
    r"exception:",
    r"failed:",
    r"failure:",
]

WARN_PATTERNS = [
    r"\b(?:WARN|WARNING)\b",
    r"\[WARN\]",
    r"\[WARNING\]",
    r"warning:",
]

INFO_PATTERNS = [
    r"\bINFO\b",
    r"\[INFO\]",
    r"info:",
]

DEBUG_PATTERNS = [
    r"\b(?:DEBUG|TRACE|VERBOSE)\b",
    r"\[DEBUG\]",
    r"\[TRACE\]",
    r"debug:",
]

# Checked in this order; the first bucket with a match wins.
LEVEL_PATTERNS: list[tuple[str, list[str]]] = [
    ("error", ERROR_PATTERNS),
    ("warn", WARN_PATTERNS),
    ("info", INFO_PATTERNS),
    ("debug", DEBUG_PATTERNS),
]

LEVEL_STYLES = {
    "error": "red",
    "warn": "yellow",
    "info": "blue",
    "debug": "grey50",
    "unknown": "default",
}

_LINE_BREAK_RE = re.compile(r"\r?\n")

_COMPILED: dict[str, list[re.Pattern]] = {}


def _compile(level: str, patterns: list[str]) -> list[re.Pattern]:
    if level not in _COMPILED:
        _COMPILED[level] = [re.compile(p, re.IGNORECASE | re.ASCII) for p in patterns]
    return _COMPILED[level]


def classify(line: str) -> str:
    """Return the log level of a single line.

    One of ``'error'``, ``'warn'``, ``'info'``, ``'debug'`` or ``'unknown'``.
    """
    for level, patterns in LEVEL_PATTERNS:
        for compiled in _compile(level, patterns):
            if compiled.search(line):
                return level
    return "unknown"


def split_lines(chunks: Iterable[str]) -> list[str]:
    """Split a stream of arbitrarily sized chunks into logical lines.

    Lines end at ``\\n`` or ``\\r\\n``; a line may span several chunks. A
    trailing line without a terminator is still returned. Empty lines are
    dropped.
    """
    text = "".join(chunks)
    return [line for line in _LINE_BREAK_RE.split(text) if line]


def parse_log_lines(chunks: Iterable[str]) -> list[ParsedLogLine]:
    """Split ``chunks`` into lines and classify each one.

    Indexes start at 0 and increase by one per emitted line.
    """
    return [
        ParsedLogLine(text=line, level=classify(line), index=index)
        for index, line in enumerate(split_lines(chunks))
    ]


def normalize_level(level: str) -> str:
    """Validate and lower-case a level name.

    Raises:
        ValueError: If ``level`` is not a known level.
    """
    normalized = level.strip().lower()
    if normalized == "warning":
        normalized = "warn"
    if normalized not in LOG_LEVELS:
        raise ValueError(
            f"Unknown log level '{level}' (expected one of {', '.join(LOG_LEVELS)})"
        )
    return normalized
