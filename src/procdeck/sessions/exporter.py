"""Log export helpers — default file names and writing exported text."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9\-_]")


def default_export_filename(config_name: str, now: datetime | None = None) -> str:
    """Suggest a log file name for a config, e.g. ``My_App-2024-05-01T12-30-00.log``.

    Args:
        config_name: Display name of the run config.
        now: Timestamp to embed; defaults to the current time.
    """
    now = now or datetime.now()
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    return f"{_UNSAFE_NAME_RE.sub('_', config_name)}-{timestamp}.log"


def write_export(path: str | Path, content: str) -> Path:
    """Write exported log text as UTF-8, creating parent directories.

    OS errors (permissions, full disk) are raised to the caller.
    """
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return target
