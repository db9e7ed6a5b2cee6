"""Data models — run configurations and per-process session state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from procdeck.utils.errors import ConfigError

CONFIG_TYPES = ("shell", "gradle", "maven", "node", "docker", "spring-boot")

STATUSES = ("stopped", "starting", "running", "error")

LOG_LEVELS = ("error", "warn", "info", "debug", "unknown")

# camelCase keys accepted for configs exported from the desktop app
_KEY_ALIASES = {
    "workingDir": "working_dir",
    "autoRestart": "auto_restart",
    "restartDelay": "restart_delay",
    "maxRetries": "max_retries",
    "folderId": "folder_id",
}


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RunConfig:
    """A named template describing how to launch a process.

    Attributes:
        id: Stable identifier, also the process id used by the engine.
        name: Display name.
        type: One of ``CONFIG_TYPES``; decides how ``command`` is resolved.
        command: Command text (shell line, build tasks, npm script, ...).
        args: Extra arguments appended after the resolved command.
        working_dir: Directory the process starts in. Empty means cwd.
        env: Extra environment variables.
        auto_restart: Restart automatically after an abnormal exit.
        restart_delay: Milliseconds to wait before an automatic restart.
        max_retries: Consecutive automatic restarts allowed.
        folder_id: Optional folder grouping.
        color: Optional display colour.
    """

    id: str
    name: str
    type: str = "shell"
    command: str = ""
    args: tuple[str, ...] = ()
    working_dir: str = ""
    env: dict[str, str] = field(default_factory=dict)
    auto_restart: bool = False
    restart_delay: int = 1000
    max_retries: int = 3
    folder_id: str | None = None
    color: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunConfig:
        """Build a RunConfig from a YAML mapping.

        Raises:
            ConfigError: On a missing id/name, unknown type or malformed field.
        """
        values = {_KEY_ALIASES.get(key, key): value for key, value in data.items()}
        unknown = set(values) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"Unknown run config keys: {', '.join(sorted(unknown))}")

        config_id = str(values.get("id") or "").strip()
        name = str(values.get("name") or "").strip()
        if not config_id:
            raise ConfigError("Run config is missing 'id'")
        if not name:
            raise ConfigError(f"Run config '{config_id}' is missing 'name'")

        config_type = values.get("type", "shell")
        if config_type not in CONFIG_TYPES:
            raise ConfigError(
                f"Run config '{config_id}' has unknown type '{config_type}' "
                f"(expected one of {', '.join(CONFIG_TYPES)})"
            )

        args = values.get("args") or []
        if isinstance(args, str):
            raise ConfigError(f"Run config '{config_id}': 'args' must be a list")
        env = values.get("env") or {}
        if not isinstance(env, dict):
            raise ConfigError(f"Run config '{config_id}': 'env' must be a mapping")

        try:
            restart_delay = int(values.get("restart_delay", 1000))
            max_retries = int(values.get("max_retries", 3))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Run config '{config_id}': {e}") from e

        return cls(
            id=config_id,
            name=name,
            type=config_type,
            command=str(values.get("command") or ""),
            args=tuple(str(a) for a in args),
            working_dir=str(values.get("working_dir") or ""),
            env={str(k): str(v) for k, v in env.items()},
            auto_restart=bool(values.get("auto_restart", False)),
            restart_delay=restart_delay,
            max_retries=max_retries,
            folder_id=values.get("folder_id"),
            color=values.get("color"),
        )


@dataclass(frozen=True)
class Folder:
    id: str
    name: str


@dataclass
class ProcessState:
    """Lifecycle bookkeeping for one config id.

    Attributes:
        status: One of ``STATUSES``.
        started_at: Epoch milliseconds of the latest start attempt.
        restart_count: Restarts since the entry was created.
        exit_code: Exit code of the last natural termination, if any.
    """

    status: str = "stopped"
    started_at: int = field(default_factory=now_ms)
    restart_count: int = 0
    exit_code: int | None = None


@dataclass(frozen=True)
class ParsedLogLine:
    """One logical output line with its detected level."""

    text: str
    level: str
    index: int
