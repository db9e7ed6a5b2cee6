"""Configuration loader — .env overrides + config.yaml run configs and settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from procdeck.sessions.models import Folder, RunConfig
from procdeck.utils.errors import ConfigError

# Paths
PROCDECK_HOME = Path.home() / ".procdeck"
ENV_PATH = PROCDECK_HOME / ".env"
DEFAULT_CONFIG_PATH = PROCDECK_HOME / "config.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        return data
    return {}


class Config:
    """Singleton configuration loaded from .env + config.yaml."""

    _instance: Config | None = None

    def __new__(cls) -> Config:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._loaded = False
        return cls._instance

    def load(self, config_path: str | Path | None = None) -> None:
        if self._loaded:
            return
        load_dotenv(ENV_PATH)

        self.log_level: str = os.environ.get("PROCDECK_LOG_LEVEL", "INFO")
        path = config_path or os.environ.get("PROCDECK_CONFIG") or DEFAULT_CONFIG_PATH
        self.config_path: Path = Path(path).expanduser()

        self._yaml = _load_yaml(self.config_path)

        self._loaded = True

    def validate(self) -> list[str]:
        """Return a list of problems with the run config definitions."""
        problems = []
        seen: set[str] = set()
        for raw in self._yaml.get("configs", []) or []:
            if not isinstance(raw, dict):
                problems.append(f"Run config entry is not a mapping: {raw!r}")
                continue
            try:
                config = RunConfig.from_dict(raw)
            except ConfigError as e:
                problems.append(str(e))
                continue
            if config.id in seen:
                problems.append(f"Duplicate run config id '{config.id}'")
            seen.add(config.id)
        folder_ids = {f.id for f in self.folders}
        for raw in self._yaml.get("configs", []) or []:
            folder_id = raw.get("folder_id", raw.get("folderId")) if isinstance(raw, dict) else None
            if folder_id and folder_id not in folder_ids:
                problems.append(f"Run config '{raw.get('id')}' references unknown folder '{folder_id}'")
        return problems

    # ── Run configs ──

    @property
    def run_configs(self) -> list[RunConfig]:
        """Parsed run configs. Raises ConfigError on an invalid entry."""
        return [RunConfig.from_dict(raw) for raw in self._yaml.get("configs", []) or []]

    @property
    def folders(self) -> list[Folder]:
        return [
            Folder(id=str(raw["id"]), name=str(raw.get("name", raw["id"])))
            for raw in self._yaml.get("folders", []) or []
            if isinstance(raw, dict) and raw.get("id")
        ]

    def find_run_config(self, key: str) -> RunConfig | None:
        """Look a run config up by id, then by name (case-insensitive)."""
        configs = self.run_configs
        for config in configs:
            if config.id == key:
                return config
        key_lower = key.lower()
        for config in configs:
            if config.name.lower() == key_lower:
                return config
        return None

    # ── Typed accessors ──

    @property
    def sessions_config(self) -> dict[str, Any]:
        return self._yaml.get("sessions", {})

    @property
    def restart_settle_s(self) -> float:
        return self.sessions_config.get("restart_settle_ms", 300) / 1000

    @property
    def start_all_delay_s(self) -> float:
        return self.sessions_config.get("start_all_delay_ms", 500) / 1000

    @property
    def engine_config(self) -> dict[str, Any]:
        return self._yaml.get("engine", {})

    @property
    def tmux_socket_name(self) -> str:
        return self.engine_config.get("socket_name", "procdeck")

    @property
    def tmux_session_prefix(self) -> str:
        return self.engine_config.get("session_prefix", "procdeck")

    @property
    def poll_interval_s(self) -> float:
        return self.engine_config.get("poll_interval_ms", 250) / 1000

    @property
    def output_dir(self) -> str:
        return self.engine_config.get("output_dir", str(PROCDECK_HOME / "output"))

    @property
    def logging_config(self) -> dict[str, Any]:
        return self._yaml.get("logging", {})

    @property
    def export_dir(self) -> str:
        return self._yaml.get("export", {}).get("dir", "~/procdeck-logs")


def get_config(config_path: str | Path | None = None) -> Config:
    """Get the singleton config, loading it if needed."""
    cfg = Config()
    cfg.load(config_path)
    return cfg

