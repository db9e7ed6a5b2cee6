"""Console entry point — start run configs and stream their output until interrupted."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text

from procdeck.config import PROCDECK_HOME, Config, get_config
from procdeck.engine.tmux import TmuxEngine
from procdeck.sessions.classifier import LEVEL_STYLES, normalize_level
from procdeck.sessions.directory import SessionDirectory
from procdeck.sessions.models import LOG_LEVELS, RunConfig
from procdeck.sessions.split_layout import SPLIT_CAPACITY
from procdeck.utils.errors import ConfigError, ErrorHandler
from procdeck.utils.logger import get_logger, setup_logging

logger = get_logger("procdeck.main")

STATUS_STYLES = {
    "stopped": "grey50",
    "starting": "yellow",
    "running": "green",
    "error": "bold red",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="procdeck",
        description="Run named process configurations and follow their output.",
    )
    parser.add_argument("names", nargs="*", help="run config ids or names to start")
    parser.add_argument("--all", action="store_true", help="start every run config")
    parser.add_argument("--list", action="store_true", help="list run configs and exit")
    parser.add_argument("--config", help="path to config.yaml")
    parser.add_argument(
        "--filter",
        metavar="LEVELS",
        help=f"comma-separated levels to show ({', '.join(LOG_LEVELS)})",
    )
    parser.add_argument(
        "--split",
        choices=list(SPLIT_CAPACITY),
        help="layout used to pick which processes are shown",
    )
    parser.add_argument(
        "--export", action="store_true", help="save plain-text logs on exit"
    )
    parser.add_argument("--export-dir", help="where --export writes (default from config)")
    parser.add_argument("--log-level", help="override PROCDECK_LOG_LEVEL")
    return parser


def parse_levels(value: str) -> set[str]:
    """Parse ``'error,warn'`` into a level set. Raises ValueError on a bad name."""
    return {normalize_level(part) for part in value.split(",") if part.strip()}


def print_config_table(console: Console, cfg: Config) -> None:
    folders = {f.id: f.name for f in cfg.folders}
    table = Table(title="Run configurations")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Command")
    table.add_column("Folder")
    for config in cfg.run_configs:
        table.add_row(
            config.id,
            config.name,
            config.type,
            " ".join([config.command, *config.args]).strip(),
            folders.get(config.folder_id or "", ""),
        )
    console.print(table)


def print_layout(console: Console, directory: SessionDirectory, names: dict[str, str]) -> None:
    """One line naming the processes in the split view and its free panes."""
    split = directory.split
    shown = ", ".join(names.get(pid, pid) for pid in split.members) or "-"
    line = f"Layout {split.mode}: {shown}"
    if split.empty_slots:
        line += f" (+{split.empty_slots} empty)"
    console.print(Text(line, style="bold"))


class OutputPrinter:
    """Print new classified lines and status changes for the visible panes."""

    def __init__(
        self, console: Console, directory: SessionDirectory, names: dict[str, str]
    ) -> None:
        self.console = console
        self.directory = directory
        self.names = names
        self._printed: dict[str, int] = {}  # id -> lines printed
        self._generations: dict[str, int] = {}
        self._statuses: dict[str, str] = {}

    def visible_ids(self) -> list[str]:
        if self.directory.split.mode != "single":
            return self.directory.split.members
        active = self.directory.active_config_id
        return [active] if active else []

    def flush(self, final: bool = False) -> None:
        for process_id, state in self.directory.states().items():
            if self._statuses.get(process_id) != state.status:
                self._statuses[process_id] = state.status
                label = state.status
                if state.exit_code is not None:
                    label += f" (exit {state.exit_code})"
                name = self.names.get(process_id, process_id)
                style = STATUS_STYLES.get(state.status, "default")
                self.console.print(Text(f"● {name}: {label}", style=style))

        for process_id in self.visible_ids():
            generation = self.directory.clear_generation(process_id)
            if self._generations.get(process_id) != generation:
                self._generations[process_id] = generation
                self._printed[process_id] = 0

            lines = self.directory.filtered_lines(process_id)
            start = self._printed.get(process_id, 0)
            # Hold back the newest line until the end; it may still be incomplete.
            end = len(lines) if final else len(lines) - 1
            for line in lines[start:end]:
                prefix = Text(f"[{self.names.get(process_id, process_id)}] ", style="bold")
                body = Text.from_ansi(line.text, style=LEVEL_STYLES[line.level])
                self.console.print(prefix + body)
            self._printed[process_id] = max(start, end)


def _all_finished(directory: SessionDirectory) -> bool:
    states = directory.states()
    if not states:
        return True
    return all(
        s.status in ("stopped", "error") and not directory.lifecycle.has_pending_restart(pid)
        for pid, s in states.items()
    )


def _select_configs(cfg: Config, args: argparse.Namespace) -> list[RunConfig]:
    if args.all:
        return cfg.run_configs
    selected = []
    for name in args.names:
        config = cfg.find_run_config(name)
        if config is None:
            raise ConfigError(f"No run config named '{name}'")
        selected.append(config)
    return selected


async def run(argv: list[str] | None = None) -> int:
    """Load config, start the selected run configs and stream output.

    Returns:
        Process exit status for the CLI.
    """
    args = build_parser().parse_args(argv)
    console = Console()

    try:
        cfg = get_config(args.config)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    problems = cfg.validate()
    if problems:
        for problem in problems:
            console.print(f"[red]✗[/red] {problem}")
        return 1

    log_cfg = cfg.logging_config
    setup_logging(
        level=args.log_level or cfg.log_level,
        log_file=log_cfg.get("file", str(PROCDECK_HOME / "procdeck.log")),
        max_bytes=log_cfg.get("max_size_mb", 10) * 1024 * 1024,
        backup_count=log_cfg.get("backup_count", 3),
        console=bool(log_cfg.get("console_output", True)),
    )

    if args.list:
        print_config_table(console, cfg)
        return 0

    try:
        selected = _select_configs(cfg, args)
        levels = parse_levels(args.filter) if args.filter else None
    except (ConfigError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        return 2
    if not selected:
        console.print("Nothing to start: name run configs or pass --all (see --list).")
        return 2

    engine = TmuxEngine(
        socket_name=cfg.tmux_socket_name,
        session_prefix=cfg.tmux_session_prefix,
        poll_interval=cfg.poll_interval_s,
        output_dir=cfg.output_dir,
    )
    errors = ErrorHandler()
    await errors.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    names = {c.id: c.name for c in selected}
    async with SessionDirectory(
        engine,
        settle_delay=cfg.restart_settle_s,
        start_all_delay=cfg.start_all_delay_s,
        error_handler=errors,
    ) as directory:
        directory.set_active(selected[0].id)
        await directory.start_all(selected)

        split_mode = args.split or ("single" if len(selected) == 1 else "grid-4")
        directory.set_split_mode(split_mode)
        if split_mode != "single":
            for config in selected:
                if directory.split.contains(config.id):
                    continue
                if not directory.toggle_split_member(config.id):
                    logger.warning(f"'{config.name}' does not fit the {split_mode} layout")
            print_layout(console, directory, names)

        if levels is not None:
            for config in selected:
                directory.toggle_filter_mode(config.id)
                for level in LOG_LEVELS:
                    directory.set_level(config.id, level, level in levels)

        printer = OutputPrinter(console, directory, names)
        while not stop_event.is_set():
            printer.flush()
            if _all_finished(directory):
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=0.2)
            except asyncio.TimeoutError:
                pass
        printer.flush(final=True)

        if args.export:
            export_dir = Path(args.export_dir or cfg.export_dir).expanduser()

            async def choose(suggested: str) -> Path:
                return export_dir / suggested

            for config in selected:
                path = await directory.export_logs(config.id, config.name, choose)
                if path:
                    console.print(f"Saved {config.name} log to {path}")

        await directory.stop_all()

    await engine.close()
    await errors.stop()
    failed = [pid for pid, s in directory.states().items() if s.status == "error"]
    return 1 if failed else 0


def main() -> None:
    sys.exit(asyncio.run(run()))
