"""tmux execution engine — host each process in its own detached tmux session."""

from __future__ import annotations

import asyncio
import codecs
import os
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import libtmux
from libtmux.exc import LibTmuxException

from procdeck.engine.base import ExitCallback, OutputCallback, Unsubscribe
from procdeck.utils.errors import EngineError, ProcessNotFoundError, SpawnError
from procdeck.utils.logger import get_logger

logger = get_logger("procdeck.engine.tmux")

_UNSAFE_SESSION_CHARS = re.compile(r"[^\w-]")
_MISSING_MARKERS = ("can't find", "no server running", "session not found")


def _is_missing(stderr: list[str]) -> bool:
    text = " ".join(stderr).lower()
    return any(marker in text for marker in _MISSING_MARKERS)


def _new_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


@dataclass
class _TmuxProcess:
    session_name: str
    pane_id: str
    output_path: Path
    offset: int = 0  # bytes of output_path already forwarded
    decoder: codecs.IncrementalDecoder = field(default_factory=_new_decoder, repr=False)
    killing: bool = False
    poller: asyncio.Task | None = field(default=None, repr=False)


class TmuxEngine:
    """Run config processes in detached tmux sessions on a private socket.

    Each pane's output is piped (``pipe-pane -o``) into a file under
    ``output_dir``. A poller per process reads the bytes appended since the
    last poll, forwards them as output and reports the exit once the pane
    is dead. Panes are created with ``remain-on-exit`` so a finished process
    leaves its exit status behind. Killing a process through ``kill()`` does
    not produce an exit event.
    """

    def __init__(
        self,
        socket_name: str = "procdeck",
        session_prefix: str = "procdeck",
        poll_interval: float = 0.25,
        output_dir: str | Path = "~/.procdeck/output",
        size: tuple[int, int] = (200, 50),
    ) -> None:
        self.session_prefix = session_prefix
        self.poll_interval = poll_interval
        self.output_dir = Path(output_dir).expanduser()
        self.size = size
        self._socket_name = socket_name
        self._server: libtmux.Server | None = None
        self._procs: dict[str, _TmuxProcess] = {}
        self._listeners: list[tuple[OutputCallback, ExitCallback]] = []

    @property
    def server(self) -> libtmux.Server:
        if self._server is None:
            self._server = libtmux.Server(socket_name=self._socket_name)
        return self._server

    def session_name(self, process_id: str) -> str:
        return f"{self.session_prefix}-{_UNSAFE_SESSION_CHARS.sub('_', process_id)}"

    def is_running(self, process_id: str) -> bool:
        return process_id in self._procs

    # ── Subscription ──

    def subscribe(self, on_output: OutputCallback, on_exit: ExitCallback) -> Unsubscribe:
        entry = (on_output, on_exit)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def _emit_output(self, process_id: str, data: str) -> None:
        for on_output, _ in list(self._listeners):
            try:
                on_output(process_id, data)
            except Exception:
                logger.exception(f"Output listener failed for {process_id}")

    def _emit_exit(self, process_id: str, exit_code: int | None) -> None:
        for _, on_exit in list(self._listeners):
            try:
                on_exit(process_id, exit_code)
            except Exception:
                logger.exception(f"Exit listener failed for {process_id}")

    # ── Requests ──

    async def spawn(
        self,
        process_id: str,
        command: str,
        args: list[str],
        working_dir: str,
        env: dict[str, str],
    ) -> None:
        """Launch ``command args`` in a new tmux session.

        The session, ``remain-on-exit`` and the output pipe are set up in a
        single tmux command list, so the pipe is attached before tmux reads
        anything from the pane.

        Raises:
            SpawnError: If the process is already running, the working
                directory or executable is missing, or tmux refuses.
        """
        if process_id in self._procs:
            raise SpawnError(process_id, "process is already running")

        cwd = os.path.expanduser(working_dir) if working_dir else os.getcwd()
        if not os.path.isdir(cwd):
            raise SpawnError(process_id, f"working directory does not exist: {cwd}")
        self._check_executable(process_id, command, cwd, env)

        name = self.session_name(process_id)
        output_path = self.output_dir / f"{name}.out"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(b"")
        except OSError as e:
            raise SpawnError(process_id, f"cannot create output file: {e}") from e

        cols, rows = self.size
        env_flags: list[str] = []
        for key, value in env.items():
            env_flags += ["-e", f"{key}={value}"]

        try:
            result = await asyncio.to_thread(
                self.server.cmd,
                "new-session", "-d", "-P", "-F", "#{pane_id}",
                "-s", name, "-c", cwd, "-x", str(cols), "-y", str(rows),
                *env_flags,
                shlex.join([command, *args]),
                ";", "set-option", "-w", "-t", name, "remain-on-exit", "on",
                ";", "pipe-pane", "-o", "-t", name, f"cat >> {shlex.quote(str(output_path))}",
            )
        except LibTmuxException as e:
            output_path.unlink(missing_ok=True)
            raise SpawnError(process_id, f"tmux failed: {e}") from e

        if result.stderr or not result.stdout:
            output_path.unlink(missing_ok=True)
            reason = " ".join(result.stderr) or "tmux did not report a pane id"
            raise SpawnError(process_id, reason)

        proc = _TmuxProcess(
            session_name=name,
            pane_id=result.stdout[0].strip(),
            output_path=output_path,
        )
        self._procs[process_id] = proc
        proc.poller = asyncio.create_task(self._poll(process_id, proc))
        logger.info(f"Spawned {process_id} in tmux session {name} ({proc.pane_id})")

    async def kill(self, process_id: str) -> None:
        """Kill the tmux session of a process.

        Raises:
            ProcessNotFoundError: If no process is tracked or tmux no longer
                has its session.
            EngineError: If tmux reported another failure.
        """
        proc = self._procs.get(process_id)
        if proc is None:
            raise ProcessNotFoundError(process_id, "no running process")

        proc.killing = True
        result = await asyncio.to_thread(
            self.server.cmd, "kill-session", "-t", proc.session_name
        )
        if result.stderr and not _is_missing(result.stderr):
            proc.killing = False
            raise EngineError(process_id, " ".join(result.stderr))

        self._forget(process_id)
        if result.stderr:
            raise ProcessNotFoundError(process_id, "tmux session already gone")
        logger.info(f"Killed tmux session {proc.session_name}")

    async def write(self, process_id: str, data: str) -> None:
        proc = self._procs.get(process_id)
        if proc is None:
            return
        await asyncio.to_thread(self.server.cmd, "send-keys", "-t", proc.pane_id, "-l", data)

    async def resize(self, process_id: str, cols: int, rows: int) -> None:
        proc = self._procs.get(process_id)
        if proc is None:
            return
        await asyncio.to_thread(
            self.server.cmd,
            "resize-window", "-t", proc.session_name, "-x", str(cols), "-y", str(rows),
        )

    async def close(self) -> None:
        """Kill every tracked session. Called on shutdown."""
        for process_id in list(self._procs):
            try:
                await self.kill(process_id)
            except EngineError as e:
                logger.warning(f"Error killing {process_id} on shutdown: {e}")

    # ── Internals ──

    @staticmethod
    def _check_executable(
        process_id: str, command: str, cwd: str, env: dict[str, str]
    ) -> None:
        if os.sep in command or command.startswith("."):
            path = command if os.path.isabs(command) else os.path.join(cwd, command)
            if not (os.path.isfile(path) and os.access(path, os.X_OK)):
                raise SpawnError(process_id, f"not an executable file: {path}")
            return
        if shutil.which(command, path=env.get("PATH")) is None:
            raise SpawnError(process_id, f"command not found: {command}")

    def _forget(self, process_id: str) -> None:
        proc = self._procs.pop(process_id, None)
        if proc is None:
            return
        if proc.poller is not None:
            proc.poller.cancel()
        proc.output_path.unlink(missing_ok=True)

    @staticmethod
    def _read_output(proc: _TmuxProcess, final: bool = False) -> str:
        """Decode the bytes piped since the previous read."""
        try:
            with open(proc.output_path, "rb") as f:
                f.seek(proc.offset)
                data = f.read()
        except FileNotFoundError:
            data = b""
        proc.offset += len(data)
        return proc.decoder.decode(data, final=final)

    def _pane_status(self, proc: _TmuxProcess) -> tuple[bool, int | None]:
        """Return ``(dead, exit_status)``; a vanished pane counts as dead."""
        result = self.server.cmd(
            "display-message", "-p", "-t", proc.pane_id,
            "#{pane_dead} #{pane_dead_status}",
        )
        if result.stderr or not result.stdout:
            return True, None
        dead, _, status = result.stdout[0].partition(" ")
        if dead != "1":
            return False, None
        status = status.strip()
        return True, int(status) if status.lstrip("-").isdigit() else None

    async def _forward(self, process_id: str, proc: _TmuxProcess, final: bool = False) -> None:
        data = await asyncio.to_thread(self._read_output, proc, final)
        if data:
            self._emit_output(process_id, data)

    async def _poll(self, process_id: str, proc: _TmuxProcess) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                dead, exit_code = await asyncio.to_thread(self._pane_status, proc)
            except LibTmuxException as e:
                logger.warning(f"Polling {process_id} failed: {e}")
                dead, exit_code = True, None

            if proc.killing:
                return

            # Status is read first: once the pane is dead, this read and the
            # one after kill-session see everything it wrote.
            await self._forward(process_id, proc)
            if not dead:
                continue

            self._procs.pop(process_id, None)
            await asyncio.to_thread(self.server.cmd, "kill-session", "-t", proc.session_name)
            await self._forward(process_id, proc, final=True)
            proc.output_path.unlink(missing_ok=True)
            logger.info(f"{process_id} exited (code={exit_code})")
            self._emit_exit(process_id, exit_code)
            return
