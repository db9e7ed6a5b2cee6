"""Lifecycle controller — start/stop/restart processes through the engine."""

from __future__ import annotations

import asyncio

from procdeck.engine.base import ExecutionEngine
from procdeck.sessions.command_builder import build_command
from procdeck.sessions.models import ProcessState, RunConfig, now_ms
from procdeck.utils.errors import ErrorHandler, ProcessNotFoundError
from procdeck.utils.logger import get_logger

logger = get_logger("procdeck.sessions.lifecycle")

DEFAULT_SETTLE_DELAY_S = 0.3


class LifecycleController:
    """Own the ``ProcessState`` of every started config and drive transitions.

    Status flow: ``stopped``/``error``/absent -> ``starting`` -> ``running``
    or ``error``; ``stop`` and a clean exit go to ``stopped``, an abnormal
    exit to ``error``.

    Engine failures never propagate out of this class: they become state
    transitions and are reported to the ``ErrorHandler``. All operations for
    one id run under that id's lock, so a start, stop and restart for the
    same process never overlap and never spawn two processes at once.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        settle_delay: float = DEFAULT_SETTLE_DELAY_S,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._engine = engine
        self.settle_delay = settle_delay
        self._errors = error_handler or ErrorHandler()
        self._states: dict[str, ProcessState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._configs: dict[str, RunConfig] = {}  # id -> last started config
        self._auto_retries: dict[str, int] = {}
        self._pending_restarts: dict[str, asyncio.Task] = {}  # still waiting out restart_delay
        self._restart_tasks: dict[str, asyncio.Task] = {}  # every auto-restart until it finishes
        self._closed = False

    # ── Read access ──

    def get(self, process_id: str) -> ProcessState | None:
        return self._states.get(process_id)

    def knows(self, process_id: str) -> bool:
        return process_id in self._states

    def states(self) -> dict[str, ProcessState]:
        return dict(self._states)

    def running_count(self) -> int:
        return sum(1 for s in self._states.values() if s.status == "running")

    def has_pending_restart(self, process_id: str) -> bool:
        """True while an automatic restart is waiting or in progress."""
        return process_id in self._restart_tasks

    # ── Transitions ──

    def _lock(self, process_id: str) -> asyncio.Lock:
        lock = self._locks.get(process_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[process_id] = lock
        return lock

    async def start(self, config: RunConfig) -> ProcessState | None:
        """Start a stopped, failed or never-started config.

        A start for a process that is already starting or running is
        ignored. Launch failures leave the process in ``error``.

        Returns:
            The process state after the attempt.
        """
        self._cancel_pending_restart(config.id)
        self._auto_retries[config.id] = 0
        async with self._lock(config.id):
            state = self._states.get(config.id)
            if state is not None and state.status in ("starting", "running"):
                logger.warning(f"Ignoring start for '{config.name}': already {state.status}")
                return state
            return await self._spawn(config)

    async def stop(self, process_id: str) -> ProcessState | None:
        """Kill a process.

        The status becomes ``stopped`` when the engine confirms the kill or
        reports that nothing was running. On any other failure the status is
        left alone since the process may still be alive.
        """
        self._cancel_pending_restart(process_id)
        async with self._lock(process_id):
            try:
                await self._engine.kill(process_id)
            except ProcessNotFoundError:
                logger.debug(f"Stop {process_id}: process already gone")
            except Exception as e:
                await self._errors.handle(e, f"stop {process_id}")
                return self._states.get(process_id)

            state = self._states.get(process_id)
            if state is not None:
                state.status = "stopped"
                logger.info(f"Stopped {process_id}")
            return state

    async def restart(self, config: RunConfig) -> ProcessState:
        """Kill, wait for the engine to settle, then start again.

        Exactly one kill and one spawn are issued and ``restart_count``
        grows by one, whatever state the process was in and whether or not
        the kill succeeded.
        """
        self._cancel_pending_restart(config.id)
        self._auto_retries[config.id] = 0
        async with self._lock(config.id):
            return await self._restart_locked(config)

    def handle_exit(self, process_id: str, exit_code: int | None) -> None:
        """Record a process exit reported by the engine.

        Exit code 0 means ``stopped``; anything else, including an unknown
        code, means ``error``. A later event simply overwrites an earlier one.
        """
        state = self._states.get(process_id)
        if state is None:
            logger.debug(f"Exit for unknown process {process_id} ignored")
            return

        state.status = "stopped" if exit_code == 0 else "error"
        state.exit_code = exit_code
        if state.status == "stopped":
            logger.info(f"{process_id} exited cleanly")
            return

        logger.warning(f"{process_id} exited with code {exit_code}")
        self._schedule_auto_restart(process_id)

    async def close(self) -> None:
        """Stop automatic restarts and refuse further spawns.

        Restarts still waiting out their delay are cancelled. One already
        past its delay is awaited; it kills the old process but spawns
        nothing once the controller is closed.
        """
        self._closed = True
        for task in self._pending_restarts.values():
            task.cancel()
        self._pending_restarts.clear()
        tasks = list(self._restart_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._restart_tasks.clear()

    # ── Internals ──

    async def _spawn(self, config: RunConfig) -> ProcessState | None:
        state = self._states.get(config.id)
        if self._closed:
            logger.info(f"Not starting '{config.name}': shutting down")
            return state
        if state is None:
            state = ProcessState(status="starting")
            self._states[config.id] = state
        else:
            state.status = "starting"
            state.started_at = now_ms()
            state.exit_code = None
        self._configs[config.id] = config

        try:
            command, args = build_command(config)
            await self._engine.spawn(
                config.id, command, args, config.working_dir, dict(config.env)
            )
        except Exception as e:
            state.status = "error"
            await self._errors.handle(e, f"start {config.name}")
            return state

        # A very short-lived process may already have reported its exit.
        if state.status == "starting":
            state.status = "running"
        logger.info(f"Started '{config.name}' ({command} {' '.join(args)})")
        return state

    async def _restart_locked(self, config: RunConfig) -> ProcessState:
        try:
            await self._engine.kill(config.id)
        except Exception as e:
            logger.debug(f"Restart {config.id}: kill failed ({e}), continuing")

        await asyncio.sleep(self.settle_delay)

        state = self._states.get(config.id)
        if state is None:
            state = ProcessState()
            self._states[config.id] = state
        state.status = "stopped"
        state.restart_count += 1
        logger.info(f"Restarting '{config.name}' (restart #{state.restart_count})")
        return await self._spawn(config)

    def _schedule_auto_restart(self, process_id: str) -> None:
        config = self._configs.get(process_id)
        if config is None or not config.auto_restart or self._closed:
            return
        if process_id in self._pending_restarts or self._lock(process_id).locked():
            return

        attempts = self._auto_retries.get(process_id, 0)
        if attempts >= config.max_retries:
            logger.warning(
                f"'{config.name}' failed {attempts} automatic restarts, giving up"
            )
            return

        self._auto_retries[process_id] = attempts + 1
        task = asyncio.create_task(self._auto_restart(config, attempts + 1))
        self._pending_restarts[process_id] = task
        self._restart_tasks[process_id] = task
        task.add_done_callback(lambda t: self._restart_done(process_id, t))

    async def _auto_restart(self, config: RunConfig, attempt: int) -> None:
        await asyncio.sleep(config.restart_delay / 1000)
        self._pending_restarts.pop(config.id, None)
        logger.info(
            f"Auto-restarting '{config.name}' (attempt {attempt}/{config.max_retries})"
        )
        async with self._lock(config.id):
            await self._restart_locked(config)

    def _restart_done(self, process_id: str, task: asyncio.Task) -> None:
        if self._restart_tasks.get(process_id) is task:
            del self._restart_tasks[process_id]

    def _cancel_pending_restart(self, process_id: str) -> None:
        task = self._pending_restarts.pop(process_id, None)
        if task is not None:
            task.cancel()
            self._restart_done(process_id, task)
