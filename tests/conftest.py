"""Shared fixtures — an in-memory execution engine and run config factory."""

from __future__ import annotations

import asyncio

import pytest

from procdeck.sessions.models import RunConfig
from procdeck.utils.errors import ProcessNotFoundError


class FakeEngine:
    """Records requests and lets tests push output/exit events."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.spawn_error: Exception | None = None
        self.kill_error: Exception | None = None
        self.running: set[str] = set()
        self.listeners: list[tuple] = []
        self.on_spawn = None  # optional hook(process_id) run inside spawn
        self.spawn_gate: asyncio.Event | None = None

    async def spawn(self, process_id, command, args, working_dir, env):
        self.calls.append(("spawn", process_id, command, list(args), working_dir, env))
        if self.on_spawn is not None:
            self.on_spawn(process_id)
        if self.spawn_gate is not None:
            await self.spawn_gate.wait()
        if self.spawn_error is not None:
            raise self.spawn_error
        self.running.add(process_id)

    async def kill(self, process_id):
        self.calls.append(("kill", process_id))
        if self.kill_error is not None:
            raise self.kill_error
        if process_id not in self.running:
            raise ProcessNotFoundError(process_id, "no running process")
        self.running.discard(process_id)

    async def write(self, process_id, data):
        self.calls.append(("write", process_id, data))

    async def resize(self, process_id, cols, rows):
        self.calls.append(("resize", process_id, cols, rows))

    def subscribe(self, on_output, on_exit):
        entry = (on_output, on_exit)
        self.listeners.append(entry)

        def unsubscribe():
            self.listeners.remove(entry)

        return unsubscribe

    def emit_output(self, process_id, data):
        for on_output, _ in list(self.listeners):
            on_output(process_id, data)

    def emit_exit(self, process_id, code):
        self.running.discard(process_id)
        for _, on_exit in list(self.listeners):
            on_exit(process_id, code)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


def make_config(config_id: str = "app", **overrides) -> RunConfig:
    values = dict(id=config_id, name=config_id.capitalize(), type="shell", command="echo hi")
    values.update(overrides)
    return RunConfig(**values)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()
