"""Tests for the error types and the repeated-failure handler."""

import asyncio
from unittest.mock import AsyncMock

from procdeck.utils.errors import (
    ESCALATION_THRESHOLD,
    EngineError,
    ErrorHandler,
    ProcdeckError,
    ProcessNotFoundError,
    SpawnError,
)


class TestErrorTypes:
    def test_engine_error_message(self):
        err = SpawnError("api", "command not found: mvn")
        assert str(err) == "[api] command not found: mvn"
        assert err.process_id == "api"
        assert err.message == "command not found: mvn"

    def test_hierarchy(self):
        assert issubclass(SpawnError, EngineError)
        assert issubclass(ProcessNotFoundError, EngineError)
        assert issubclass(EngineError, ProcdeckError)


class TestErrorHandler:
    async def test_handle_counts_error(self):
        handler = ErrorHandler()
        await handler.handle(ValueError("test error"), "test_context")
        assert handler.error_counts["ValueError"] == 1

    async def test_different_error_types_tracked_separately(self):
        handler = ErrorHandler()
        await handler.handle(SpawnError("a", "x"), "start a")
        await handler.handle(EngineError("a", "y"), "stop a")
        assert handler.error_counts == {"SpawnError": 1, "EngineError": 1}

    async def test_escalates_once_at_threshold(self):
        hook = AsyncMock()
        handler = ErrorHandler(on_escalate=hook)
        for _ in range(ESCALATION_THRESHOLD + 2):
            await handler.handle(SpawnError("api", "boom"), "start api")
        hook.assert_awaited_once_with("SpawnError", "start api", ESCALATION_THRESHOLD)

    async def test_escalate_without_hook(self):
        handler = ErrorHandler()
        for _ in range(ESCALATION_THRESHOLD):
            await handler.handle(RuntimeError("boom"), "test")
        assert handler.error_counts["RuntimeError"] == ESCALATION_THRESHOLD

    async def test_escalation_hook_failure_is_contained(self):
        hook = AsyncMock(side_effect=Exception("hook broke"))
        handler = ErrorHandler(on_escalate=hook)
        for _ in range(ESCALATION_THRESHOLD):
            await handler.handle(TypeError("boom"), "test")
        hook.assert_awaited_once()

    async def test_start_stop(self):
        handler = ErrorHandler()
        await handler.start()
        assert handler._reset_task is not None
        await handler.stop()
        await asyncio.sleep(0.01)
        assert handler._reset_task.done()

    async def test_stop_no_task(self):
        handler = ErrorHandler()
        await handler.stop()
