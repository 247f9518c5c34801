"""Bracketed agent runs: every run record ends in a terminal status."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from . import db
from .events import EventType, emit
from .models import RunStatus, RunType

logger = logging.getLogger(__name__)

RUN_CANCELLED_MESSAGE = "Run cancelled"


@dataclass
class RunHandle:
    """The open run yielded by `bracketed_run`."""

    id: str
    project_id: str
    run_type: RunType
    error_message: str | None = None

    def fail(self, message: str) -> None:
        """Mark the run to finish as failed without raising."""
        self.error_message = message

    @property
    def failed(self) -> bool:
        return self.error_message is not None


async def _finish(handle: RunHandle, status: RunStatus, error_message: str | None) -> None:
    async with db.get_session() as session:
        run = await db.get_run(session, handle.id)
        if run is None:
            logger.warning("Run %s vanished before it could be finalized", handle.id)
            return
        await db.finish_run(session, run, status, error_message)


async def _finish_after_error(handle: RunHandle) -> None:
    try:
        await _finish(handle, RunStatus.FAILED, handle.error_message)
    except Exception:
        logger.exception("Could not mark run %s failed", handle.id)


async def _emit_finished(handle: RunHandle, status: RunStatus, started: float) -> None:
    duration_ms = int((time.monotonic() - started) * 1000)
    if status == RunStatus.COMPLETED:
        await emit(
            EventType.RUN_COMPLETED,
            handle.project_id,
            f"{handle.run_type} run completed",
            run_id=handle.id,
            duration_ms=duration_ms,
        )
    else:
        await emit(
            EventType.RUN_FAILED,
            handle.project_id,
            f"{handle.run_type} run failed",
            run_id=handle.id,
            data={"error": handle.error_message},
            duration_ms=duration_ms,
        )


@asynccontextmanager
async def bracketed_run(project_id: str, run_type: RunType) -> AsyncIterator[RunHandle]:
    """Create a running AgentRun and guarantee its terminal write.

    The run completes unless the body calls `handle.fail(...)`, raises, or is
    cancelled; exceptions are recorded on the run and re-raised.
    """
    async with db.get_session() as session:
        run = await db.create_run(session, project_id, run_type.value)
        handle = RunHandle(id=run.id, project_id=project_id, run_type=run_type)

    started = time.monotonic()
    logger.info("Started %s run %s", run_type, handle.id)
    await emit(EventType.RUN_STARTED, project_id, f"{run_type} run started", run_id=handle.id)

    try:
        yield handle
    except asyncio.CancelledError:
        handle.fail(RUN_CANCELLED_MESSAGE)
        await _finish_after_error(handle)
        logger.info("Cancelled %s run %s", run_type, handle.id)
        await _emit_finished(handle, RunStatus.FAILED, started)
        raise
    except Exception as exc:
        handle.fail(str(exc) or type(exc).__name__)
        await _finish_after_error(handle)
        logger.info("Failed %s run %s: %s", run_type, handle.id, handle.error_message)
        await _emit_finished(handle, RunStatus.FAILED, started)
        raise

    status = RunStatus.FAILED if handle.failed else RunStatus.COMPLETED
    await _finish(handle, status, handle.error_message)
    logger.info("Finished %s run %s: %s", run_type, handle.id, status)
    await _emit_finished(handle, status, started)
