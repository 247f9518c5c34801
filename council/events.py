"""
Run and review events for the agent council.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from .config import settings

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    RUN_STARTED = "run.started"
    RUN_COMPLETED = "run.completed"
    RUN_FAILED = "run.failed"

    AGENT_COMPLETED = "agent.completed"
    AGENT_FAILED = "agent.failed"

    ACTIONS_PROPOSED = "actions.proposed"
    ACTION_ACCEPTED = "action.accepted"
    ACTION_REJECTED = "action.rejected"

    TRACKING_UPDATED = "tracking.updated"
    TRACKING_COMPLETED = "tracking.completed"


@dataclass
class CouncilEvent:
    """Standardized event for runs and proposal reviews."""

    type: EventType
    project_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    run_id: str | None = None
    agent: str | None = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "project_id": self.project_id,
            "run_id": self.run_id,
            "agent": self.agent,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
        }


EventHandler = Callable[[CouncilEvent], Awaitable[None] | None]


class EventEmitter:
    """Emits events to registered handlers; handler errors are logged, never raised."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def emit(self, event: CouncilEvent) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if hasattr(result, "__await__"):
                    await result
            except Exception as exc:
                logger.warning("Event handler error for %s: %s", event.type.value, exc)


event_bus = EventEmitter()


async def emit(
    event_type: EventType,
    project_id: str,
    message: str = "",
    *,
    run_id: str | None = None,
    agent: str | None = None,
    data: dict[str, Any] | None = None,
    duration_ms: int | None = None,
) -> CouncilEvent:
    event = CouncilEvent(
        type=event_type,
        project_id=project_id,
        run_id=run_id,
        agent=agent,
        message=message,
        data=data or {},
        duration_ms=duration_ms,
    )
    await event_bus.emit(event)
    return event


async def persist_event_handler(event: CouncilEvent) -> None:
    """Handler that persists events to the run_events table."""
    from .db import get_session, log_event

    async with get_session() as session:
        await log_event(
            session,
            event.project_id,
            event.type.value,
            run_id=event.run_id,
            agent=event.agent,
            message=event.message,
            details=event.data,
            duration_ms=event.duration_ms,
        )


event_bus.on_event(persist_event_handler)


async def publish_event_handler(event: CouncilEvent) -> None:
    """Handler that publishes events to Redis Pub/Sub."""
    if not settings.redis_events_enabled:
        return

    from .redis_client import get_redis_client

    redis = get_redis_client()
    channel = f"channel:project:{event.project_id}"
    await redis.publish(channel, json.dumps(event.to_dict()))


event_bus.on_event(publish_event_handler)
