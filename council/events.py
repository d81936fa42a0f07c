"""
Standardized event system for the interview lifecycle.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from .store import InterviewStore

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    INTERVIEW_STARTED = "interview.started"
    QUESTION_ASKED = "question.asked"
    ANSWER_RECORDED = "answer.recorded"
    RED_FLAG_DETECTED = "red_flag.detected"
    INTERVIEW_CLOSED = "interview.closed"
    INTERVIEW_PAUSED = "interview.paused"
    INTERVIEW_RESUMED = "interview.resumed"

    VOTE_CAST = "vote.cast"
    VOTE_FAILED = "vote.failed"
    VERDICT_FINALIZED = "verdict.finalized"


@dataclass
class CouncilEvent:
    """Standardized event for the council."""

    type: EventType
    interview_id: str
    id: UUID = field(default_factory=uuid4)
    turn_number: int | None = None
    judge: str | None = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.type.value,
            "interview_id": self.interview_id,
            "turn_number": self.turn_number,
            "judge": self.judge,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[CouncilEvent], Awaitable[None] | None]


class EventEmitter:
    """Emits events to registered handlers. Handler failures never reach the emitter."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def emit(self, event: CouncilEvent) -> None:
        for handler in self._handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("Event handler error for %s: %s", event.type.value, exc)


event_bus = EventEmitter()


def make_persist_handler(store: InterviewStore) -> EventHandler:
    """Handler that writes events to the interview_events table."""

    async def persist_event_handler(event: CouncilEvent) -> None:
        await store.log_event(
            event.interview_id,
            event.type.value,
            judge_name=event.judge,
            turn_number=event.turn_number,
            message=event.message,
            details=event.data,
        )

    return persist_event_handler


def event_channel(interview_id: str) -> str:
    return f"channel:interview:{interview_id}"


async def publish_event_handler(event: CouncilEvent) -> None:
    """Handler that publishes events to Redis Pub/Sub."""
    from .redis_client import get_redis_client

    redis = get_redis_client()
    await redis.publish(event_channel(event.interview_id), json.dumps(event.to_dict()))


def install_default_handlers(
    store: InterviewStore, *, publish: bool, emitter: EventEmitter = event_bus
) -> None:
    """Bind the emitter to ``store``, replacing handlers bound to an earlier one."""
    emitter.clear()
    emitter.on_event(make_persist_handler(store))
    if publish:
        emitter.on_event(publish_event_handler)
