"""
Event system for congress activity.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from .config import Settings, settings
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    DEBATE_STARTED = "debate.started"
    DEBATE_RESOLVED = "debate.resolved"

    TURN_GENERATED = "turn.generated"
    GENERATION_FAILED = "generation.failed"
    PEER_REVIEW = "peer.review"

    VOTE_RECORDED = "vote.recorded"
    VOTE_REMOVED = "vote.removed"
    AGENT_EVOLVED = "agent.evolved"

    COALITION_FORMED = "coalition.formed"
    RESEARCH_COMPLETED = "research.completed"


@dataclass
class CongressEvent:
    """Event emitted by the orchestrator."""

    type: EventType
    message: str = ""
    debate_id: str | None = None
    agent_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.type.value,
            "debate_id": self.debate_id,
            "agent_id": self.agent_id,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[CongressEvent], Awaitable[None] | None]


class EventEmitter:
    """Emits events to registered handlers."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def emit(self, event: CongressEvent) -> None:
        for handler in self._handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("Event handler error for %s: %s", event.type.value, exc)


def redis_publish_handler(config: Settings = settings) -> EventHandler:
    """Handler that publishes events to Redis Pub/Sub, one channel per debate."""

    async def publish(event: CongressEvent) -> None:
        channel = f"channel:debate:{event.debate_id}" if event.debate_id else "channel:congress"
        try:
            redis = get_redis_client(config.redis_url)
            await redis.publish(channel, json.dumps(event.to_dict()))
        except Exception as exc:
            logger.warning("Redis publish failed: %s", exc)

    return publish
