"""
Real-time Pub/Sub for Session Events.

In-memory fan-out of live interview events (transcript updates, AI status,
proctoring signals, lifecycle changes) so a host UI can render the session
without polling it. Each session owns its own publisher.

Example usage:
    publisher = SessionEventPublisher()
    queue = await publisher.subscribe()
    await publisher.publish(SessionEvent(SessionEventType.STATUS, "Session active"))
    event = await queue.get()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class SessionEventType(str, Enum):
    """
    Types of session events published to the stream.

    Attributes:
        STATUS: Session lifecycle change (connecting, active, ended, ...).
        TRANSCRIPT: A transcript entry was created or extended.
        AI_STATUS: The agent's display status changed.
        TURN: The agent completed a turn; question count advanced.
        PROCTORING: Proctoring signals or display state changed.
        WARNING: A cheating warning was issued.
        ERROR: A recoverable error (streaming dropped, oracle failed, ...).
    """

    STATUS = "status"
    TRANSCRIPT = "transcript"
    AI_STATUS = "ai_status"
    TURN = "turn"
    PROCTORING = "proctoring"
    WARNING = "warning"
    ERROR = "error"


def _get_utc_timestamp() -> str:
    """Current UTC timestamp in ISO format with a 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SessionEvent:
    """
    A single event from a live interview session.

    Attributes:
        event_type: Category of the event.
        content: Human-readable summary.
        data: Structured payload (JSON-serializable).
        timestamp: UTC timestamp when the event was created.
    """

    event_type: SessionEventType
    content: str
    data: dict[str, object] = field(default_factory=dict)
    timestamp: str = field(default_factory=_get_utc_timestamp)

    def to_dict(self) -> dict[str, object]:
        return {
            "event_type": self.event_type.value,
            "content": self.content,
            "data": self.data,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class SessionEventPublisher:
    """
    Publisher for session events.

    Manages subscriber queues and broadcasts every event to all of them.
    New subscribers first receive the retained history.

    Example:
        publisher = SessionEventPublisher()
        queue = await publisher.subscribe()
        publisher.publish_nowait(SessionEvent(SessionEventType.TURN, "Question 2"))
        event = await queue.get()
    """

    def __init__(self, max_history: int = 200) -> None:
        """
        Initialize the publisher.

        Args:
            max_history: Maximum number of events to retain for late subscribers.
        """
        self._subscribers: list[asyncio.Queue[SessionEvent]] = []
        self._history: list[SessionEvent] = []
        self._max_history = max_history
        self._lock = asyncio.Lock()
        logger.debug("SessionEventPublisher initialized with max_history=%d", max_history)

    async def subscribe(self) -> asyncio.Queue[SessionEvent]:
        """
        Subscribe to session events.

        Caller is responsible for calling unsubscribe when done.

        Returns:
            Queue that will receive published events, history first.
        """
        queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
            for event in self._history:
                queue.put_nowait(event)
        logger.debug("New subscriber added. Total: %d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[SessionEvent]) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)
        logger.debug("Subscriber removed. Total: %d", len(self._subscribers))

    def publish_nowait(self, event: SessionEvent) -> None:
        """
        Publish an event from synchronous code.

        Subscriber queues are unbounded, so this never blocks. Must be
        called on the event loop thread.
        """
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        logger.debug("Published event: %s", event.event_type.value)

    async def publish(self, event: SessionEvent) -> None:
        """Publish an event to all subscribers and keep it in history."""
        async with self._lock:
            self.publish_nowait(event)

    async def get_history(self) -> list[SessionEvent]:
        """Copy of the retained history."""
        async with self._lock:
            return list(self._history)

    @property
    def history(self) -> list[SessionEvent]:
        return list(self._history)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
