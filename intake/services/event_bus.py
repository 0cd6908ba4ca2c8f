import asyncio
import logging

logger = logging.getLogger(__name__)


class SessionEventBus:
    """Simple in-memory pub/sub for broadcasting intake session changes."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, session_id: str) -> asyncio.Queue:
        """Subscribe to events for a specific session."""
        queue: asyncio.Queue = asyncio.Queue()
        if session_id not in self._subscribers:
            self._subscribers[session_id] = set()
        self._subscribers[session_id].add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        """Unsubscribe from a specific session's events."""
        if session_id in self._subscribers:
            self._subscribers[session_id].discard(queue)
            if not self._subscribers[session_id]:
                del self._subscribers[session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    async def publish(self, session_id: str, event: dict) -> None:
        """Publish an event for a session to all subscribers."""
        event["session_id"] = session_id

        for queue in self._subscribers.get(session_id, set()):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event queue full for session %s subscriber", session_id)


event_bus = SessionEventBus()
