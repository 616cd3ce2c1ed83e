"""
Event broadcaster - in-process registry of live stream connections.

Each connection is a StreamHandle (a bounded queue drained by its SSE response)
owned by one user. publish() fans an event out to every connection of the
event's user, or to everyone when the event has no user_id. A connection whose
write fails is dropped from the registry and the rest still get the event.

One Broadcaster is built per app in create_app() and shared through
app.state.context. It is not shared across processes.
"""
import asyncio
import json
import logging
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 100

_CLOSED = object()


class StreamClosedError(Exception):
    """Write to a stream handle that is closed or too far behind."""


class StreamHandle:
    """Write side of one live connection."""

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending + 1)
        self._max_pending = max_pending
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: dict) -> None:
        """Queue an event. Raises StreamClosedError if closed or the reader is stuck."""
        if self._closed:
            raise StreamClosedError("stream is closed")
        if self._queue.qsize() >= self._max_pending:
            raise StreamClosedError("stream backlog full")
        self._queue.put_nowait(event)

    async def receive(self) -> Optional[dict]:
        """Next queued event, or None once the handle is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        """Idempotent. Wakes a pending receive()."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass  # reader is not waiting, receive() sees _closed first


class Connection:
    __slots__ = ("connection_id", "handle", "user_id", "connected_at")

    def __init__(self, connection_id: str, handle: StreamHandle, user_id: str):
        self.connection_id = connection_id
        self.handle = handle
        self.user_id = user_id
        self.connected_at = time.time()


def now_ms() -> int:
    return int(time.time() * 1000)


def build_event(event_type: str, user_id: Optional[str] = None, **payload: Any) -> dict:
    """Event dict as sent on the wire: {"type", ...payload, "user_id", "timestamp"}."""
    event = {"type": event_type, **payload}
    if user_id is not None:
        event["user_id"] = user_id
    event.setdefault("timestamp", now_ms())
    return event


def format_sse(event: dict) -> str:
    """Serialize one event as an SSE data frame."""
    return f"data: {json.dumps(event, default=str)}\n\n"


class Broadcaster:
    def __init__(self):
        self._connections: dict[str, Connection] = {}

    def register(self, connection_id: str, handle: StreamHandle, user_id: str) -> None:
        """Add a connection. An existing id is replaced and its old handle closed."""
        previous = self._connections.get(connection_id)
        self._connections[connection_id] = Connection(connection_id, handle, user_id)
        if previous is not None and previous.handle is not handle:
            logger.info(
                "Stream replaced by a new connection with the same id",
                extra={"client_id": connection_id, "user_id": previous.user_id},
            )
            previous.handle.close()
        logger.info(
            "Stream connected (%d active)", len(self._connections),
            extra={"client_id": connection_id, "user_id": user_id},
        )

    def unregister(self, connection_id: str, handle: Optional[StreamHandle] = None) -> None:
        """
        Remove a connection. No-op if it is not registered. When handle is given,
        only remove the entry if it still belongs to that handle.
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        if handle is not None and conn.handle is not handle:
            return
        if self._connections.pop(connection_id, None) is not None:
            logger.info(
                "Stream disconnected (%d active)", len(self._connections),
                extra={"client_id": connection_id},
            )

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def owns(self, connection_id: str, handle: StreamHandle) -> bool:
        """True if connection_id is currently registered to this exact handle."""
        conn = self._connections.get(connection_id)
        return conn is not None and conn.handle is handle

    def connection_count(self, user_id: Optional[str] = None) -> int:
        if user_id is None:
            return len(self._connections)
        return sum(1 for c in self._connections.values() if c.user_id == user_id)

    def _deliver(self, conn: Connection, event: dict) -> bool:
        try:
            conn.handle.send(event)
            return True
        except StreamClosedError as e:
            logger.warning(
                "Dropping stream after failed write: %s", str(e),
                extra={"client_id": conn.connection_id, "event_type": event.get("type")},
            )
            self.unregister(conn.connection_id, conn.handle)
            conn.handle.close()
            return False

    def publish(self, event: dict) -> int:
        """
        Deliver to every connection of event["user_id"], or to all connections
        when the event carries no user_id. Returns how many received it.
        """
        user_id = event.get("user_id")
        delivered = 0
        # Iterate a snapshot so failed writes can unregister mid-loop
        for conn in list(self._connections.values()):
            if user_id is not None and conn.user_id != user_id:
                continue
            if self._deliver(conn, event):
                delivered += 1
        logger.debug(
            "Published %s to %d connection(s)", event.get("type"), delivered,
            extra={"event_type": event.get("type"), "user_id": user_id},
        )
        return delivered

    def publish_to_one(self, connection_id: str, event: dict) -> bool:
        """Deliver to a single connection. Missing id is a no-op returning False."""
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        return self._deliver(conn, event)

    def close_all(self) -> None:
        """Close every handle and empty the registry (app shutdown)."""
        for conn in list(self._connections.values()):
            conn.handle.close()
        self._connections.clear()
