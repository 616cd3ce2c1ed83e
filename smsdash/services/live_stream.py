"""
Live stream - transport adapter between one SSE response and the Broadcaster.

Lifecycle: CONNECTING -> OPEN -> CLOSED_BY_CLIENT | CLOSED_BY_ERROR.
Opening registers the handle and queues a "connected" event; a heartbeat task
writes every heartbeat_seconds; closing (from either side) stops the heartbeat,
unregisters, and closes the handle exactly once.
"""
import asyncio
import logging
import uuid
from enum import Enum
from typing import AsyncIterator, Optional

from smsdash.schemas.api_responses import UserContext
from smsdash.services.broadcaster import (
    Broadcaster,
    StreamHandle,
    build_event,
    format_sse,
    DEFAULT_MAX_PENDING,
)

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_SECONDS = 30.0


class StreamState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_BY_CLIENT = "closed_by_client"
    CLOSED_BY_ERROR = "closed_by_error"


CLOSED_STATES = (StreamState.CLOSED_BY_CLIENT, StreamState.CLOSED_BY_ERROR)


def generate_client_id() -> str:
    return f"client_{uuid.uuid4().hex[:16]}"


class LiveStream:
    def __init__(
        self,
        broadcaster: Broadcaster,
        user: UserContext,
        client_id: Optional[str] = None,
        heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
        max_pending: int = DEFAULT_MAX_PENDING,
    ):
        self.broadcaster = broadcaster
        self.user = user
        self.client_id = client_id or generate_client_id()
        self.heartbeat_seconds = heartbeat_seconds
        self.handle = StreamHandle(max_pending=max_pending)
        self.state = StreamState.CONNECTING
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def is_closed(self) -> bool:
        return self.state in CLOSED_STATES

    def open(self) -> None:
        """Register with the broadcaster, queue "connected", start the heartbeat."""
        if self.state is not StreamState.CONNECTING:
            return
        self.broadcaster.register(self.client_id, self.handle, self.user.user_id)
        self.state = StreamState.OPEN
        if not self.broadcaster.publish_to_one(
            self.client_id, build_event("connected", client_id=self.client_id)
        ):
            self.close(StreamState.CLOSED_BY_ERROR)
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat())

    async def _heartbeat(self) -> None:
        while self.state is StreamState.OPEN:
            await asyncio.sleep(self.heartbeat_seconds)
            if self.state is not StreamState.OPEN:
                return
            # A newer stream with the same client id may have taken over the registry slot
            if not self.broadcaster.owns(self.client_id, self.handle) or not (
                self.broadcaster.publish_to_one(self.client_id, build_event("heartbeat"))
            ):
                logger.warning(
                    "Heartbeat write failed, closing stream",
                    extra={"client_id": self.client_id},
                )
                self.close(StreamState.CLOSED_BY_ERROR)
                return

    def close(self, state: StreamState = StreamState.CLOSED_BY_CLIENT) -> None:
        """Idempotent. The first call decides the final state."""
        if self.is_closed:
            return
        self.state = state

        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        self.broadcaster.unregister(self.client_id, self.handle)
        self.handle.close()
        logger.info(
            "Stream %s", state.value,
            extra={"client_id": self.client_id, "user_id": self.user.user_id},
        )

    async def events(self) -> AsyncIterator[str]:
        """
        SSE frames for this connection. Ends when the handle is closed.
        Cancellation (client went away) closes the stream as CLOSED_BY_CLIENT.
        """
        self.open()
        closed_by = StreamState.CLOSED_BY_CLIENT
        try:
            while True:
                event = await self.handle.receive()
                if event is None:
                    closed_by = StreamState.CLOSED_BY_ERROR
                    break
                yield format_sse(event)
        finally:
            self.close(closed_by)
