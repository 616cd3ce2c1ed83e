"""
Live event stream - Server-Sent Events for the dashboard.

GET /api/events?clientId=... keeps the response open and forwards every event
the Broadcaster publishes for the current user, plus "connected" on open and a
"heartbeat" every STREAM_HEARTBEAT_SECONDS.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from smsdash.api.deps import get_app_context, get_current_user
from smsdash.context import AppContext
from smsdash.schemas.api_responses import UserContext
from smsdash.services.live_stream import LiveStream

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/events")
async def event_stream(
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    ctx: AppContext = Depends(get_app_context),
    user: UserContext = Depends(get_current_user),
):
    stream = LiveStream(
        ctx.broadcaster,
        user,
        client_id=client_id,
        heartbeat_seconds=ctx.settings.stream_heartbeat_seconds,
        max_pending=ctx.settings.stream_max_pending,
    )
    logger.info("Opening live stream", extra={"client_id": stream.client_id, "user_id": user.user_id})
    return StreamingResponse(
        stream.events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
