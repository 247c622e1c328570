from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from ..auth import get_current_user_api
from ..config import get_settings
from ..deps import get_channel
from ..models import User
from ..realtime import BroadcastChannel, sse_stream

router = APIRouter()


@router.get("/stream")
async def event_stream(
    request: Request,
    events: str | None = Query(default=None, description="Comma-separated event names; default is all"),
    channel: BroadcastChannel = Depends(get_channel),
    user: User = Depends(get_current_user_api),
):
    """Live task and notification events as Server-Sent Events.

    Every session receives every event it subscribed to. Clients drop
    `notification:created` events whose `userId` is not their own.
    """
    wanted = [e.strip() for e in (events or "").split(",") if e.strip()] or None
    try:
        session = channel.connect(user_id=str(user.id), events=wanted, loop=asyncio.get_running_loop())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return StreamingResponse(
        sse_stream(
            channel,
            session,
            heartbeat_seconds=float(get_settings().realtime.heartbeat_seconds),
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
