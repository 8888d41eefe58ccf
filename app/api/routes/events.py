from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from loguru import logger

from app.api.deps import get_tracker
from app.services.hub import BroadcastHub
from app.services.tracker import Tracker

router = APIRouter(tags=["events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # disable proxy buffering (nginx)
    "X-Accel-Buffering": "no",
}


async def sse_stream(hub: BroadcastHub) -> AsyncIterator[str]:
    # subscribe on first iteration: a client gone before the body starts
    # never registers a feed
    feed = await hub.subscribe()
    try:
        async for payload in feed.events():
            yield f"data: {payload}\n\n"
    finally:
        # runs on client disconnect (cancellation) as well as feed close
        await hub.unsubscribe(feed)
        logger.debug(f"SSE stream for {feed!r} finished")


@router.get("/events")
async def events(tracker: Tracker = Depends(get_tracker)):
    return StreamingResponse(
        sse_stream(tracker.hub),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
