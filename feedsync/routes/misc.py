"""
Miscellaneous routes: health check, refresh trigger, change events.
"""

import asyncio
import json

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from .. import __version__
from ..auth import verify_api_key
from ..config import state
from ..events import ChangeBroker

router = APIRouter(tags=["misc"], dependencies=[Depends(verify_api_key)])
public_router = APIRouter(tags=["misc"])

KEEPALIVE_SECONDS = 15


# ─────────────────────────────────────────────────────────────
# Health Check
# ─────────────────────────────────────────────────────────────

@public_router.get("/status")
async def health_check() -> dict:
    """API health check."""
    scheduler = state.scheduler
    return {
        "status": "ok",
        "version": __version__,
        "scheduler": {
            "running": bool(scheduler and scheduler.running),
            "ticking": bool(scheduler and scheduler.ticking),
            "last_tick_at": scheduler.last_tick_at if scheduler else None,
            "last_maintenance_at": scheduler.last_maintenance_at if scheduler else None,
        },
        "subscribers": state.broker.subscriber_count if state.broker else 0,
    }


# ─────────────────────────────────────────────────────────────
# Refresh
# ─────────────────────────────────────────────────────────────

@router.post("/refresh")
async def refresh_due_feeds(background_tasks: BackgroundTasks) -> dict:
    """Run a refresh tick now (in background)."""
    if not state.scheduler:
        raise HTTPException(status_code=500, detail="Scheduler not initialized")
    if state.scheduler.ticking:
        return {"success": True, "message": "Refresh already in progress"}

    background_tasks.add_task(state.scheduler.run_tick)
    return {"success": True, "message": "Refresh started"}


# ─────────────────────────────────────────────────────────────
# Change events
# ─────────────────────────────────────────────────────────────

async def event_stream(request: Request, broker: ChangeBroker):
    """Server-sent events for one subscriber until the client disconnects."""
    subscription = broker.subscribe()
    try:
        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(subscription.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            payload = dict(event.to_dict(), dropped=subscription.dropped)
            yield f"event: {event.type}\ndata: {json.dumps(payload)}\n\n"
    finally:
        subscription.close()


@router.get("/events")
async def stream_events(request: Request) -> StreamingResponse:
    """Live feed and folder change notifications."""
    if not state.broker:
        raise HTTPException(status_code=500, detail="Change broker not initialized")
    return StreamingResponse(
        event_stream(request, state.broker),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
