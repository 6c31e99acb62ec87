"""Server-sent event feed of inserted matches and alerts."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from apps.api.services.notifier import BUS

LOGGER = logging.getLogger(__name__)
router = APIRouter()

STREAM_TABLES = ("matches", "alerts")


def _format_event(event: dict) -> str:
    return f"event: {event['table']}\ndata: {json.dumps(event)}\n\n"


@router.get("/events", response_class=StreamingResponse)
async def stream_events(
    tables: Optional[List[str]] = Query(None, description="Restrict to these tables"),
    replay: int = Query(0, ge=0, le=200, description="Replay this many recent events first"),
    max_events: Optional[int] = Query(None, ge=1, le=10000),
    keepalive_s: float = Query(15.0, ge=0.05, le=300.0),
):
    wanted = [t for t in (tables or STREAM_TABLES) if t in STREAM_TABLES] or list(STREAM_TABLES)

    async def event_stream():
        # Subscribe here so the finally below always pairs with it.
        subscription, backlog = BUS.subscribe_with_history(wanted, replay)
        sent = 0
        try:
            for event in backlog:
                yield _format_event(event)
                sent += 1
                if max_events is not None and sent >= max_events:
                    return
            while max_events is None or sent < max_events:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=keepalive_s)
                except asyncio.TimeoutError:
                    # SSE comment line keeps proxies from closing the idle stream.
                    yield ": keepalive\n\n"
                    continue
                yield _format_event(event)
                sent += 1
        finally:
            BUS.unsubscribe(subscription)

    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)


__all__ = ["router"]
