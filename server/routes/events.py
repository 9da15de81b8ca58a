"""
Global event SSE endpoint.

Remote approval front ends subscribe here to receive dialog renders,
select prompts and notifications.
"""

import json
from typing import AsyncGenerator

from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse

from ..event_bus import get_event_bus


router = APIRouter()


@router.get("/global/event")
async def global_event(types: str | None = Query(None)) -> EventSourceResponse:
    """
    Subscribe to gate events via SSE.

    Args:
        types: Optional comma-separated event type prefixes to receive
    """
    event_bus = get_event_bus()
    prefixes = tuple(item.strip() for item in types.split(",") if item.strip()) if types else ()

    async def event_generator() -> AsyncGenerator[dict, None]:
        queue = event_bus.subscribe()
        try:
            while True:
                event = await queue.get()
                if prefixes and not event["type"].startswith(prefixes):
                    continue
                yield {"event": event["type"], "data": json.dumps(event)}
        finally:
            event_bus.unsubscribe(queue)

    return EventSourceResponse(event_generator())
