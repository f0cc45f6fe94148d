"""Change feed endpoint: one JSON change event per line for as long as the client listens."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from starlette.responses import StreamingResponse

from ..models.events import dump_change_event
from .dependencies import require_owner

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/changes")
async def stream_changes(request: Request, owner_id: str = Depends(require_owner)):
    """Stream the caller's insert/update/delete events as NDJSON.

    Blank lines are sent as heartbeats while idle.
    """
    from . import runtime_config, store

    heartbeat = runtime_config.feed_heartbeat_seconds if runtime_config else 15.0
    queue: asyncio.Queue = asyncio.Queue()
    subscription = await store.subscribe_changes(owner_id, queue.put_nowait)
    logger.info(f"Change feed opened for {owner_id}")

    async def event_lines():
        try:
            yield "\n"
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=heartbeat)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield "\n"
                    continue
                yield dump_change_event(event) + "\n"
        finally:
            await subscription.close()
            logger.info(f"Change feed closed for {owner_id}")

    return StreamingResponse(event_lines(), media_type="application/x-ndjson")
