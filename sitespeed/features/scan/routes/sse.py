"""
SSE (Server-Sent Events) endpoint for real-time scan progress.

Clients get the current state on connect, then one event per item
transition, so results can be rendered as they complete.
"""
import asyncio
import json
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from sitespeed.features.scan.dependencies import get_orchestrator
from sitespeed.features.scan.services.orchestrator import ScanOrchestrator
from sitespeed.platform.config import settings
from sitespeed.platform.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])


async def scan_event_stream(
    request: Request,
    orchestrator: ScanOrchestrator,
    heartbeat_seconds: float,
) -> AsyncGenerator[dict, None]:
    queue = orchestrator.events.subscribe()
    try:
        yield {
            "event": "state",
            "data": json.dumps({
                "state": orchestrator.state().model_dump(mode="json"),
                "items": [item.model_dump(mode="json") for item in orchestrator.snapshot()],
            }),
        }

        while True:
            if await request.is_disconnected():
                logger.info("SSE: Client disconnected")
                break

            try:
                payload = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield {
                    "event": "heartbeat",
                    "data": json.dumps({"timestamp": asyncio.get_running_loop().time()}),
                }
                continue

            yield {"event": payload["event"], "data": json.dumps(payload)}
    finally:
        orchestrator.events.unsubscribe(queue)
        logger.info("SSE: Closed scan progress stream")


@router.get(
    "/stream",
    summary="Stream scan progress (SSE)",
    description="""
    Stream real-time scan progress using Server-Sent Events.

    **Event Types:**
    - `state`: sent once on connect with the run state and every item
    - `run_started`: a batch was claimed (full list, failed subset or one URL)
    - `item_updated`: one item changed; carries the item and the run state
    - `run_finished`: the batch drained or was stopped
    - `heartbeat`: keep-alive when nothing happened for a while
    """,
)
async def stream_scan_progress(
    request: Request,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    logger.info("SSE: Client connected")
    return EventSourceResponse(
        scan_event_stream(request, orchestrator, settings.SSE_HEARTBEAT_SECONDS),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
