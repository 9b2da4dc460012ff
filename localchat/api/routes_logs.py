import asyncio
import json

from fastapi import APIRouter
from starlette.responses import StreamingResponse

from ..logs import BufferedLogHandler, log_handler

router = APIRouter(prefix="/api/logs", tags=["logs"])


async def _log_stream_generator(handler: BufferedLogHandler):
    queue = handler.subscribe(asyncio.get_running_loop())
    try:
        for entry in handler.get_buffer():
            yield f"data: {json.dumps(entry)}\n\n"
        while True:
            try:
                entry = await asyncio.wait_for(queue.get(), timeout=30)
                yield f"data: {json.dumps(entry)}\n\n"
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
    finally:
        handler.unsubscribe(queue)


@router.get("")
async def get_logs():
    return {"logs": log_handler.get_buffer()}


@router.get("/stream")
async def stream_logs():
    return StreamingResponse(
        _log_stream_generator(log_handler),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.delete("")
async def clear_logs():
    log_handler.clear()
    return {"status": "ok"}
