import asyncio
import base64
import binascii
import json
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..conversation.store import StoreEvent
from ..runtime import get_runtime

router = APIRouter(prefix="/api/chat", tags=["chat"])


class SendRequest(BaseModel):
    text: str = ""
    images: list[str] = []  # base64
    mention_message_id: Optional[str] = None
    web_search: bool = False


class SystemPromptRequest(BaseModel):
    text: Optional[str] = None
    saved_prompt_id: Optional[str] = None


def _session_status() -> dict:
    session = get_runtime().session
    return {
        "state": session.state.value,
        "is_loading": session.is_loading,
        "error": session.error,
    }


def _mention_excerpt(message_id: Optional[str]) -> Optional[str]:
    if not message_id:
        return None
    conv = get_runtime().store.active_conversation
    if conv is None:
        return None
    for m in conv.messages:
        if m.id == message_id:
            return m.content
    return None


@router.post("/send")
async def send_message(req: SendRequest):
    runtime = get_runtime()
    try:
        images = [base64.b64decode(img, validate=True) for img in req.images]
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Images must be base64 encoded")

    task = runtime.session.send(
        req.text,
        images=images,
        mention_excerpt=_mention_excerpt(req.mention_message_id),
        web_search=req.web_search,
    )
    if task is None:
        raise HTTPException(status_code=409, detail="Message was not sent")
    return {"conversation_id": runtime.store.active_conversation_id, **_session_status()}


@router.post("/stop")
async def stop_generation():
    stopped = get_runtime().session.stop()
    return {"stopped": stopped}


@router.get("/status")
async def get_status():
    return _session_status()


@router.put("/system-prompt")
async def set_system_prompt(req: SystemPromptRequest):
    session = get_runtime().session
    if req.saved_prompt_id:
        ok = session.apply_saved_prompt(req.saved_prompt_id)
    elif req.text is not None:
        ok = session.apply_system_prompt(req.text)
    else:
        ok = session.reset_system_prompt()
    if not ok:
        raise HTTPException(status_code=404, detail="No conversation or prompt found")
    return {"status": "ok"}


async def _event_stream():
    runtime = get_runtime()
    queue: asyncio.Queue = asyncio.Queue()

    def on_store(event: StoreEvent) -> None:
        queue.put_nowait({
            "type": "store",
            "kind": event.kind,
            "conversation_id": event.conversation_id,
            "message_id": event.message_id,
        })

    def on_session(_session) -> None:
        queue.put_nowait({"type": "session", **_session_status()})

    unsubscribe_store = runtime.store.subscribe(on_store)
    unsubscribe_session = runtime.session.subscribe(on_session)
    try:
        while True:
            try:
                entry = await asyncio.wait_for(queue.get(), timeout=30)
                yield f"data: {json.dumps(entry)}\n\n"
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
    finally:
        unsubscribe_store()
        unsubscribe_session()


@router.get("/events")
async def stream_events():
    return StreamingResponse(
        _event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
