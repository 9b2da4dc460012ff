from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..conversation.models import Conversation
from ..conversation.store import filter_conversations, group_by_date, pinned
from ..runtime import get_runtime

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


class CreateConversationRequest(BaseModel):
    id: Optional[str] = None


class RenameConversationRequest(BaseModel):
    title: str


def _summary(conv: Conversation) -> dict:
    return {
        "id": conv.id,
        "title": conv.title,
        "is_pinned": conv.is_pinned,
        "message_count": conv.message_count,
        "created_at": conv.created_at,
        "last_active_date": conv.last_active_date,
    }


@router.get("")
async def list_conversations(q: str = ""):
    store = get_runtime().store
    conversations = filter_conversations(store.conversations, q)
    return {
        "active_conversation_id": store.active_conversation_id,
        "pinned": [_summary(c) for c in pinned(conversations)],
        "sections": [
            {"name": s.name, "conversations": [_summary(c) for c in s.conversations]}
            for s in group_by_date(conversations)
        ],
    }


@router.post("")
async def create_conversation(req: CreateConversationRequest):
    conv = get_runtime().store.create(req.id)
    return {"conversation": conv.model_dump()}


@router.delete("")
async def delete_all_conversations():
    count = get_runtime().store.delete_all()
    return {"deleted": count}


@router.get("/{conv_id}")
async def get_conversation(conv_id: str):
    conv = get_runtime().store.get(conv_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"conversation": conv.model_dump()}


@router.post("/{conv_id}/select")
async def select_conversation(conv_id: str):
    store = get_runtime().store
    if store.get(conv_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    store.select(conv_id)
    return {"active_conversation_id": conv_id}


@router.put("/{conv_id}")
async def rename_conversation(conv_id: str, req: RenameConversationRequest):
    store = get_runtime().store
    if not store.rename(conv_id, req.title):
        if store.get(conv_id) is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        raise HTTPException(status_code=400, detail="Title must not be empty")
    return {"conversation": _summary(store.get(conv_id))}


@router.post("/{conv_id}/pin")
async def toggle_pin(conv_id: str):
    is_pinned = get_runtime().store.toggle_pin(conv_id)
    if is_pinned is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"is_pinned": is_pinned}


@router.delete("/{conv_id}")
async def delete_conversation(conv_id: str):
    # Deleting an unknown id is a no-op, not an error.
    deleted = get_runtime().store.delete(conv_id)
    return {"status": "deleted" if deleted else "missing"}
