from fastapi import APIRouter
from pydantic import BaseModel

from ..memory import UserProfile
from ..runtime import get_runtime

router = APIRouter(prefix="/api/memory", tags=["memory"])


class MemoryItemRequest(BaseModel):
    content: str


class RemoveItemsRequest(BaseModel):
    items: list[str]


@router.get("")
async def get_memory():
    return get_runtime().memory.load().model_dump()


@router.put("/profile")
async def update_profile(profile: UserProfile):
    return get_runtime().memory.update_profile(profile).model_dump()


@router.post("/facts")
async def add_fact(req: MemoryItemRequest):
    return {"added": get_runtime().memory.add_fact(req.content)}


@router.post("/preferences")
async def add_preference(req: MemoryItemRequest):
    return {"added": get_runtime().memory.add_preference(req.content)}


@router.post("/facts/remove")
async def remove_facts(req: RemoveItemsRequest):
    return {"removed": get_runtime().memory.remove_facts(set(req.items))}


@router.post("/preferences/remove")
async def remove_preferences(req: RemoveItemsRequest):
    return {"removed": get_runtime().memory.remove_preferences(set(req.items))}


@router.delete("")
async def clear_memory():
    return get_runtime().memory.clear().model_dump()
