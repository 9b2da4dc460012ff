from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..runtime import get_runtime

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


class SavedPromptRequest(BaseModel):
    title: str = "Untitled Prompt"
    content: str = ""


@router.get("")
async def list_prompts():
    prompts = get_runtime().prompts.load_all()
    return {"prompts": [p.model_dump() for p in prompts]}


@router.post("")
async def add_prompt(req: SavedPromptRequest):
    prompt = get_runtime().prompts.add(req.title, req.content)
    return {"prompt": prompt.model_dump()}


@router.put("/{prompt_id}")
async def update_prompt(prompt_id: str, req: SavedPromptRequest):
    prompt = get_runtime().prompts.update(prompt_id, req.title, req.content)
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return {"prompt": prompt.model_dump()}


@router.post("/{prompt_id}/pin")
async def toggle_pin(prompt_id: str):
    prompt = get_runtime().prompts.toggle_pin(prompt_id)
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return {"prompt": prompt.model_dump()}


@router.delete("/{prompt_id}")
async def delete_prompt(prompt_id: str):
    if get_runtime().prompts.delete(prompt_id):
        return {"status": "deleted"}
    raise HTTPException(status_code=404, detail="Prompt not found")
