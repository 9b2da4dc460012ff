from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..config import AppConfig, get_config, update_config
from ..runtime import get_runtime

router = APIRouter(prefix="/api", tags=["settings"])


class SelectModelRequest(BaseModel):
    name: str


@router.get("/settings")
async def get_settings():
    return get_config().model_dump()


@router.put("/settings")
async def update_settings(config: AppConfig):
    # Thresholds and paths are read at startup; model and base_url apply on the next send.
    return update_config(config).model_dump()


@router.get("/models")
async def list_models(refresh: bool = False):
    models = get_runtime().models
    if refresh:
        await models.reload()
    else:
        await models.load_if_needed()
    return {
        "models": [m.name for m in models.models],
        "selected": models.selected_model_name,
        "state": models.load_state.value,
        "error": models.error_message,
    }


@router.put("/models/selected")
async def select_model(req: SelectModelRequest):
    models = get_runtime().models
    models.select_model(req.name)
    return {"selected": models.selected_model_name}


@router.get("/status")
async def server_status():
    status = get_runtime().status
    return {"status": status.status.value, "message": status.message}


@router.post("/status/ensure")
async def ensure_server():
    status = get_runtime().status
    await status.ensure_running()
    return {"status": status.status.value, "message": status.message}


@router.get("/summary")
async def get_summary(conversation_id: Optional[str] = None):
    return {"summary": get_runtime().summary_manager.load(conversation_id)}


@router.post("/summary/regenerate")
async def regenerate_summary(conversation_id: Optional[str] = None):
    runtime = get_runtime()
    conv_id = conversation_id or runtime.store.active_conversation_id
    if conv_id is None:
        raise HTTPException(status_code=404, detail="No conversation selected")
    summary = await runtime.summary_manager.regenerate(conv_id)
    if summary is None:
        raise HTTPException(status_code=502, detail="Summary could not be generated")
    return {"summary": summary}


@router.delete("/summary")
async def clear_summary(conversation_id: Optional[str] = None):
    get_runtime().summary_manager.clear(conversation_id)
    return {"status": "ok"}
