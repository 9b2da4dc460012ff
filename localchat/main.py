import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from localchat.api.routes_chat import router as chat_router
from localchat.api.routes_conversation import router as conversation_router
from localchat.api.routes_logs import router as logs_router
from localchat.api.routes_memory import router as memory_router
from localchat.api.routes_prompts import router as prompts_router
from localchat.api.routes_settings import router as settings_router
from localchat.config import get_config
from localchat.logs import setup_logging
from localchat.runtime import get_runtime

setup_logging(get_config().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    runtime = get_runtime()
    # Probe (and if needed launch) the inference server without blocking startup.
    startup = asyncio.create_task(runtime.status.ensure_running())
    yield
    # Cancels a running reply and its summary step together.
    runtime.session.stop()
    await runtime.session.wait()
    if not startup.done():
        startup.cancel()
    logger.info("Shutdown complete")


app = FastAPI(title="localchat", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",     # Vite dev server
        "http://127.0.0.1:5173",
        "null",                      # Desktop shell file:// origin
    ],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(chat_router)
app.include_router(conversation_router)
app.include_router(prompts_router)
app.include_router(memory_router)
app.include_router(settings_router)
app.include_router(logs_router)
