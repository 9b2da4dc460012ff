import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from .llm.base import InferenceBackend
from .observable import Observable

logger = logging.getLogger(__name__)

LAUNCH_FAILED_MESSAGE = "Could not start Ollama. Make sure it is installed."


class ServerStatus(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"


class AppStatus(Observable):
    """Makes sure the inference server is up before the first send."""

    def __init__(self, backend: InferenceBackend, startup_timeout: float = 12.0, poll_interval: float = 0.4):
        super().__init__()
        self.backend = backend
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self.status = ServerStatus.IDLE
        self.message: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == ServerStatus.READY

    def _set(self, status: ServerStatus, message: Optional[str] = None) -> None:
        self.status = status
        self.message = message
        self._notify(self)

    async def ensure_running(self) -> ServerStatus:
        self._set(ServerStatus.CHECKING)
        if await self.backend.is_reachable():
            self._set(ServerStatus.READY)
            return self.status

        self._set(ServerStatus.STARTING)
        if not self.backend.launch_process():
            logger.warning("No inference server binary could be launched")

        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            await asyncio.sleep(self.poll_interval)
            if await self.backend.is_reachable():
                logger.info("Inference server is ready")
                self._set(ServerStatus.READY)
                return self.status

        logger.error(LAUNCH_FAILED_MESSAGE)
        self._set(ServerStatus.FAILED, LAUNCH_FAILED_MESSAGE)
        return self.status
