from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional


class BackendError(Exception):
    """The inference server answered with an error or an unreadable body."""


@dataclass
class ModelInfo:
    name: str


class InferenceBackend(ABC):
    """Contract the chat core needs from an inference server."""

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return the models installed on the server."""
        ...

    @abstractmethod
    async def is_reachable(self) -> bool:
        ...

    @abstractmethod
    async def generate(self, prompt: str, model: str) -> str:
        """Single-shot generation; returns the whole response text."""
        ...

    @abstractmethod
    def stream_generate(
        self, prompt: str, model: str, images: Optional[list[str]] = None
    ) -> AsyncIterator[str]:
        """Stream response fragments. Closing the iterator must close the connection."""
        ...

    def launch_process(self) -> bool:
        """Try to start the server locally. Returns True if a process was spawned."""
        return False
