"""Ollama backend: local inference through Ollama's native /api endpoints."""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx

from ..config import DEFAULT_BASE_URL, SettingsProvider
from .base import BackendError, InferenceBackend, ModelInfo

logger = logging.getLogger(__name__)

_LAUNCH_CANDIDATES = [
    "/usr/local/bin/ollama",
    "/opt/homebrew/bin/ollama",
]


class OllamaBackend(InferenceBackend):
    """Talks to Ollama's native API.

    With a ``settings`` provider the server address is read from it on every
    request, so a changed base_url applies without a restart.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        settings: Optional[SettingsProvider] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.settings = settings

    @property
    def base_url(self) -> str:
        if self.settings is not None:
            return (self.settings.base_url() or self._base_url).rstrip("/")
        return self._base_url

    async def list_models(self) -> list[ModelInfo]:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(f"{self.base_url}/api/tags")
            if resp.status_code >= 400:
                raise BackendError(f"HTTP {resp.status_code}: {resp.text[:200]}")
            try:
                data = resp.json()
            except ValueError as e:
                raise BackendError(f"Invalid model list: {e}") from e
        names = [m.get("name", "") for m in data.get("models", [])]
        return [ModelInfo(name=n) for n in names if n]

    async def is_reachable(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
                return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def generate(self, prompt: str, model: str) -> str:
        payload = {"model": model, "prompt": prompt, "stream": False}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(f"{self.base_url}/api/generate", json=payload)
            if resp.status_code >= 400:
                raise BackendError(f"HTTP {resp.status_code}: {resp.text[:200]}")
            try:
                return resp.json()["response"]
            except (ValueError, KeyError, TypeError) as e:
                raise BackendError(f"Unexpected generate response: {e}") from e

    async def stream_generate(
        self, prompt: str, model: str, images: Optional[list[str]] = None
    ) -> AsyncIterator[str]:
        payload: dict = {"model": model, "prompt": prompt, "stream": True}
        if images:
            payload["images"] = images

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream("POST", f"{self.base_url}/api/generate", json=payload) as resp:
                if resp.status_code >= 400:
                    body = await resp.aread()
                    raise BackendError(f"HTTP {resp.status_code}: {body[:200].decode(errors='replace')}")
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping undecodable stream line: %.80s", line)
                        continue
                    fragment = chunk.get("response", "")
                    if fragment:
                        yield fragment
                    if chunk.get("done") is True:
                        return

    def launch_process(self) -> bool:
        candidates = [p for p in _LAUNCH_CANDIDATES if Path(p).is_file()]
        on_path = shutil.which("ollama")
        if on_path:
            candidates.append(on_path)

        for path in candidates:
            try:
                subprocess.Popen(
                    [path, "serve"],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
                logger.info("Launched %s serve", path)
                return True
            except OSError as e:
                logger.warning("Could not launch %s: %s", path, e)
        return False
