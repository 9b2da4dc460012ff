"""Saved prompt templates, one JSON file each under <data_dir>/saved-prompts/."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .conversation.models import new_id, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class SavedPrompt(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    title: str
    content: str = ""
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = ""  # Older files have no updated_at; falls back to created_at
    last_used_at: Optional[str] = None
    is_pinned: bool = False

    def model_post_init(self, __context) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at


class SavedPromptStore:
    def __init__(self, data_dir: Path):
        self.directory = Path(data_dir) / "saved-prompts"
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, prompt_id: str) -> Path:
        return self.directory / f"{prompt_id}.json"

    def load_all(self) -> list[SavedPrompt]:
        """Pinned first, then most recently updated."""
        prompts: list[SavedPrompt] = []
        for prompt_file in self.directory.glob("*.json"):
            try:
                prompts.append(SavedPrompt(**json.loads(prompt_file.read_text(encoding="utf-8"))))
            except (json.JSONDecodeError, OSError, ValidationError, TypeError):
                logger.warning("Skipping unreadable saved prompt %s", prompt_file.name)
        prompts.sort(key=lambda p: parse_timestamp(p.updated_at), reverse=True)
        prompts.sort(key=lambda p: not p.is_pinned)
        return prompts

    def get(self, prompt_id: str) -> Optional[SavedPrompt]:
        path = self._path(prompt_id)
        if not path.exists():
            return None
        try:
            return SavedPrompt(**json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, OSError, ValidationError, TypeError):
            logger.error("Failed to load saved prompt %s", prompt_id)
            return None

    def save(self, prompt: SavedPrompt) -> None:
        self._path(prompt.id).write_text(
            json.dumps(prompt.model_dump(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    def add(self, title: str, content: str) -> SavedPrompt:
        prompt = SavedPrompt(title=title, content=content)
        self.save(prompt)
        logger.info("Added saved prompt: %s", prompt.id)
        return prompt

    def update(self, prompt_id: str, title: str, content: str) -> Optional[SavedPrompt]:
        prompt = self.get(prompt_id)
        if prompt is None:
            return None
        prompt.title = title
        prompt.content = content
        prompt.updated_at = utc_now()
        self.save(prompt)
        logger.info("Updated saved prompt: %s", prompt_id)
        return prompt

    def delete(self, prompt_id: str) -> bool:
        path = self._path(prompt_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted saved prompt: %s", prompt_id)
        return True

    def toggle_pin(self, prompt_id: str) -> Optional[SavedPrompt]:
        prompt = self.get(prompt_id)
        if prompt is None:
            return None
        prompt.is_pinned = not prompt.is_pinned
        self.save(prompt)
        return prompt

    def mark_used(self, prompt_id: str) -> Optional[SavedPrompt]:
        prompt = self.get(prompt_id)
        if prompt is None:
            return None
        prompt.last_used_at = utc_now()
        self.save(prompt)
        return prompt
