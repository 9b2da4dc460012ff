"""Flat-file conversation storage.

One pretty-printed JSON document per conversation:
  <data_dir>/conversations/<conversation_id>.json
"""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from .models import Conversation, Message, MessageRole, parse_timestamp

logger = logging.getLogger(__name__)

_LEGACY_FILE = "conversation.json"


class PersistenceError(Exception):
    """A conversation document could not be written or removed."""


class ChatPersistence:
    def __init__(self, data_dir: Path):
        self.base_dir = Path(data_dir)
        self.directory = self.base_dir / "conversations"
        self.directory.mkdir(parents=True, exist_ok=True)
        self._migrate_legacy_file()

    def _path(self, conversation_id: str) -> Path:
        return self.directory / f"{conversation_id}.json"

    def load_all(self) -> list[Conversation]:
        """Load every readable conversation, newest first. Broken files are skipped."""
        conversations: list[Conversation] = []
        for conv_file in self.directory.glob("*.json"):
            try:
                data = json.loads(conv_file.read_text(encoding="utf-8"))
                conversations.append(Conversation(**data))
            except (json.JSONDecodeError, OSError, ValidationError, TypeError):
                logger.warning("Skipping unreadable conversation file %s", conv_file.name)
        conversations.sort(key=lambda c: parse_timestamp(c.created_at), reverse=True)
        return conversations

    def save(self, conversation: Conversation) -> None:
        """Atomically write a conversation document (temp file + rename)."""
        target = self._path(conversation.id)
        tmp = target.with_suffix(".json.tmp")
        try:
            tmp.write_text(
                json.dumps(conversation.model_dump(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(tmp, target)
        except OSError as e:
            raise PersistenceError(f"Failed to save conversation {conversation.id}: {e}") from e

    def delete(self, conversation_id: str) -> None:
        try:
            self._path(conversation_id).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete conversation {conversation_id}: {e}") from e

    def delete_all(self) -> None:
        for conv_file in self.directory.glob("*.json"):
            try:
                conv_file.unlink(missing_ok=True)
            except OSError as e:
                raise PersistenceError(f"Failed to delete {conv_file.name}: {e}") from e

    # ---- Migration ----

    def _migrate_legacy_file(self) -> None:
        """Import the old single-conversation message list, then remove it."""
        legacy = self.base_dir / _LEGACY_FILE
        if not legacy.exists():
            return
        try:
            raw = json.loads(legacy.read_text(encoding="utf-8"))
            messages = [Message(**m) for m in raw] if isinstance(raw, list) else []
        except (json.JSONDecodeError, OSError, ValidationError, TypeError):
            logger.warning("Legacy %s is unreadable, discarding", _LEGACY_FILE)
            messages = []

        if messages:
            title = next(
                (m.content[:50] for m in messages if m.role == MessageRole.USER.value),
                "Imported",
            )
            conv = Conversation(title=title, messages=messages)
            try:
                self.save(conv)
                logger.info("Migrated %d legacy messages into conversation %s", len(messages), conv.id)
            except PersistenceError as e:
                logger.error("Legacy migration failed: %s", e)
                return

        try:
            legacy.unlink()
        except OSError:
            logger.warning("Could not remove legacy %s", _LEGACY_FILE)
