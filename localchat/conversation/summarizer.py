"""Rolling summary: keeps long conversations bounded.

After a successful generation the chat session awaits a SummaryManager check
on the conversation. Once it holds more than ``threshold`` messages, everything
but the recent window is condensed by the model, the condensed text becomes
the rolling summary, and the conversation is rewritten as

    [system "Conversation summary: ..."] + last ``recent_count`` messages

Messages appended while the model was working are kept after the marker.
Best effort: if the model call fails, or the summarized slice no longer
matches the head of the conversation, nothing is touched.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from ..config import SettingsProvider
from ..llm.base import InferenceBackend
from ..observable import Observable
from .models import Message, MessageRole
from .store import ConversationStore

logger = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = (
    "Summarize the following conversation in 12 bullet points or fewer. "
    "Focus on user goals, decisions, preferences, and open tasks."
)
SUMMARY_MARKER_PREFIX = "Conversation summary:\n"


class SummaryStore:
    """Rolling summary text on disk.

    ``global`` scope keeps one summary.txt shared by every conversation;
    ``conversation`` scope keeps summaries/<conversation_id>.txt.
    """

    def __init__(self, data_dir: Path, scope: str = "global"):
        self.data_dir = Path(data_dir)
        self.scope = scope

    def _path(self, conversation_id: Optional[str]) -> Path:
        if self.scope == "conversation" and conversation_id:
            return self.data_dir / "summaries" / f"{conversation_id}.txt"
        return self.data_dir / "summary.txt"

    def load(self, conversation_id: Optional[str] = None) -> str:
        path = self._path(conversation_id)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning("Failed to read %s: %s", path.name, e)
            return ""

    def save(self, text: str, conversation_id: Optional[str] = None) -> None:
        path = self._path(conversation_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".txt.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)

    def clear(self, conversation_id: Optional[str] = None) -> None:
        self._path(conversation_id).unlink(missing_ok=True)


def format_for_summary(messages: list[Message], max_chars: int) -> str:
    """ROLE: content lines, cut to a prefix of at most ``max_chars`` characters."""
    text = "\n".join(f"{m.role.upper()}: {m.content.strip()}" for m in messages)
    return text[:max_chars]


class SummaryManager(Observable):
    def __init__(
        self,
        store: ConversationStore,
        backend: InferenceBackend,
        summaries: SummaryStore,
        settings: SettingsProvider,
        threshold: int = 40,
        recent_count: int = 16,
        max_chars: int = 16_000,
    ):
        super().__init__()
        self.store = store
        self.backend = backend
        self.summaries = summaries
        self.settings = settings
        self.threshold = threshold
        self.recent_count = recent_count
        self.max_chars = max_chars
        self.is_generating = False

    async def generate_summary(self, messages: list[Message]) -> str:
        prompt = f"{SUMMARY_INSTRUCTION}\n\n{format_for_summary(messages, self.max_chars)}"
        return await self.backend.generate(prompt, self.settings.selected_model())

    async def check_and_run(self, conversation_id: str) -> bool:
        """Summarize and trim the conversation if it has grown past the threshold.

        Returns True only when the conversation was rewritten.
        """
        conv = self.store.get(conversation_id)
        if conv is None or len(conv.messages) <= self.threshold:
            return False

        older = conv.messages[: -self.recent_count] if self.recent_count else list(conv.messages)
        if not older:
            return False

        logger.info("Auto-summarize started: %d messages", len(older))
        try:
            summary_text = await self.generate_summary(older)
        except Exception as e:
            logger.error("Auto-summarize failed: %s", e)
            return False

        # Re-read: messages may have been added while the model was working.
        current = self.store.get(conversation_id)
        if current is None:
            logger.warning("Auto-summarize: conversation %s is gone", conversation_id)
            return False
        if [m.id for m in current.messages[: len(older)]] != [m.id for m in older]:
            logger.warning("Auto-summarize skipped: conversation %s changed underneath", conversation_id)
            return False

        try:
            self.summaries.save(summary_text, conversation_id)
        except OSError as e:
            logger.error("Auto-summarize could not store the summary: %s", e)
            return False

        # Everything after the summarized slice survives, including late additions.
        kept = current.messages[len(older):]
        marker = Message(role=MessageRole.SYSTEM, content=f"{SUMMARY_MARKER_PREFIX}{summary_text}")
        self.store.replace_messages(conversation_id, [marker] + kept)
        self._notify(self)
        logger.info("Auto-summarize complete: kept %d recent messages", len(kept))
        return True

    async def regenerate(self, conversation_id: str) -> Optional[str]:
        """Summarize a whole conversation on demand. Keeps the old summary on failure."""
        conv = self.store.get(conversation_id)
        if conv is None or not conv.messages:
            return None
        self.is_generating = True
        self._notify(self)
        try:
            summary_text = await self.generate_summary(conv.messages)
            self.summaries.save(summary_text, conversation_id)
            return summary_text
        except Exception as e:
            logger.warning("Summary regeneration failed: %s", e)
            return None
        finally:
            self.is_generating = False
            self._notify(self)

    def load(self, conversation_id: Optional[str] = None) -> str:
        return self.summaries.load(conversation_id)

    def clear(self, conversation_id: Optional[str] = None) -> None:
        self.summaries.clear(conversation_id)
        self._notify(self)
