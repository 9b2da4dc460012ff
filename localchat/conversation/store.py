"""In-memory conversation model with write-through persistence.

ConversationStore is the only object allowed to mutate conversations. Every
mutating call persists the affected document before it returns, then notifies
subscribers with a StoreEvent. Readers only ever get copies.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..observable import Observable
from .models import DEFAULT_TITLE, Conversation, Message, parse_timestamp
from .storage import ChatPersistence, PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreEvent:
    kind: str  # "loaded" | "created" | "deleted" | "updated" | "message_added" | ...
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None


class ConversationStore(Observable):
    def __init__(self, persistence: ChatPersistence):
        super().__init__()
        self.persistence = persistence
        self._conversations: list[Conversation] = []
        self.active_conversation_id: Optional[str] = None
        self.last_persistence_error: Optional[str] = None

    # ---- Reads ----

    @property
    def conversations(self) -> list[Conversation]:
        return [c.model_copy(deep=True) for c in self._conversations]

    def get(self, conversation_id: Optional[str]) -> Optional[Conversation]:
        conv = self._find(conversation_id)
        return conv.model_copy(deep=True) if conv else None

    @property
    def active_conversation(self) -> Optional[Conversation]:
        return self.get(self.active_conversation_id)

    def select(self, conversation_id: Optional[str]) -> None:
        if conversation_id is not None and self._find(conversation_id) is None:
            logger.warning("Select ignored: unknown conversation %s", conversation_id)
            return
        self.active_conversation_id = conversation_id
        self._notify(StoreEvent("selected", conversation_id))

    # ---- Lifecycle ----

    def load_all(self) -> list[Conversation]:
        self._conversations = self.persistence.load_all()
        self.active_conversation_id = self._conversations[0].id if self._conversations else None
        logger.info("Loaded %d conversations", len(self._conversations))
        self._notify(StoreEvent("loaded"))
        return self.conversations

    def create(self, conversation_id: Optional[str] = None) -> Conversation:
        if conversation_id is not None:
            existing = self._find(conversation_id)
            if existing is not None:
                return existing.model_copy(deep=True)
            conv = Conversation(id=conversation_id)
        else:
            conv = Conversation()
        self._conversations.insert(0, conv)
        self.active_conversation_id = conv.id
        self._persist(conv)
        logger.info("New conversation created: %s", conv.id)
        self._notify(StoreEvent("created", conv.id))
        return conv.model_copy(deep=True)

    def delete(self, conversation_id: str) -> bool:
        conv = self._find(conversation_id)
        if conv is None:
            return False
        logger.info("Deleting conversation: %s", conversation_id)
        self._conversations.remove(conv)
        self._write(self.persistence.delete, conversation_id)
        if self.active_conversation_id == conversation_id:
            self.active_conversation_id = self._conversations[0].id if self._conversations else None
        self._notify(StoreEvent("deleted", conversation_id))
        return True

    def delete_all(self) -> int:
        count = len(self._conversations)
        logger.info("Deleting all %d conversations", count)
        self._conversations.clear()
        self._write(self.persistence.delete_all)
        self.active_conversation_id = None
        self._notify(StoreEvent("deleted"))
        return count

    # ---- Conversation attributes ----

    def rename(self, conversation_id: str, title: str) -> bool:
        trimmed = title.strip()
        conv = self._find(conversation_id)
        if not trimmed or conv is None:
            return False
        conv.title = trimmed
        self._commit(conv, "updated")
        logger.info("Renamed conversation %s to: %s", conversation_id, trimmed)
        return True

    def toggle_pin(self, conversation_id: str) -> Optional[bool]:
        conv = self._find(conversation_id)
        if conv is None:
            return None
        conv.is_pinned = not conv.is_pinned
        self._commit(conv, "updated")
        logger.info("Toggled pin for conversation %s: %s", conversation_id, conv.is_pinned)
        return conv.is_pinned

    def set_system_prompt(self, conversation_id: str, text: Optional[str]) -> bool:
        conv = self._find(conversation_id)
        if conv is None:
            return False
        conv.system_prompt = text
        self._commit(conv, "updated")
        if text is None:
            logger.info("Per-conversation system prompt reset")
        else:
            logger.info("Per-conversation system prompt applied (%d chars)", len(text))
        return True

    def auto_title(self, conversation_id: str, text: str) -> None:
        """Derive a title from the first user message if the default is still in place."""
        conv = self._find(conversation_id)
        if conv is None or conv.title != DEFAULT_TITLE or not text.strip():
            return
        conv.title = text[:50]
        self._commit(conv, "updated")

    # ---- Messages ----

    def append_message(self, conversation_id: str, message: Message) -> bool:
        conv = self._find(conversation_id)
        if conv is None:
            return False
        conv.messages.append(message.model_copy(deep=True))
        self._commit(conv, "message_added", message.id)
        return True

    def replace_message(self, conversation_id: str, message_id: str, new_content: str) -> bool:
        conv = self._find(conversation_id)
        if conv is None:
            return False
        for i, m in enumerate(conv.messages):
            if m.id == message_id:
                conv.messages[i] = m.model_copy(update={"content": new_content})
                self._commit(conv, "message_updated", message_id)
                return True
        return False

    def remove_message(self, conversation_id: str, message_id: str) -> bool:
        conv = self._find(conversation_id)
        if conv is None:
            return False
        before = len(conv.messages)
        conv.messages = [m for m in conv.messages if m.id != message_id]
        if len(conv.messages) == before:
            return False
        self._commit(conv, "message_removed", message_id)
        return True

    def replace_messages(self, conversation_id: str, new_list: list[Message]) -> bool:
        conv = self._find(conversation_id)
        if conv is None:
            return False
        conv.messages = [m.model_copy(deep=True) for m in new_list]
        self._commit(conv, "messages_replaced")
        return True

    # ---- Internals ----

    def _find(self, conversation_id: Optional[str]) -> Optional[Conversation]:
        if conversation_id is None:
            return None
        for conv in self._conversations:
            if conv.id == conversation_id:
                return conv
        return None

    def _commit(self, conv: Conversation, kind: str, message_id: Optional[str] = None) -> None:
        self._persist(conv)
        self._notify(StoreEvent(kind, conv.id, message_id))

    def _persist(self, conv: Conversation) -> None:
        self._write(self.persistence.save, conv)

    def _write(self, operation, *args) -> bool:
        """Run a persistence call, retrying once. Failures are recorded, never raised."""
        for attempt in (1, 2):
            try:
                operation(*args)
                return True
            except PersistenceError as e:
                if attempt == 1:
                    logger.warning("%s; retrying once", e)
                    continue
                logger.error("%s; giving up", e)
                self.last_persistence_error = str(e)
        return False


# ---------------------------------------------------------------------------
# Sidebar projections
# ---------------------------------------------------------------------------

@dataclass
class DateSection:
    name: str
    conversations: list[Conversation]


def filter_conversations(conversations: list[Conversation], search_text: str = "") -> list[Conversation]:
    """Case-insensitive title filter, most recently active first."""
    needle = search_text.strip().lower()
    base = [c for c in conversations if needle in c.title.lower()] if needle else list(conversations)
    return sorted(base, key=lambda c: parse_timestamp(c.last_active_date), reverse=True)


def pinned(conversations: list[Conversation]) -> list[Conversation]:
    return [c for c in conversations if c.is_pinned]


def unpinned(conversations: list[Conversation]) -> list[Conversation]:
    return [c for c in conversations if not c.is_pinned]


def group_by_date(conversations: list[Conversation], now: Optional[datetime] = None) -> list[DateSection]:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    boundaries = [
        ("Today", start_of_today),
        ("Yesterday", start_of_today - timedelta(days=1)),
        ("Previous 7 Days", start_of_today - timedelta(days=7)),
        ("Previous 30 Days", start_of_today - timedelta(days=30)),
    ]
    buckets: dict[str, list[Conversation]] = {name: [] for name, _ in boundaries}
    buckets["Older"] = []

    for conv in unpinned(filter_conversations(conversations)):
        active = parse_timestamp(conv.last_active_date)
        for name, start in boundaries:
            if active >= start:
                buckets[name].append(conv)
                break
        else:
            buckets["Older"].append(conv)

    return [DateSection(name, convs) for name, convs in buckets.items() if convs]
