import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TITLE = "New Conversation"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str = Field(default_factory=new_id)
    role: MessageRole
    content: str = ""
    images: Optional[list[str]] = None  # base64-encoded attachments
    timestamp: str = Field(default_factory=utc_now)
    mention_preview: Optional[str] = None  # First ~80 chars of a referenced message


class Conversation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = []
    created_at: str = Field(default_factory=utc_now)
    system_prompt: Optional[str] = None
    is_pinned: bool = False

    @property
    def last_active_date(self) -> str:
        if self.messages:
            return self.messages[-1].timestamp
        return self.created_at

    @property
    def message_count(self) -> int:
        """User + assistant messages; summary markers are not counted."""
        return sum(1 for m in self.messages if m.role != MessageRole.SYSTEM.value)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
