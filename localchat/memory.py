import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class UserProfile(BaseModel):
    name: str = ""
    language: str = "english"
    tone: str = "direct, practical"


class LongTermMemory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_profile: UserProfile = UserProfile()
    facts: list[str] = []
    preferences: list[str] = []

    def is_empty(self) -> bool:
        return not (self.user_profile.name or self.facts or self.preferences)

    def render(self) -> str:
        p = self.user_profile
        facts = "; ".join(self.facts) if self.facts else "none"
        prefs = "; ".join(self.preferences) if self.preferences else "none"
        return (
            f"User: {p.name or 'unknown'} | Language: {p.language} | Tone: {p.tone}\n"
            f"Facts: {facts}\n"
            f"Preferences: {prefs}"
        )


class MemoryStore:
    """memory.json under the data directory."""

    def __init__(self, data_dir: Path):
        self.file = Path(data_dir) / "memory.json"

    def load(self) -> LongTermMemory:
        if self.file.exists():
            try:
                data = json.loads(self.file.read_text(encoding="utf-8"))
                return LongTermMemory(**data)
            except Exception:
                logger.warning("Failed to load memory.json, using defaults")
        return LongTermMemory()

    def save(self, memory: LongTermMemory) -> None:
        self.file.parent.mkdir(parents=True, exist_ok=True)
        self.file.write_text(
            json.dumps(memory.model_dump(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def add_fact(self, fact: str) -> bool:
        return self._add("facts", fact)

    def add_preference(self, preference: str) -> bool:
        return self._add("preferences", preference)

    def _add(self, field: str, value: str) -> bool:
        trimmed = value.strip()
        memory = self.load()
        items: list[str] = getattr(memory, field)
        if not trimmed or trimmed in items:
            return False
        items.append(trimmed)
        self.save(memory)
        return True

    def remove_facts(self, facts: set[str]) -> int:
        return self._remove("facts", facts)

    def remove_preferences(self, preferences: set[str]) -> int:
        return self._remove("preferences", preferences)

    def _remove(self, field: str, values: set[str]) -> int:
        memory = self.load()
        before: list[str] = getattr(memory, field)
        kept = [v for v in before if v not in values]
        setattr(memory, field, kept)
        self.save(memory)
        return len(before) - len(kept)

    def update_profile(self, profile: UserProfile) -> LongTermMemory:
        memory = self.load()
        memory.user_profile = profile
        self.save(memory)
        return memory

    def clear(self) -> LongTermMemory:
        memory = LongTermMemory()
        self.save(memory)
        return memory
