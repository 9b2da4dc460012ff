from typing import Optional, Sequence

from ..conversation.models import Message
from ..memory import LongTermMemory

CORE_INSTRUCTIONS = (
    "You are a helpful personal assistant. Reply in English. "
    "Be concise, direct, and practical. "
    "Use the user's context and memory below to give relevant answers."
)

MAX_REFERENCED_CHARS = 500


def build_prompt(
    core_instructions: str,
    session_override: Optional[str],
    summary: str,
    recent_messages: Sequence[Message],
    new_user_text: str,
    referenced_excerpt: Optional[str] = None,
    search_results: Optional[str] = None,
    memory: Optional[LongTermMemory] = None,
) -> str:
    """Assemble the single prompt string sent to /api/generate.

    Sections are separated by a blank line and left out entirely when they
    have nothing to say. Only [SYSTEM] and the final USER line are always there.
    """
    parts: list[str] = []

    override = (session_override or "").strip()
    if override:
        parts.append(f"[SYSTEM]\n{override}\n{core_instructions}")
    else:
        parts.append(f"[SYSTEM]\n{core_instructions}")

    if memory is not None and not memory.is_empty():
        parts.append(f"[MEMORY]\n{memory.render()}")

    if summary.strip():
        parts.append(f"[SUMMARY]\n{summary.strip()}")

    if recent_messages:
        history = "\n".join(f"{m.role.upper()}: {m.content}" for m in recent_messages)
        parts.append(f"[CONVERSATION]\n{history}")

    if search_results and search_results.strip():
        parts.append(f"[SEARCH_RESULTS]\n{search_results.strip()}")

    if referenced_excerpt:
        parts.append(f"[REFERENCED]\n{referenced_excerpt[:MAX_REFERENCED_CHARS]}")

    parts.append(f"USER: {new_user_text}")

    return "\n\n".join(parts)
