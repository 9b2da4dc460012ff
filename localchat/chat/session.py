"""One generation at a time: prompt in, streamed assistant message out.

send() does the synchronous part on the caller's loop (validation, snapshot of
the recent window, user message, empty assistant placeholder) and hands the
network part to a task. The task streams fragments through a StreamCoalescer
into the placeholder and, once the stream is over, awaits the SummaryManager
check on the conversation. The session stays loading until that check is done.

Cancellation and failure share one cleanup rule: a placeholder that never
received text is removed, partial text is kept.
"""

import asyncio
import base64
import logging
import time
from contextlib import aclosing
from enum import Enum
from typing import Callable, Optional

from ..config import SettingsProvider
from ..conversation.models import Message, MessageRole
from ..conversation.store import ConversationStore
from ..conversation.summarizer import SummaryManager, SummaryStore
from ..llm.base import InferenceBackend
from ..memory import MemoryStore
from ..observable import Observable
from ..prompts import SavedPromptStore
from ..search import SearchService, search_text
from .coalescer import StreamCoalescer
from .prompt_builder import CORE_INSTRUCTIONS, MAX_REFERENCED_CHARS, build_prompt

logger = logging.getLogger(__name__)

MENTION_PREVIEW_CHARS = 80


class SessionState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CANCELLED = "cancelled"
    FAILED = "failed"


class GenerationSession(Observable):
    def __init__(
        self,
        store: ConversationStore,
        backend: InferenceBackend,
        summaries: SummaryStore,
        summary_manager: Optional[SummaryManager],
        settings: SettingsProvider,
        searcher: Optional[SearchService] = None,
        memory_store: Optional[MemoryStore] = None,
        prompt_store: Optional[SavedPromptStore] = None,
        recent_count: int = 16,
        core_instructions: str = CORE_INSTRUCTIONS,
        char_threshold: int = 180,
        flush_interval: float = 0.024,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.store = store
        self.backend = backend
        self.summaries = summaries
        self.summary_manager = summary_manager
        self.settings = settings
        self.searcher = searcher
        self.memory_store = memory_store
        self.prompt_store = prompt_store
        self.recent_count = recent_count
        self.core_instructions = core_instructions
        self.char_threshold = char_threshold
        self.flush_interval = flush_interval
        self._clock = clock

        self.state = SessionState.IDLE
        self.error: Optional[str] = None
        self.last_prompt: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_loading(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        self._notify(self)

    # ---- Send / stop ----

    def send(
        self,
        text: str,
        images: Optional[list[bytes]] = None,
        mention_excerpt: Optional[str] = None,
        web_search: bool = False,
    ) -> Optional[asyncio.Task]:
        """Start a generation in the active conversation.

        Returns the running task, or None when the input is rejected (empty
        input, no conversation selected, or a generation already running).
        Must be called from the event loop that owns the store.
        """
        conv = self.store.active_conversation
        if conv is None:
            logger.warning("Send aborted: no conversation selected")
            return None
        text = text.strip()
        images = list(images or [])
        if not text and not images:
            logger.warning("Send aborted: empty input")
            return None
        if self.is_loading:
            logger.warning("Send rejected: a generation is already running")
            return None

        conversation_id = conv.id
        logger.info("Send started: conv %s", conversation_id)
        self.error = None
        self._set_state(SessionState.BUILDING)

        # Snapshot before the new user message goes in.
        recent = conv.messages[-self.recent_count:] if self.recent_count else []
        session_prompt = conv.system_prompt or ""
        summary = self.summaries.load(conversation_id)
        mention_context = mention_excerpt[:MAX_REFERENCED_CHARS] if mention_excerpt else None
        images_b64 = [base64.b64encode(img).decode("ascii") for img in images] or None

        user_message = Message(
            role=MessageRole.USER,
            content=text,
            images=images_b64,
            mention_preview=mention_context[:MENTION_PREVIEW_CHARS] if mention_context else None,
        )
        self.store.append_message(conversation_id, user_message)
        self.store.auto_title(conversation_id, text)

        placeholder = Message(role=MessageRole.ASSISTANT, content="")
        self.store.append_message(conversation_id, placeholder)

        self._task = asyncio.get_running_loop().create_task(
            self._run(
                conversation_id,
                placeholder.id,
                text,
                recent,
                session_prompt,
                summary,
                mention_context,
                images_b64,
                web_search,
            )
        )
        self._task.add_done_callback(
            lambda task: self._on_task_done(task, conversation_id, placeholder.id)
        )
        return self._task

    def stop(self) -> bool:
        """Cancel the running generation or its summary step. The HTTP stream is closed on the way out."""
        if not self.is_loading:
            return False
        self._task.cancel()
        return True

    async def wait(self) -> None:
        """Wait for the running generation (if any) to settle."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(
        self,
        conversation_id: str,
        placeholder_id: str,
        text: str,
        recent: list[Message],
        session_prompt: str,
        summary: str,
        mention_context: Optional[str],
        images_b64: Optional[list[str]],
        web_search: bool,
    ) -> None:
        coalescer = StreamCoalescer(
            lambda accumulated: self.store.replace_message(conversation_id, placeholder_id, accumulated),
            char_threshold=self.char_threshold,
            interval=self.flush_interval,
            clock=self._clock,
        )
        try:
            search_results = await search_text(self.searcher, text) if web_search else None
            memory = self.memory_store.load() if self.memory_store is not None else None
            prompt = build_prompt(
                self.core_instructions,
                session_prompt,
                summary,
                recent,
                text,
                referenced_excerpt=mention_context,
                search_results=search_results,
                memory=memory,
            )
            self.last_prompt = prompt

            model = self.settings.selected_model()
            logger.info("Streaming with model: %s", model)
            self._set_state(SessionState.STREAMING)

            stream = self.backend.stream_generate(prompt, model, images_b64)
            async with aclosing(stream):
                async for fragment in stream:
                    coalescer.feed(fragment)

            self._set_state(SessionState.FINALIZING)
            final_text = coalescer.finish()
            logger.info(
                "Streaming complete: %d fragments, %d chars",
                coalescer.fragment_count, len(final_text),
            )
            if self.store.get(conversation_id) is None:
                logger.warning("Post-stream save skipped: conversation gone")
            elif self.summary_manager is not None:
                # Awaited inside the task: is_loading holds until the summary settles.
                await self.summary_manager.check_and_run(conversation_id)
            self._set_state(SessionState.IDLE)
        except asyncio.CancelledError:
            logger.info("Streaming cancelled by user")
            self._settle_placeholder(conversation_id, placeholder_id, coalescer)
            self._set_state(SessionState.CANCELLED)
        except Exception as e:
            logger.error("Streaming error: %s", e)
            self.error = str(e) or e.__class__.__name__
            self._settle_placeholder(conversation_id, placeholder_id, coalescer)
            self._set_state(SessionState.FAILED)

    def _settle_placeholder(
        self, conversation_id: str, placeholder_id: str, coalescer: StreamCoalescer
    ) -> None:
        """Keep partial text, drop a placeholder that never got any."""
        if coalescer.text:
            coalescer.finish()
        else:
            self.store.remove_message(conversation_id, placeholder_id)

    def _on_task_done(self, task: asyncio.Task, conversation_id: str, placeholder_id: str) -> None:
        # Only reached as "cancelled" when stop() landed before _run got to start.
        if not task.cancelled():
            return
        logger.info("Streaming cancelled before start")
        conv = self.store.get(conversation_id)
        if conv is not None:
            for m in conv.messages:
                if m.id == placeholder_id and not m.content:
                    self.store.remove_message(conversation_id, placeholder_id)
                    break
        self._set_state(SessionState.CANCELLED)

    # ---- Per-conversation system prompt ----

    def apply_system_prompt(self, text: str) -> bool:
        conv_id = self.store.active_conversation_id
        if conv_id is None:
            return False
        return self.store.set_system_prompt(conv_id, text)

    def reset_system_prompt(self) -> bool:
        conv_id = self.store.active_conversation_id
        if conv_id is None:
            return False
        return self.store.set_system_prompt(conv_id, None)

    def apply_saved_prompt(self, prompt_id: str) -> bool:
        """Use a saved template as the active conversation's system prompt."""
        if self.prompt_store is None:
            return False
        prompt = self.prompt_store.get(prompt_id)
        if prompt is None or not self.apply_system_prompt(prompt.content):
            return False
        self.prompt_store.mark_used(prompt_id)
        return True
