"""Wires the chat components together from the app config."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .chat.session import GenerationSession
from .config import AppConfig, ConfigSettingsProvider, get_config, get_data_dir
from .conversation.storage import ChatPersistence
from .conversation.store import ConversationStore
from .conversation.summarizer import SummaryManager, SummaryStore
from .llm.base import InferenceBackend
from .llm.catalog import ModelSwitcher
from .llm.ollama import OllamaBackend
from .memory import MemoryStore
from .prompts import SavedPromptStore
from .search import SearchService
from .status import AppStatus

logger = logging.getLogger(__name__)


@dataclass
class ChatRuntime:
    config: AppConfig
    store: ConversationStore
    backend: InferenceBackend
    summaries: SummaryStore
    summary_manager: SummaryManager
    session: GenerationSession
    prompts: SavedPromptStore
    memory: MemoryStore
    models: ModelSwitcher
    status: AppStatus


def build_runtime(
    config: Optional[AppConfig] = None,
    data_dir: Optional[Path] = None,
    backend: Optional[InferenceBackend] = None,
    settings=None,
    searcher: Optional[SearchService] = None,
) -> ChatRuntime:
    config = config or get_config()
    data_dir = Path(data_dir or get_data_dir())
    data_dir.mkdir(parents=True, exist_ok=True)
    settings = settings or ConfigSettingsProvider(data_dir / "config.json")
    backend = backend or OllamaBackend(config.ollama.base_url, timeout=config.ollama.timeout, settings=settings)
    chat = config.chat

    store = ConversationStore(ChatPersistence(data_dir))
    store.load_all()
    summaries = SummaryStore(data_dir, scope=chat.summary_scope)
    summary_manager = SummaryManager(
        store,
        backend,
        summaries,
        settings,
        threshold=chat.summarization_threshold,
        recent_count=chat.recent_count,
        max_chars=chat.max_summarization_chars,
    )
    prompts = SavedPromptStore(data_dir)
    memory = MemoryStore(data_dir)
    session = GenerationSession(
        store,
        backend,
        summaries,
        summary_manager,
        settings,
        searcher=searcher if searcher is not None else SearchService(),
        memory_store=memory,
        prompt_store=prompts,
        recent_count=chat.recent_count,
        char_threshold=chat.flush_char_threshold,
        flush_interval=chat.flush_interval_seconds,
    )
    logger.info("Runtime ready (data dir %s)", data_dir)
    return ChatRuntime(
        config=config,
        store=store,
        backend=backend,
        summaries=summaries,
        summary_manager=summary_manager,
        session=session,
        prompts=prompts,
        memory=memory,
        models=ModelSwitcher(backend, settings, default_model=config.ollama.default_model),
        status=AppStatus(backend),
    )


_runtime: Optional[ChatRuntime] = None


def get_runtime() -> ChatRuntime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


def set_runtime(runtime: Optional[ChatRuntime]) -> None:
    global _runtime
    _runtime = runtime
