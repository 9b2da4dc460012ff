import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11434"


class OllamaConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    selected_model: str = ""  # Empty = fall back to default_model
    default_model: str = "llama3"
    timeout: float = 120.0


class ChatConfig(BaseModel):
    recent_count: int = 16
    summarization_threshold: int = 40
    max_summarization_chars: int = 16_000
    flush_char_threshold: int = 180
    flush_interval_seconds: float = 0.024
    summary_scope: Literal["global", "conversation"] = "global"


class AppConfig(BaseModel):
    ollama: OllamaConfig = OllamaConfig()
    chat: ChatConfig = ChatConfig()
    log_level: str = "INFO"


_data_dir = Path(os.environ.get("LOCALCHAT_DATA_DIR", Path.home() / ".localchat"))
_config_file = _data_dir / "config.json"


def get_data_dir() -> Path:
    return _data_dir


def _ensure_data_dir() -> None:
    _data_dir.mkdir(parents=True, exist_ok=True)


def load_config(path: Optional[Path] = None) -> AppConfig:
    config_file = path or _config_file
    if config_file.exists():
        try:
            data = json.loads(config_file.read_text(encoding="utf-8"))
            return AppConfig(**data)
        except (json.JSONDecodeError, OSError, ValueError):
            logger.warning("Failed to load %s, using defaults", config_file)
    return AppConfig()


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    config_file = path or _config_file
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(config.model_dump_json(indent=2), encoding="utf-8")


_current_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _current_config
    if _current_config is None:
        _current_config = load_config()
    return _current_config


def update_config(config: AppConfig) -> AppConfig:
    global _current_config
    _ensure_data_dir()
    save_config(config)
    _current_config = config
    return _current_config


# ---------------------------------------------------------------------------
# Settings providers (read by the chat session at send time)
# ---------------------------------------------------------------------------

class SettingsProvider(Protocol):
    def selected_model(self) -> str: ...

    def base_url(self) -> str: ...


class ConfigSettingsProvider:
    """Reads config.json on every call so a model switch applies to the next send."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path or _config_file

    def _load(self) -> AppConfig:
        return load_config(self.path)

    def selected_model(self) -> str:
        ollama = self._load().ollama
        return ollama.selected_model or ollama.default_model

    def base_url(self) -> str:
        return self._load().ollama.base_url

    def save_selected_model(self, name: str) -> None:
        config = self._load()
        config.ollama.selected_model = name
        save_config(config, self.path)


class StaticSettings:
    """Fixed settings, mostly for tests and embedding."""

    def __init__(self, model: str = "llama3", url: str = DEFAULT_BASE_URL):
        self.model = model
        self.url = url

    def selected_model(self) -> str:
        return self.model

    def base_url(self) -> str:
        return self.url

    def save_selected_model(self, name: str) -> None:
        self.model = name
