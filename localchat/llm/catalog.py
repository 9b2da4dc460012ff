import logging
from enum import Enum
from typing import Optional

from .base import InferenceBackend, ModelInfo

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ModelSwitcher:
    """Installed-model list plus the persisted model selection.

    ``settings`` must offer ``selected_model()`` and ``save_selected_model(name)``.
    """

    def __init__(self, backend: InferenceBackend, settings, default_model: str = "llama3"):
        self.backend = backend
        self.settings = settings
        self.default_model = default_model
        self.models: list[ModelInfo] = []
        self.load_state = LoadState.IDLE
        self.error_message: Optional[str] = None
        self.selected_model_name = settings.selected_model() or default_model

    async def load_if_needed(self) -> None:
        if self.load_state == LoadState.IDLE:
            await self.reload()

    async def reload(self) -> None:
        self.load_state = LoadState.LOADING
        try:
            fetched = await self.backend.list_models()
        except Exception as e:
            # The current selection stays usable.
            logger.warning("Unable to load models: %s", e)
            self.load_state = LoadState.FAILED
            self.error_message = "Unable to load models"
            return
        self.models = sorted(fetched, key=lambda m: m.name.lower())
        self._reconcile_selection()
        self.error_message = None
        self.load_state = LoadState.LOADED

    def select_model(self, name: str) -> None:
        if name == self.selected_model_name:
            return
        self.selected_model_name = name
        self.settings.save_selected_model(name)
        logger.info("Selected model: %s", name)

    def _reconcile_selection(self) -> None:
        names = [m.name for m in self.models]
        if not names or self.selected_model_name in names:
            self.settings.save_selected_model(self.selected_model_name)
            return
        if self.default_model in names:
            self.select_model(self.default_model)
        else:
            self.select_model(names[0])
