import asyncio
from typing import Optional

import pytest

from localchat.config import StaticSettings
from localchat.conversation.models import Message, MessageRole
from localchat.conversation.storage import ChatPersistence
from localchat.conversation.store import ConversationStore
from localchat.conversation.summarizer import SummaryManager, SummaryStore
from localchat.llm.base import InferenceBackend, ModelInfo


class FakeBackend(InferenceBackend):
    """In-process stand-in for the inference server.

    ``fragments`` are streamed in order. With ``hang=True`` the stream blocks
    after the last fragment until it is cancelled; ``stream_error`` is raised
    after the fragments instead.
    """

    def __init__(
        self,
        fragments=(),
        hang: bool = False,
        stream_error: Optional[Exception] = None,
        summary: str = "- user said hello",
        generate_error: Optional[Exception] = None,
        models=("llama3",),
        reachable: bool = True,
    ):
        self.fragments = list(fragments)
        self.hang = hang
        self.stream_error = stream_error
        self.summary = summary
        self.generate_error = generate_error
        self.model_names = list(models)
        self.reachable = reachable
        self.stream_calls: list[dict] = []
        self.generate_prompts: list[str] = []
        self.hanging = asyncio.Event()
        self.stream_closed = False
        self.launched = False

    async def list_models(self):
        return [ModelInfo(name=n) for n in self.model_names]

    async def is_reachable(self):
        return self.reachable

    async def generate(self, prompt, model):
        self.generate_prompts.append(prompt)
        if self.generate_error is not None:
            raise self.generate_error
        return self.summary

    async def stream_generate(self, prompt, model, images=None):
        self.stream_calls.append({"prompt": prompt, "model": model, "images": images})
        try:
            for fragment in self.fragments:
                await asyncio.sleep(0)
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
            if self.hang:
                self.hanging.set()
                await asyncio.Event().wait()
        finally:
            self.stream_closed = True

    def launch_process(self):
        self.launched = True
        return True


def make_messages(count: int) -> list[Message]:
    roles = [MessageRole.USER, MessageRole.ASSISTANT]
    return [Message(role=roles[i % 2], content=f"message {i}") for i in range(count)]


@pytest.fixture
def persistence(tmp_path):
    return ChatPersistence(tmp_path)


@pytest.fixture
def store(persistence):
    s = ConversationStore(persistence)
    s.load_all()
    return s


@pytest.fixture
def settings():
    return StaticSettings(model="llama3")


@pytest.fixture
def summaries(tmp_path):
    return SummaryStore(tmp_path)


@pytest.fixture
def backend():
    return FakeBackend(fragments=["Hi", " there"])


@pytest.fixture
def summary_manager(store, backend, summaries, settings):
    return SummaryManager(store, backend, summaries, settings)


