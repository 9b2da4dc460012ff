"""
Tests for the rolling summary: threshold, rewrite, failure handling, storage scope.
Run with: pytest tests/test_summarizer.py
"""

import pytest

from conftest import FakeBackend, make_messages
from localchat.conversation.models import Message, MessageRole
from localchat.conversation.summarizer import (
    SUMMARY_INSTRUCTION,
    SummaryManager,
    SummaryStore,
    format_for_summary,
)
from localchat.llm.base import BackendError


def _seed(store, count):
    conv = store.create()
    store.replace_messages(conv.id, make_messages(count))
    return conv.id


@pytest.mark.asyncio
async def test_at_threshold_nothing_happens(store, backend, summary_manager):
    conv_id = _seed(store, 40)
    assert await summary_manager.check_and_run(conv_id) is False
    assert len(store.get(conv_id).messages) == 40
    assert backend.generate_prompts == []


@pytest.mark.asyncio
async def test_past_threshold_rewrites_conversation(store, backend, summaries, summary_manager):
    conv_id = _seed(store, 41)
    original = store.get(conv_id).messages

    assert await summary_manager.check_and_run(conv_id) is True

    messages = store.get(conv_id).messages
    assert len(messages) == 17
    assert messages[0].role == "system"
    assert messages[0].content == "Conversation summary:\n- user said hello"
    assert [m.id for m in messages[1:]] == [m.id for m in original[-16:]]
    assert summaries.load(conv_id) == "- user said hello"

    prompt = backend.generate_prompts[0]
    assert prompt.startswith(SUMMARY_INSTRUCTION + "\n\n")
    assert "USER: message 0" in prompt
    assert "message 24" in prompt
    assert "message 25" not in prompt


@pytest.mark.asyncio
async def test_failure_leaves_everything_untouched(store, summaries, settings, tmp_path):
    backend = FakeBackend(generate_error=BackendError("model not loaded"))
    manager = SummaryManager(store, backend, summaries, settings)
    summaries.save("previous summary")
    conv_id = _seed(store, 41)
    path = tmp_path / "conversations" / f"{conv_id}.json"
    before = path.read_bytes()

    assert await manager.check_and_run(conv_id) is False

    assert path.read_bytes() == before
    assert summaries.load() == "previous summary"
    assert len(store.get(conv_id).messages) == 41


@pytest.mark.asyncio
async def test_missing_conversation_is_ignored(summary_manager):
    assert await summary_manager.check_and_run("nope") is False


@pytest.mark.asyncio
async def test_empty_older_slice_is_skipped(store, backend, summaries, settings):
    manager = SummaryManager(store, backend, summaries, settings, threshold=2, recent_count=16)
    conv_id = _seed(store, 10)
    assert await manager.check_and_run(conv_id) is False
    assert backend.generate_prompts == []


@pytest.mark.asyncio
async def test_rewrite_keeps_every_message_after_the_summarized_slice(store, summaries, settings):
    class LateMessageBackend(FakeBackend):
        async def generate(self, prompt, model):
            store.append_message(conv_id, Message(role=MessageRole.USER, content="late"))
            return await super().generate(prompt, model)

    backend = LateMessageBackend()
    manager = SummaryManager(store, backend, summaries, settings)
    conv_id = _seed(store, 41)
    original_ids = [m.id for m in store.get(conv_id).messages]

    assert await manager.check_and_run(conv_id)
    messages = store.get(conv_id).messages
    assert len(messages) == 18
    assert [m.id for m in messages[1:-1]] == original_ids[25:]
    assert messages[-1].content == "late"
    assert "message 24" in backend.generate_prompts[0]


@pytest.mark.asyncio
async def test_rewrite_is_skipped_when_summarized_slice_changed(store, summaries, settings):
    class RewritingBackend(FakeBackend):
        async def generate(self, prompt, model):
            store.replace_messages(conv_id, make_messages(41)[5:])
            return await super().generate(prompt, model)

    manager = SummaryManager(store, RewritingBackend(), summaries, settings)
    conv_id = _seed(store, 41)

    assert await manager.check_and_run(conv_id) is False
    assert len(store.get(conv_id).messages) == 36
    assert summaries.load() == ""


def test_format_for_summary_truncates_prefix():
    messages = [
        Message(role=MessageRole.USER, content="  first  "),
        Message(role=MessageRole.ASSISTANT, content="second"),
    ]
    assert format_for_summary(messages, 1000) == "USER: first\nASSISTANT: second"
    assert format_for_summary(messages, 8) == "USER: fi"


@pytest.mark.asyncio
async def test_conversation_scope_keeps_separate_files(store, backend, settings, tmp_path):
    summaries = SummaryStore(tmp_path, scope="conversation")
    manager = SummaryManager(store, backend, summaries, settings)
    conv_id = _seed(store, 41)

    assert await manager.check_and_run(conv_id)
    assert (tmp_path / "summaries" / f"{conv_id}.txt").read_text() == "- user said hello"
    assert not (tmp_path / "summary.txt").exists()
    assert summaries.load("other") == ""


def test_summary_store_round_trip(tmp_path):
    summaries = SummaryStore(tmp_path)
    assert summaries.load() == ""
    summaries.save("abc")
    assert summaries.load() == "abc"
    summaries.clear()
    assert summaries.load() == ""


@pytest.mark.asyncio
async def test_regenerate_keeps_old_summary_on_failure(store, summaries, settings):
    backend = FakeBackend(generate_error=BackendError("down"))
    manager = SummaryManager(store, backend, summaries, settings)
    summaries.save("old")
    conv_id = _seed(store, 5)

    assert await manager.regenerate(conv_id) is None
    assert summaries.load() == "old"
    assert manager.is_generating is False

    backend.generate_error = None
    assert await manager.regenerate(conv_id) == "- user said hello"
    assert summaries.load() == "- user said hello"
    assert len(store.get(conv_id).messages) == 5
