"""
Tests for ConversationStore, ChatPersistence and the sidebar projections.
Run with: pytest tests/test_store.py
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from localchat.conversation.models import Conversation, Message, MessageRole
from localchat.conversation.storage import ChatPersistence, PersistenceError
from localchat.conversation.store import ConversationStore, group_by_date


def _on_disk(tmp_path, conv_id):
    return json.loads((tmp_path / "conversations" / f"{conv_id}.json").read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def test_create_selects_and_persists(store, tmp_path):
    conv = store.create()
    assert store.active_conversation_id == conv.id
    assert _on_disk(tmp_path, conv.id)["title"] == "New Conversation"


def test_create_with_existing_id_is_idempotent(store):
    first = store.create("abc")
    store.append_message("abc", Message(role=MessageRole.USER, content="hi"))
    again = store.create("abc")
    assert again.id == first.id
    assert len(again.messages) == 1
    assert len(store.conversations) == 1


def test_load_all_reads_back_newest_first(tmp_path):
    persistence = ChatPersistence(tmp_path)
    persistence.save(Conversation(id="old", created_at="2024-01-01T00:00:00+00:00"))
    persistence.save(Conversation(id="new", created_at="2024-06-01T00:00:00Z"))

    store = ConversationStore(persistence)
    loaded = store.load_all()
    assert [c.id for c in loaded] == ["new", "old"]
    assert store.active_conversation_id == "new"


def test_delete_removes_file_and_moves_selection(store, tmp_path):
    a = store.create()
    b = store.create()
    assert store.active_conversation_id == b.id

    assert store.delete(b.id)
    assert not (tmp_path / "conversations" / f"{b.id}.json").exists()
    assert store.active_conversation_id == a.id


def test_delete_missing_is_noop(store):
    store.create()
    assert store.delete("does-not-exist") is False
    assert len(store.conversations) == 1
    assert store.last_persistence_error is None


def test_delete_all(store, tmp_path):
    store.create()
    store.create()
    assert store.delete_all() == 2
    assert store.active_conversation_id is None
    assert list((tmp_path / "conversations").glob("*.json")) == []


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def test_rename_trims_and_ignores_blank(store, tmp_path):
    conv = store.create()
    assert store.rename(conv.id, "  Trip plans  ")
    assert store.get(conv.id).title == "Trip plans"
    assert not store.rename(conv.id, "   ")
    assert _on_disk(tmp_path, conv.id)["title"] == "Trip plans"


def test_toggle_pin_round_trip(store):
    conv = store.create()
    assert store.toggle_pin(conv.id) is True
    assert store.toggle_pin(conv.id) is False
    assert store.toggle_pin("missing") is None


def test_set_and_reset_system_prompt(store, tmp_path):
    conv = store.create()
    store.set_system_prompt(conv.id, "Be brief.")
    assert _on_disk(tmp_path, conv.id)["system_prompt"] == "Be brief."
    store.set_system_prompt(conv.id, None)
    assert store.get(conv.id).system_prompt is None


def test_replace_message_keeps_identity(store, tmp_path):
    conv = store.create()
    msg = Message(role=MessageRole.ASSISTANT, content="")
    store.append_message(conv.id, msg)
    assert store.replace_message(conv.id, msg.id, "partial")

    stored = store.get(conv.id).messages[0]
    assert stored.id == msg.id
    assert stored.role == "assistant"
    assert stored.timestamp == msg.timestamp
    assert stored.content == "partial"
    assert _on_disk(tmp_path, conv.id)["messages"][0]["content"] == "partial"


def test_remove_message(store):
    conv = store.create()
    msg = Message(role=MessageRole.ASSISTANT, content="")
    store.append_message(conv.id, msg)
    assert store.remove_message(conv.id, msg.id)
    assert store.get(conv.id).messages == []
    assert not store.remove_message(conv.id, msg.id)


def test_auto_title_only_replaces_default(store):
    conv = store.create()
    store.auto_title(conv.id, "x" * 80)
    assert store.get(conv.id).title == "x" * 50
    store.auto_title(conv.id, "something else")
    assert store.get(conv.id).title == "x" * 50


def test_readers_get_copies(store):
    conv = store.create()
    store.append_message(conv.id, Message(role=MessageRole.USER, content="hi"))
    snapshot = store.get(conv.id)
    snapshot.messages.clear()
    snapshot.title = "changed"
    fresh = store.get(conv.id)
    assert len(fresh.messages) == 1
    assert fresh.title == "New Conversation"


def test_events_follow_mutation_order(store):
    events = []
    store.subscribe(events.append)
    conv = store.create()
    msg = Message(role=MessageRole.USER, content="hi")
    store.append_message(conv.id, msg)
    store.replace_message(conv.id, msg.id, "hello")
    assert [e.kind for e in events] == ["created", "message_added", "message_updated"]
    assert events[-1].message_id == msg.id


# ---------------------------------------------------------------------------
# Persistence failures
# ---------------------------------------------------------------------------

def test_write_failure_is_retried_once(tmp_path):
    persistence = MagicMock(spec=ChatPersistence)
    persistence.load_all.return_value = []
    persistence.save.side_effect = [PersistenceError("disk busy"), None]
    store = ConversationStore(persistence)

    store.create()
    assert persistence.save.call_count == 2
    assert store.last_persistence_error is None


def test_write_failure_is_recorded_not_raised(tmp_path):
    persistence = MagicMock(spec=ChatPersistence)
    persistence.load_all.return_value = []
    persistence.save.side_effect = PersistenceError("read-only")
    store = ConversationStore(persistence)

    conv = store.create()
    assert store.get(conv.id) is not None
    assert persistence.save.call_count == 2
    assert "read-only" in store.last_persistence_error


# ---------------------------------------------------------------------------
# Documents on disk
# ---------------------------------------------------------------------------

def test_old_documents_load_with_defaults(tmp_path):
    conv_dir = tmp_path / "conversations"
    conv_dir.mkdir()
    (conv_dir / "legacy.json").write_text(json.dumps({
        "id": "legacy",
        "title": "Old chat",
        "messages": [{"role": "user", "content": "hi", "someFutureField": 1}],
        "created_at": "2023-01-01T00:00:00Z",
    }))
    (conv_dir / "broken.json").write_text("{not json")

    loaded = ChatPersistence(tmp_path).load_all()
    assert len(loaded) == 1
    conv = loaded[0]
    assert conv.is_pinned is False
    assert conv.system_prompt is None
    assert conv.messages[0].images is None
    assert conv.messages[0].id


def test_legacy_single_conversation_is_migrated(tmp_path):
    legacy = tmp_path / "conversation.json"
    legacy.write_text(json.dumps([
        {"role": "user", "content": "Plan my week please"},
        {"role": "assistant", "content": "Sure."},
    ]))

    loaded = ChatPersistence(tmp_path).load_all()
    assert not legacy.exists()
    assert len(loaded) == 1
    assert loaded[0].title == "Plan my week please"
    assert len(loaded[0].messages) == 2


def test_derived_counts_and_dates():
    conv = Conversation(created_at="2024-01-01T00:00:00+00:00")
    assert conv.last_active_date == conv.created_at
    conv.messages = [
        Message(role=MessageRole.SYSTEM, content="Conversation summary:\n- x"),
        Message(role=MessageRole.USER, content="hi", timestamp="2024-02-01T00:00:00+00:00"),
        Message(role=MessageRole.ASSISTANT, content="yo", timestamp="2024-02-02T00:00:00+00:00"),
    ]
    assert conv.message_count == 2
    assert conv.last_active_date == "2024-02-02T00:00:00+00:00"


# ---------------------------------------------------------------------------
# Sidebar grouping
# ---------------------------------------------------------------------------

def test_group_by_date_sections():
    now = datetime(2024, 5, 20, 15, 0, tzinfo=timezone.utc)

    def conv(title, days_ago, pinned=False):
        created = (now - timedelta(days=days_ago)).isoformat()
        return Conversation(title=title, created_at=created, is_pinned=pinned)

    conversations = [
        conv("today", 0),
        conv("yesterday", 1),
        conv("week", 4),
        conv("month", 20),
        conv("older", 90),
        conv("pinned", 0, pinned=True),
    ]
    sections = group_by_date(conversations, now=now)
    assert [s.name for s in sections] == ["Today", "Yesterday", "Previous 7 Days", "Previous 30 Days", "Older"]
    assert all(c.title != "pinned" for s in sections for c in s.conversations)
