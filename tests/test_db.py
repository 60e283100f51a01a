from datetime import datetime, timezone

from chatbridge.db import Database
from chatbridge.models import ChatConfig, ChatSession, NoteItem


def test_unknown_chat_loads_empty_session(tmp_path):
    db = Database(tmp_path / "chatbridge.db")
    db.initialize()

    session = db.load_session("chat-1")

    assert session.chat_id == "chat-1"
    assert session.messages == []
    assert session.config == ChatConfig()
    assert session.notes == {}


def test_session_round_trip(tmp_path):
    db = Database(tmp_path / "chatbridge.db")
    db.initialize()
    session = ChatSession(chat_id="chat-1")
    session.add_message("user", "Ana", "hello", limit=10)
    session.config.language = "Portuguese"
    session.notes["shopping"] = [
        NoteItem(id="note_1", content="eggs", created_at=datetime.now(timezone.utc), created_by="Ana")
    ]

    db.save_session(session)
    loaded = db.load_session("chat-1")

    assert [(m.role, m.name, m.content) for m in loaded.messages] == [("user", "Ana", "hello")]
    assert loaded.config.language == "Portuguese"
    assert loaded.config.custom_prompt is None
    assert [n.content for n in loaded.notes["shopping"]] == ["eggs"]


def test_reset_session_does_not_affect_other_chats(tmp_path):
    db = Database(tmp_path / "chatbridge.db")
    db.initialize()
    for chat_id in ("chat-1", "chat-2"):
        session = ChatSession(chat_id=chat_id)
        session.add_message("user", "Ana", f"hi from {chat_id}", limit=10)
        db.save_session(session)

    db.reset_session("chat-1")

    assert db.load_session("chat-1").messages == []
    assert db.load_session("chat-2").messages[0].content == "hi from chat-2"


def test_session_history_is_trimmed():
    session = ChatSession(chat_id="chat-1")
    for i in range(5):
        session.add_message("user", "Ana", str(i), limit=3)

    assert [m.content for m in session.messages] == ["2", "3", "4"]


def test_tool_execution_log(tmp_path):
    db = Database(tmp_path / "chatbridge.db")
    db.initialize()

    db.log_tool_execution("chat-1", "add_note", {"key": "k"}, {"success": True}, succeeded=True)

    rows = db.list_tool_executions("chat-1")
    assert len(rows) == 1
    assert rows[0]["tool_name"] == "add_note"
    assert rows[0]["succeeded"] == 1
