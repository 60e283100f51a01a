"""SQLite persistence layer for chat sessions."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from chatbridge.models import ChatConfig, ChatMessage, ChatSession, NoteItem

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                chat_id TEXT PRIMARY KEY,
                messages_json TEXT NOT NULL,
                config_json TEXT NOT NULL,
                notes_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS tool_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL,
                tool_name TEXT NOT NULL,
                input_json TEXT NOT NULL,
                output_json TEXT NOT NULL,
                succeeded INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )

    def load_session(self, chat_id: str) -> ChatSession:
        """Return the stored session, or a fresh one for an unknown chat."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT messages_json, config_json, notes_json FROM sessions WHERE chat_id = ?",
                (chat_id,),
            ).fetchone()
        if row is None:
            return ChatSession(chat_id=chat_id)
        return ChatSession(
            chat_id=chat_id,
            messages=[_message_from_dict(m) for m in json.loads(row["messages_json"])],
            config=ChatConfig(**json.loads(row["config_json"])),
            notes={
                key: [_note_from_dict(n) for n in items]
                for key, items in json.loads(row["notes_json"]).items()
            },
        )

    def save_session(self, session: ChatSession) -> None:
        messages_json = json.dumps(
            [
                {
                    "role": m.role,
                    "name": m.name,
                    "content": m.content,
                    "timestamp": m.timestamp.isoformat(),
                }
                for m in session.messages
            ]
        )
        notes_json = json.dumps(
            {key: [n.to_dict() for n in items] for key, items in session.notes.items()}
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO sessions(chat_id, messages_json, config_json, notes_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET
                    messages_json=excluded.messages_json,
                    config_json=excluded.config_json,
                    notes_json=excluded.notes_json,
                    updated_at=excluded.updated_at
                """,
                (
                    session.chat_id,
                    messages_json,
                    json.dumps(session.config.to_dict()),
                    notes_json,
                    _utc_now_iso(),
                ),
            )

    def reset_session(self, chat_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM sessions WHERE chat_id = ?", (chat_id,))

    def log_tool_execution(
        self,
        chat_id: str,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_output: Any,
        succeeded: bool,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tool_executions(chat_id, tool_name, input_json, output_json, succeeded, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    chat_id,
                    tool_name,
                    json.dumps(tool_input),
                    json.dumps(tool_output, default=str),
                    int(succeeded),
                    _utc_now_iso(),
                ),
            )

    def list_tool_executions(self, chat_id: str, limit: int = 20) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tool_name, input_json, output_json, succeeded, created_at
                FROM tool_executions
                WHERE chat_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (chat_id, limit),
            ).fetchall()
        return [dict(row) for row in rows]


def _message_from_dict(data: dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        role=data["role"],
        name=data["name"],
        content=data["content"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
    )


def _note_from_dict(data: dict[str, Any]) -> NoteItem:
    return NoteItem(
        id=data["id"],
        content=data["content"],
        created_at=datetime.fromisoformat(data["created_at"]),
        created_by=data["created_by"],
    )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
