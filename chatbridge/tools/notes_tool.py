"""Keyed notes tools."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from chatbridge.models import NoteItem
from chatbridge.tools.base import Tool, ToolContext


def normalize_key(key: str) -> str:
    return key.strip().casefold()


class AddNoteTool(Tool):
    """Append an item to a keyed list in the chat session."""

    name = "add_note"
    description = (
        "Add an item to a keyed notes list. Use this to store to-do items, shopping lists, reminders, "
        "or any categorized information. Examples: 'add eggs to shopping list', 'remember that John's "
        "birthday is March 5th under birthdays'."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "key": {
                "type": "string",
                "description": (
                    "The key/category for the note (e.g., 'shopping list', 'todos', 'birthdays', "
                    "'reminders', 'general'). Use lowercase and keep it simple."
                ),
            },
            "content": {"type": "string", "description": "The content of the note item to add to the list."},
        },
        "required": ["key", "content"],
    }

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        key = normalize_key(kwargs["key"])
        if not key:
            return {"success": False, "error": "Note key must not be empty."}
        note = NoteItem(
            id=f"note_{uuid.uuid4().hex[:12]}",
            content=kwargs["content"],
            created_at=datetime.now(timezone.utc),
            created_by=context.caller,
        )
        context.session.notes.setdefault(key, []).append(note)
        return {"success": True, "message": f'Note added to "{key}".', "key": key, "note": note.to_dict()}


class ListNotesTool(Tool):
    """List notes under one key, or all notes."""

    name = "list_notes"
    description = "List saved notes. Can list all notes across all keys, or notes under a specific key."
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "key": {
                "type": "string",
                "description": "Optional: specific key/category to list. If omitted, lists all notes across all keys.",
            },
        },
        "required": [],
    }

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        notes = context.session.notes
        if kwargs.get("key"):
            key = normalize_key(kwargs["key"])
            items = notes.get(key, [])
            return {"success": True, "key": key, "notes": [n.to_dict() for n in items], "count": len(items)}

        return {
            "success": True,
            "notes": {key: [n.to_dict() for n in items] for key, items in notes.items()},
            "keys": list(notes),
            "total_count": sum(len(items) for items in notes.values()),
        }


class RemoveNoteTool(Tool):
    name = "remove_note"
    description = (
        "Remove a specific note item by its ID. Use this when a to-do item is completed or a note "
        "is no longer needed."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "note_id": {"type": "string", "description": "The ID of the note item to remove."},
        },
        "required": ["note_id"],
    }

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        note_id = kwargs["note_id"]
        notes = context.session.notes
        for key, items in notes.items():
            remaining = [n for n in items if n.id != note_id]
            if len(remaining) == len(items):
                continue
            # No empty categories.
            if remaining:
                notes[key] = remaining
            else:
                del notes[key]
            return {"success": True, "message": f'Note removed from "{key}".', "key": key}
        return {"success": False, "error": "Note not found."}


class ClearNotesTool(Tool):
    name = "clear_notes"
    description = "Clear notes. Can clear all notes or just notes under a specific key."
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "key": {
                "type": "string",
                "description": "Optional: specific key/category to clear. If omitted, clears ALL notes.",
            },
        },
        "required": [],
    }

    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        if kwargs.get("key"):
            key = normalize_key(kwargs["key"])
            if key not in context.session.notes:
                return {"success": False, "error": f'No notes found under "{key}".'}
            del context.session.notes[key]
            return {"success": True, "message": f'All notes under "{key}" cleared.', "key": key}

        context.session.notes = {}
        return {"success": True, "message": "All notes cleared."}
