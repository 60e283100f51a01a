"""Registry for safe tool registration and execution."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ConfigDict, ValidationError, create_model

from chatbridge.db import Database
from chatbridge.models import FunctionTool
from chatbridge.tools.base import Tool, ToolContext

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Explicit registry of safe tools.

    ``dispatch`` never raises: unknown tools, bad arguments and handler
    failures all come back as a JSON ``{"success": false, "error": ...}``
    string so the decision loop can hand them to the model unchanged.
    """

    def __init__(self, db: Database | None = None) -> None:
        self._db = db
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def declarations(self) -> list[FunctionTool]:
        return [tool.declaration() for tool in self._tools.values()]

    async def dispatch(self, name: str, arguments: str | dict[str, Any], context: ToolContext) -> str:
        LOGGER.info("Handling tool call: %s - %s", name, arguments)
        tool = self._tools.get(name)
        if tool is None:
            return json.dumps({"success": False, "error": f"Unknown tool: {name}"})

        try:
            payload = json.loads(arguments) if isinstance(arguments, str) else dict(arguments)
            if not isinstance(payload, dict):
                raise ValueError("Tool arguments must be a JSON object")
            validated = _validate_json_schema(tool.parameters_schema, payload)
        except ValueError as exc:
            return json.dumps({"success": False, "error": f"Invalid arguments for {name}: {exc}"})

        try:
            result = await tool.run(context, **validated)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Tool %s failed", name)
            result = {"success": False, "error": str(exc) or type(exc).__name__}
            self._log(context.chat_id, name, validated, result, succeeded=False)
        else:
            self._log(context.chat_id, name, validated, result, succeeded=result.get("success", True) is not False)

        output = json.dumps(result, default=str)
        LOGGER.info("Tool call %s result: %s", name, output)
        return output

    def _log(self, chat_id: str, name: str, tool_input: dict[str, Any], output: Any, succeeded: bool) -> None:
        if self._db is not None:
            self._db.log_tool_execution(chat_id, name, tool_input, output, succeeded=succeeded)


def _validate_json_schema(schema: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    props = schema.get("properties", {})
    required = set(schema.get("required", []))
    fields: dict[str, tuple[Any, Any]] = {}
    for name, config in props.items():
        typ = _python_type(config.get("type", "string"))
        if name in required:
            fields[name] = (typ, ...)
        else:
            fields[name] = (Optional[typ], None)

    extra = "forbid" if schema.get("additionalProperties") is False else "ignore"
    model = create_model("ToolInputModel", __config__=ConfigDict(extra=extra), **fields)
    try:
        value = model(**payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
    # exclude_unset keeps "not provided" apart from "explicitly null".
    return value.model_dump(exclude_unset=True)


def _python_type(schema_type: str | list[str]) -> Any:
    mapping: dict[str, type[Any]] = {
        "string": str,
        "integer": int,
        "number": float,
        "boolean": bool,
        "object": dict,
        "array": list,
    }
    if isinstance(schema_type, list):
        non_null = [t for t in schema_type if t != "null"]
        typ = mapping.get(non_null[0], str) if non_null else str
        return Optional[typ] if len(non_null) < len(schema_type) else typ
    return mapping.get(schema_type, str)
