"""Tool contracts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from chatbridge.models import ChatSession, FunctionTool


@dataclass(slots=True)
class ToolContext:
    """Conversation handle passed to every tool invocation."""

    chat_id: str
    session: ChatSession
    caller: str


class Tool(ABC):
    """Base class for all locally executed tools."""

    name: str
    description: str
    parameters_schema: dict[str, Any]

    def declaration(self) -> FunctionTool:
        return FunctionTool(name=self.name, description=self.description, parameters=self.parameters_schema)

    @abstractmethod
    async def run(self, context: ToolContext, **kwargs: Any) -> dict[str, Any]:
        """Execute tool with validated arguments."""
