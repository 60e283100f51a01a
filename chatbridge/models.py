"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union

Role = Literal["system", "user", "assistant", "tool"]
ImageDetail = Literal["low", "high", "auto"]
ToolCallKind = Literal["function", "capability"]

# Name of the capability server action that delivers a reply to the chat.
SEND_MESSAGE_ACTION = "sendMessage"


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class ImagePart:
    url: str
    detail: ImageDetail = "auto"


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True, slots=True)
class ToolCall:
    """Tool invocation requested by the model."""

    kind: ToolCallKind
    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True, slots=True)
class Turn:
    """One role-tagged unit of model input.

    ``extensions`` carries opaque provider-native state keyed by provider
    name. Only the adapter with that name reads or writes its entry.
    """

    role: Role
    content: str | list[ContentPart] = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    call_id: str | None = None
    name: str | None = None
    extensions: dict[str, Any] = field(default_factory=dict)

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if isinstance(part, TextPart))


@dataclass(frozen=True, slots=True)
class FunctionTool:
    """Locally executed tool described by a JSON schema."""

    name: str
    description: str
    parameters: dict[str, Any]
    strict: bool = False


@dataclass(frozen=True, slots=True)
class CapabilityServerTool:
    """Remote tool surface executed by the model backend (an MCP server)."""

    label: str
    description: str
    url: str
    auth_token: str | None = None


@dataclass(frozen=True, slots=True)
class WebSearchTool:
    """Backend-native web search."""


ToolDeclaration = Union[FunctionTool, CapabilityServerTool, WebSearchTool]


@dataclass(frozen=True, slots=True)
class ToolResult:
    call_id: str
    output: str


@dataclass(slots=True)
class LLMResponse:
    """Result from an LLM completion request."""

    tool_calls: list[ToolCall] = field(default_factory=list)
    text: str | None = None
    provider_state: Any = None

    @property
    def function_calls(self) -> list[ToolCall]:
        return [tc for tc in self.tool_calls if tc.kind == "function"]

    @property
    def capability_calls(self) -> list[ToolCall]:
        return [tc for tc in self.tool_calls if tc.kind == "capability"]

    @property
    def is_empty(self) -> bool:
        return not self.tool_calls and not self.text


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass(slots=True)
class ChatMessage:
    """History entry kept in the chat session."""

    role: Literal["user", "assistant"]
    name: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class ChatConfig:
    """Per-chat behaviour overrides. ``None`` means default."""

    custom_prompt: str | None = None
    language: str | None = None
    personality: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return asdict(self)


@dataclass(slots=True)
class NoteItem:
    id: str
    content: str
    created_at: datetime
    created_by: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }


@dataclass(slots=True)
class ChatSession:
    """Mutable per-chat state loaded from and saved to the session store."""

    chat_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    config: ChatConfig = field(default_factory=ChatConfig)
    notes: dict[str, list[NoteItem]] = field(default_factory=dict)

    def add_message(self, role: Literal["user", "assistant"], name: str, content: str, limit: int) -> None:
        """Append a history entry, keeping only the last ``limit`` messages."""

        self.messages.append(ChatMessage(role=role, name=name, content=content))
        if len(self.messages) > limit:
            self.messages = self.messages[-limit:]

    def reset(self) -> None:
        self.messages = []
        self.config = ChatConfig()
        self.notes = {}


@dataclass(slots=True)
class InboundMessage:
    """Message normalized by the messaging adapter for runtime usage."""

    chat_id: str
    chat_type: str
    sender_id: str
    sender_name: str
    message_id: str
    text: str = ""
    caption: str = ""
    chat_title: str = ""
    sender_username: str = ""
    sender_is_bot: bool = False
    image_url: str | None = None
    was_mentioned: bool = False
    is_reply_to_bot: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_group(self) -> bool:
        return self.chat_type in ("group", "supergroup")


@dataclass(slots=True)
class MembershipChange:
    """The bot's own membership status changed in a chat."""

    chat_id: str
    old_status: str
    new_status: str

    @property
    def joined(self) -> bool:
        return self.old_status in ("left", "kicked") and self.new_status in ("member", "administrator")

    @property
    def removed(self) -> bool:
        return self.old_status in ("member", "administrator") and self.new_status in ("left", "kicked")


@dataclass(slots=True)
class ScheduledTask:
    """A volatile scheduled invocation. ``job`` is the live scheduler handle."""

    id: str
    chat_id: str
    prompt: str
    schedule: str
    recurring: bool
    created_by: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    job: Any = None


@dataclass(frozen=True, slots=True)
class TaskInfo:
    id: str
    prompt: str
    schedule: str
    recurring: bool
    created_by: str
    next_run: str | None
