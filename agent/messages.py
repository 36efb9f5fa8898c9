"""Conversation messages, tool calls and model responses."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

ROLES = ("user", "assistant", "system", "tool")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation emitted by the model. The result is attached once, after dispatch."""
    id: str
    tool_name: str
    parameters: dict = field(default_factory=dict)
    result: dict | None = None

    def with_result(self, result: dict) -> "ToolCall":
        return replace(self, result=result)

    @property
    def succeeded(self) -> bool:
        return bool(self.result and self.result.get("success"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "geogebra",
            "tool": self.tool_name,
            "parameters": dict(self.parameters),
            "result": self.result,
        }


@dataclass(frozen=True)
class Message:
    """One conversation turn."""
    role: str
    content: str
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=_now)
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Build a message from the client payload, tolerating missing fields."""
        content = data.get("content", "")
        return cls(
            role=data.get("role", "user"),
            content=content if isinstance(content, str) else str(content),
            id=data.get("id") or new_id(),
            timestamp=str(data.get("timestamp") or _now()),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.tool_calls:
            data["toolCalls"] = [tc.to_dict() for tc in self.tool_calls]
        return data


@dataclass
class ModelResponse:
    """Provider-neutral result of one model invocation."""
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    id: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def as_message(self) -> Message:
        """The assistant turn, carrying the tool-call directives without results."""
        return Message(
            role="assistant",
            content=self.content,
            id=self.id or new_id(),
            tool_calls=tuple(self.tool_calls),
        )


@dataclass
class LoopResult:
    """Final outcome of one tool-call loop invocation."""
    message: Message
    tool_calls: list[ToolCall] = field(default_factory=list)
    iterations: int = 0
    exhausted: bool = False

    @property
    def failed_tool_calls(self) -> list[ToolCall]:
        return [tc for tc in self.tool_calls if not tc.succeeded]
