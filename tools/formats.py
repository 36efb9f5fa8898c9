"""Map tool definitions onto each provider's native tool-calling format."""

from __future__ import annotations

from typing import Any, Iterable

from tools.base_tool import ToolDefinition


def to_openai_tools(definitions: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """OpenAI-compatible format:

    {"type": "function", "function": {"name", "description", "parameters"}}
    """
    return [
        {
            "type": "function",
            "function": {
                "name": d.name,
                "description": d.description,
                "parameters": d.to_json_schema(),
            },
        }
        for d in definitions
    ]


def to_anthropic_tools(definitions: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """Anthropic messages format: {"name", "description", "input_schema"}."""
    return [
        {
            "name": d.name,
            "description": d.description,
            "input_schema": d.to_json_schema(),
        }
        for d in definitions
    ]
