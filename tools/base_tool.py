"""Tool definitions and the abstract base class for GeoGebra drawing tools."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from agent.exceptions import ToolValidationError

PARAMETER_TYPES = ("string", "number", "array")


@dataclass(frozen=True)
class ParameterSpec:
    """Schema for a single tool parameter."""
    type: str
    description: str = ""
    required: bool = True
    items: str | None = None  # element type for arrays

    def __post_init__(self):
        if self.type not in PARAMETER_TYPES:
            raise ValueError(f"Unsupported parameter type: {self.type}")

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.type == "array":
            schema["items"] = {"type": self.items or "string"}
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """Static description of a tool, advertised to the model."""
    name: str
    description: str
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)

    @property
    def required(self) -> list[str]:
        return [name for name, spec in self.parameters.items() if spec.required]

    def to_json_schema(self) -> dict[str, Any]:
        """JSON-schema object for the parameters, shared by every provider format."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {
                name: spec.to_json_schema() for name, spec in self.parameters.items()
            },
            "additionalProperties": False,
        }
        if self.required:
            schema["required"] = self.required
        return schema


def format_number(value: int | float) -> str:
    """Render a number the way GeoGebra commands expect (``2`` rather than ``2.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


class GeoGebraTool(ABC):
    """Base class for all GeoGebra tools. Subclass this to create new tools.

    A subclass declares its ``name``, ``description`` and ``parameters`` and
    renders validated parameters into exactly one GeoGebra command string.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, ParameterSpec] = {}

    # Parameter holding the label of the object the command creates, queried
    # for its post-state in managed mode.
    target_parameter: str | None = "name"
    clears_construction: bool = False

    @classmethod
    def definition(cls) -> ToolDefinition:
        return ToolDefinition(
            name=cls.name,
            description=cls.description,
            parameters=dict(cls.parameters),
        )

    @classmethod
    def validate(cls, params: dict[str, Any] | None) -> dict[str, Any]:
        """Check and coerce parameters against the declared schema."""
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ToolValidationError(f"{cls.name}: parameters must be an object")

        unexpected = sorted(set(params) - set(cls.parameters))
        if unexpected:
            raise ToolValidationError(
                f"{cls.name}: unexpected parameter(s): {', '.join(unexpected)}"
            )

        cleaned: dict[str, Any] = {}
        for key, spec in cls.parameters.items():
            value = params.get(key)
            if value is None:
                if spec.required:
                    raise ToolValidationError(f"{cls.name}: missing required parameter '{key}'")
                continue
            cleaned[key] = _coerce(cls.name, key, spec, value)
        return cleaned

    def target(self, params: dict[str, Any]) -> str | None:
        """Label of the object created by this call, if any."""
        if self.target_parameter is None:
            return None
        return params.get(self.target_parameter)

    @abstractmethod
    def render(self, **params) -> str:
        """Render validated parameters into one GeoGebra command."""
        ...

    def get_prompt_description(self) -> str:
        lines = [f"### {self.name}", self.description]
        for key, spec in self.parameters.items():
            flag = "required" if spec.required else "optional"
            lines.append(f"- `{key}` ({spec.type}, {flag}): {spec.description}")
        return "\n".join(lines) + "\n"


def _coerce(tool: str, key: str, spec: ParameterSpec, value: Any) -> Any:
    if spec.type == "number":
        return _coerce_number(tool, key, value)
    if spec.type == "array":
        return _coerce_array(tool, key, value)
    return _coerce_string(tool, key, spec, value)


def _coerce_number(tool: str, key: str, value: Any) -> int | float:
    if isinstance(value, bool):
        raise ToolValidationError(f"{tool}: parameter '{key}' must be a number")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise ToolValidationError(f"{tool}: parameter '{key}' must be a number, got {value!r}")
    else:
        raise ToolValidationError(f"{tool}: parameter '{key}' must be a number")

    if isinstance(number, float) and not math.isfinite(number):
        raise ToolValidationError(f"{tool}: parameter '{key}' must be finite")
    return number


def _coerce_string(tool: str, key: str, spec: ParameterSpec, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ToolValidationError(f"{tool}: parameter '{key}' must be a string")
    text = value.strip() if isinstance(value, str) else format_number(value)
    if spec.required and not text:
        raise ToolValidationError(f"{tool}: parameter '{key}' must not be empty")
    return text


def _coerce_array(tool: str, key: str, value: Any) -> list[str]:
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if not isinstance(value, (list, tuple)):
        raise ToolValidationError(f"{tool}: parameter '{key}' must be a list")
    items = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ToolValidationError(f"{tool}: parameter '{key}' must contain non-empty strings")
        items.append(item.strip())
    if not items:
        raise ToolValidationError(f"{tool}: parameter '{key}' must not be empty")
    return items
