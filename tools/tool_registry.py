"""Tool discovery and the process-wide tool catalog."""

import importlib
import inspect
import logging
import os
from typing import Any

from agent.exceptions import UnknownToolError
from tools.base_tool import GeoGebraTool, ToolDefinition

logger = logging.getLogger(__name__)

# Modules in tools/ that hold infrastructure rather than tool classes.
_SKIP_MODULES = ("base_tool.py", "tool_registry.py", "executor.py", "formats.py", "__init__.py")


class ToolRegistry:
    """Discovers GeoGebra tools and serves their definitions.

    The registry is read-only once discovery has run; the same instance is
    shared by the model-binding step and the executor's dispatch step.
    """

    def __init__(self):
        self._tool_classes: dict[str, type[GeoGebraTool]] = {}

    @classmethod
    def default(cls) -> "ToolRegistry":
        registry = cls()
        registry.discover_tools()
        return registry

    def discover_tools(self, tools_dir: str | None = None) -> None:
        """Scan the tools/ directory and register all GeoGebraTool subclasses."""
        if tools_dir is None:
            tools_dir = os.path.dirname(os.path.abspath(__file__))

        for filename in sorted(os.listdir(tools_dir)):
            if not filename.endswith(".py") or filename.startswith("_") or filename in _SKIP_MODULES:
                continue

            module_name = f"tools.{filename[:-3]}"
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                logger.warning("Failed to load tool module %s: %s", module_name, e)
                continue
            for _, obj in inspect.getmembers(module, inspect.isclass):
                if issubclass(obj, GeoGebraTool) and not inspect.isabstract(obj) and obj.name:
                    self.register(obj)

    def register(self, tool_cls: type[GeoGebraTool]) -> None:
        existing = self._tool_classes.get(tool_cls.name)
        if existing is not None and existing is not tool_cls:
            raise ValueError(f"Duplicate tool name: {tool_cls.name}")
        self._tool_classes[tool_cls.name] = tool_cls

    def get_tool(self, name: str) -> GeoGebraTool | None:
        """Instantiate and return a tool by name."""
        cls = self._tool_classes.get(name)
        if cls:
            return cls()
        return None

    def require_tool(self, name: str) -> GeoGebraTool:
        tool = self.get_tool(name)
        if tool is None:
            raise UnknownToolError(name, self.tool_names)
        return tool

    def validate(self, name: str, params: dict[str, Any] | None) -> dict[str, Any]:
        """Validate and coerce parameters for the named tool."""
        return self.require_tool(name).validate(params)

    def definitions(self) -> list[ToolDefinition]:
        return [self._tool_classes[name].definition() for name in self.tool_names]

    def get_tool_descriptions(self) -> str:
        """Generate a markdown listing of all tools for the system prompt."""
        return "\n".join(
            self._tool_classes[name]().get_prompt_description() for name in self.tool_names
        )

    @property
    def tool_names(self) -> list[str]:
        """List all registered tool names."""
        return sorted(self._tool_classes.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._tool_classes

    def __len__(self) -> int:
        return len(self._tool_classes)
