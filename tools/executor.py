"""Command executor: turns a tool invocation into one GeoGebra command."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from agent.exceptions import EngineError, ToolError
from geogebra.engine import GeoGebraEngine
from tools.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Per-call outcome, reported in-band to the model and the client."""
    success: bool
    command: str = ""
    error: str | None = None
    object_info: dict | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "command": self.command}
        if self.error is not None:
            data["error"] = self.error
        if self.object_info is not None:
            data["objectInfo"] = self.object_info
        return data


class CommandExecutor:
    """Validates, renders and applies tool calls.

    Without an engine the executor runs in local (interpretive) mode: the
    command is rendered and returned for the browser widget to apply. With
    an engine it runs in managed mode and reports the engine's verdict.
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def render(self, tool_name: str, parameters: dict[str, Any] | None) -> str:
        """Render the command string. Raises UnknownToolError / ToolValidationError."""
        tool = self.registry.require_tool(tool_name)
        params = tool.validate(parameters)
        return tool.render(**params)

    async def execute(
        self,
        tool_name: str,
        parameters: dict[str, Any] | None,
        engine: GeoGebraEngine | None = None,
    ) -> ExecutionResult:
        """Execute one tool call. Never raises for per-call failures."""
        try:
            tool = self.registry.require_tool(tool_name)
            params = tool.validate(parameters)
            command = tool.render(**params)
        except ToolError as e:
            logger.warning("Rejected tool call %s: %s", tool_name, e)
            return ExecutionResult(success=False, error=str(e))

        if engine is None:
            return ExecutionResult(success=True, command=command)

        try:
            if tool.clears_construction:
                await engine.new_construction()
                return ExecutionResult(success=True, command=command)

            outcome = await engine.eval_command(command)
            if not outcome.success:
                return ExecutionResult(
                    success=False,
                    command=command,
                    error=outcome.error or "Command rejected by GeoGebra",
                )

            object_info = None
            target = tool.target(params) or next(iter(outcome.labels), None)
            if target:
                info = await engine.get_object_info(target)
                if info is not None:
                    object_info = info.to_dict()
            return ExecutionResult(success=True, command=command, object_info=object_info)
        except EngineError as e:
            logger.warning("Engine failed on %s: %s", command, e)
            return ExecutionResult(success=False, command=command, error=str(e))

    @staticmethod
    def mode_for(engine: GeoGebraEngine | None) -> str:
        return "local" if engine is None else "managed"
