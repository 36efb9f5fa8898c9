"""The tool-call loop: model turn, dispatch, fold results back, repeat."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agent.config import LoopConfig
from agent.logs import build_file_logger
from agent.messages import LoopResult, Message, ToolCall, new_id
from agent.providers import ChatProvider
from tools.base_tool import ToolDefinition
from tools.executor import CommandExecutor

if TYPE_CHECKING:
    from agent.telemetry import Telemetry
    from geogebra.engine import GeoGebraEngine


@dataclass
class LoopState:
    """Private to one ``run`` call; discarded when it returns."""
    conversation: list[Message]
    iteration_count: int = 0
    accumulated_tool_calls: list[ToolCall] = field(default_factory=list)


class ToolCallLoop:
    """
    Drives a chat model that may call GeoGebra tools.

    AWAITING_MODEL -> DISPATCHING_TOOLS -> AWAITING_MODEL ... -> DONE.
    Tool calls of one model turn are dispatched sequentially, in emitted
    order, and every result is attached before the next model invocation.
    The loop ends on a turn without tool calls or when ``max_iterations``
    dispatch rounds have happened.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        config: LoopConfig | None = None,
        log_dir: str | None = None,
    ):
        self.executor = executor
        self.config = config or LoopConfig()
        if log_dir:
            self._logger = build_file_logger("agent.tool_loop", log_dir, "tool_loop.log")
        else:
            self._logger = logging.getLogger("agent.tool_loop")

    @property
    def max_iterations(self) -> int:
        return self.config.max_iterations

    async def run(
        self,
        provider: ChatProvider,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition],
        engine: "GeoGebraEngine | None" = None,
        telemetry: "Telemetry | None" = None,
    ) -> LoopResult:
        """Run the loop over ``[system prompt, *messages]``.

        Provider errors propagate unchanged; tool failures are reported in-band.
        """
        state = LoopState(
            conversation=[Message(role="system", content=system_prompt), *messages],
        )
        self._logger.info(
            "Loop start: %d message(s), %d tool(s), mode=%s",
            len(state.conversation), len(tools), self.executor.mode_for(engine),
        )

        while state.iteration_count < self.max_iterations:
            started = time.monotonic()
            try:
                response = await provider.invoke(state.conversation, tools)
            except Exception as e:
                self._logger.error("Model call failed at iteration %d: %s", state.iteration_count + 1, e)
                if telemetry:
                    telemetry.record_llm_call(
                        provider.model, 0, 0, (time.monotonic() - started) * 1000, error=str(e)
                    )
                raise
            if telemetry:
                telemetry.record_llm_call(
                    provider.model,
                    response.prompt_tokens,
                    response.completion_tokens,
                    (time.monotonic() - started) * 1000,
                )

            self._logger.info(
                "Response [%d]: content=%s tool_calls=%d",
                state.iteration_count + 1, bool(response.content), len(response.tool_calls),
            )

            if not response.tool_calls:
                content = response.content or self.config.completion_message
                decision = "answer" if response.content else "empty"
                if telemetry:
                    telemetry.record_iteration(
                        state.iteration_count + 1, decision, (time.monotonic() - started) * 1000
                    )
                    telemetry.finalize(decision)
                return LoopResult(
                    message=Message(role="assistant", content=content, id=response.id or new_id()),
                    tool_calls=state.accumulated_tool_calls,
                    iterations=state.iteration_count,
                )

            outputs = []
            for call in response.tool_calls:
                finished = await self._dispatch(call, engine, telemetry)
                state.accumulated_tool_calls.append(finished)
                outputs.append({"tool_call_id": finished.id, "output": finished.result})

            state.conversation.append(response.as_message())
            state.conversation.append(Message(role="tool", content=json.dumps(outputs)))
            state.iteration_count += 1
            if telemetry:
                telemetry.record_iteration(
                    state.iteration_count, "tools", (time.monotonic() - started) * 1000
                )

        self._logger.warning(
            "Loop reached %d iteration(s) with %d tool call(s); stopping",
            self.max_iterations, len(state.accumulated_tool_calls),
        )
        if telemetry:
            telemetry.finalize("exhausted")
        return LoopResult(
            message=Message(role="assistant", content=self.config.exhausted_message),
            tool_calls=state.accumulated_tool_calls,
            iterations=state.iteration_count,
            exhausted=True,
        )

    async def _dispatch(
        self,
        call: ToolCall,
        engine: "GeoGebraEngine | None",
        telemetry: "Telemetry | None",
    ) -> ToolCall:
        started = time.monotonic()
        result = await self.executor.execute(call.tool_name, call.parameters, engine=engine)
        duration_ms = (time.monotonic() - started) * 1000

        if result.success:
            self._logger.info("Tool %s ok: %s", call.tool_name, result.command)
        else:
            self._logger.warning("Tool %s failed: %s", call.tool_name, result.error)
        if telemetry:
            telemetry.record_tool_call(
                call.tool_name,
                dict(call.parameters),
                duration_ms,
                result.command,
                error=result.error,
            )
        return call.with_result(result.to_dict())
