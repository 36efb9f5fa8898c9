import json
import tempfile
import unittest
from pathlib import Path

from agent.config import LoopConfig, TelemetryConfig
from agent.exceptions import ProviderAuthError
from agent.messages import Message, ModelResponse, ToolCall
from agent.providers import ChatProvider
from agent.telemetry import Telemetry
from agent.tool_loop import ToolCallLoop
from tools.executor import CommandExecutor
from tools.tool_registry import ToolRegistry


class ScriptedProvider(ChatProvider):
    """Replays canned responses and snapshots every conversation it is sent."""

    name = "scripted"

    def __init__(self, responses):
        super().__init__(api_key="test", model="scripted-model", base_url="http://localhost")
        self.responses = list(responses)
        self.conversations: list[list[Message]] = []

    async def invoke(self, conversation, tools):
        self.conversations.append(list(conversation))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _call(call_id, tool, **params):
    return ToolCall(id=call_id, tool_name=tool, parameters=params)


def _tool_outputs(message):
    return json.loads(message.content)


class TestToolCallLoop(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.registry = ToolRegistry.default()
        self.loop = ToolCallLoop(CommandExecutor(self.registry), LoopConfig(max_iterations=5))
        self.tools = self.registry.definitions()
        self.user = [Message(role="user", content="Plot y = x^2")]

    async def test_plain_answer_without_tools(self):
        provider = ScriptedProvider([ModelResponse(content="Hello!", id="resp-1")])

        result = await self.loop.run(provider, "system", self.user, self.tools)

        self.assertEqual(result.message.content, "Hello!")
        self.assertEqual(result.message.id, "resp-1")
        self.assertEqual(result.tool_calls, [])
        self.assertEqual(result.iterations, 0)
        self.assertFalse(result.exhausted)
        self.assertEqual(len(provider.conversations), 1)
        seeded = provider.conversations[0]
        self.assertEqual([m.role for m in seeded], ["system", "user"])
        self.assertEqual(seeded[0].content, "system")

    async def test_empty_answer_uses_completion_message(self):
        provider = ScriptedProvider([ModelResponse(content="")])
        result = await self.loop.run(provider, "system", self.user, self.tools)
        self.assertEqual(result.message.content, "Operation completed.")

    async def test_single_tool_call_then_answer(self):
        provider = ScriptedProvider([
            ModelResponse(tool_calls=[
                _call("c1", "geogebra_plot_function", name="f", expression="x^2"),
            ]),
            ModelResponse(content="Here is the parabola."),
        ])

        result = await self.loop.run(provider, "system", self.user, self.tools)

        self.assertEqual(result.message.content, "Here is the parabola.")
        self.assertEqual(result.iterations, 1)
        self.assertEqual(len(result.tool_calls), 1)
        self.assertEqual(result.tool_calls[0].result, {"success": True, "command": "f(x) = x^2"})

        second = provider.conversations[1]
        self.assertEqual([m.role for m in second], ["system", "user", "assistant", "tool"])
        self.assertEqual(second[2].tool_calls[0].id, "c1")
        outputs = _tool_outputs(second[3])
        self.assertEqual(outputs, [
            {"tool_call_id": "c1", "output": {"success": True, "command": "f(x) = x^2"}},
        ])

    async def test_batch_dispatched_in_order_with_one_follow_up(self):
        provider = ScriptedProvider([
            ModelResponse(tool_calls=[
                _call("c1", "geogebra_plot_function", name="f", expression="x^2"),
                _call("c2", "geogebra_plot_integral", name="i", functionName="f",
                      lowerBound=0, upperBound=2),
                _call("c3", "geogebra_create_point", name="A", x=1, y=1),
            ]),
            ModelResponse(content="Done."),
        ])

        result = await self.loop.run(provider, "system", self.user, self.tools)

        # exactly one follow-up invocation for the whole batch
        self.assertEqual(len(provider.conversations), 2)
        self.assertEqual([tc.id for tc in result.tool_calls], ["c1", "c2", "c3"])
        self.assertEqual(
            [tc.result["command"] for tc in result.tool_calls],
            ["f(x) = x^2", "i = Integral(f, 0, 2)", "A = (1, 1)"],
        )
        outputs = _tool_outputs(provider.conversations[1][-1])
        self.assertEqual([o["tool_call_id"] for o in outputs], ["c1", "c2", "c3"])

    async def test_failed_call_does_not_abort_batch(self):
        provider = ScriptedProvider([
            ModelResponse(tool_calls=[
                _call("c1", "geogebra_create_point", name="A", x=0, y=0),
                _call("c2", "geogebra_teleport", name="B"),
                _call("c3", "geogebra_create_point", name="C", x=2, y=0),
            ]),
            ModelResponse(content="Partially drawn."),
        ])

        result = await self.loop.run(provider, "system", self.user, self.tools)

        self.assertEqual([tc.succeeded for tc in result.tool_calls], [True, False, True])
        self.assertEqual(len(result.failed_tool_calls), 1)
        self.assertIn("Unknown tool", result.failed_tool_calls[0].result["error"])

    async def test_every_result_attached_before_next_invocation(self):
        provider = ScriptedProvider([
            ModelResponse(tool_calls=[_call("c1", "geogebra_create_point", name="A", x=0, y=0)]),
            ModelResponse(tool_calls=[_call("c2", "geogebra_create_point", name="B", x=1, y=0)]),
            ModelResponse(content="Two points."),
        ])

        await self.loop.run(provider, "system", self.user, self.tools)

        for conversation in provider.conversations[1:]:
            pending = {
                tc.id for m in conversation if m.role == "assistant" for tc in m.tool_calls
            }
            answered = {
                o["tool_call_id"] for m in conversation if m.role == "tool" for o in _tool_outputs(m)
            }
            self.assertEqual(pending, answered)

    async def test_iteration_ceiling(self):
        loop = ToolCallLoop(CommandExecutor(self.registry), LoopConfig(max_iterations=2))
        provider = ScriptedProvider([
            ModelResponse(tool_calls=[_call(f"c{i}", "geogebra_create_point", name=f"P{i}", x=i, y=0)])
            for i in range(5)
        ])

        result = await loop.run(provider, "system", self.user, self.tools)

        self.assertTrue(result.exhausted)
        self.assertEqual(result.iterations, 2)
        self.assertEqual(len(provider.conversations), 2)
        self.assertEqual(len(result.tool_calls), 2)
        self.assertEqual(result.message.content, "All visualization steps have been completed.")

    async def test_provider_error_propagates(self):
        provider = ScriptedProvider([ProviderAuthError("bad key", status=401)])
        with self.assertRaises(ProviderAuthError):
            await self.loop.run(provider, "system", self.user, self.tools)

    async def test_no_tools_offered(self):
        provider = ScriptedProvider([ModelResponse(content="Step 1: ...")])
        result = await self.loop.run(provider, "system", self.user, [])
        self.assertEqual(result.message.content, "Step 1: ...")

    async def test_input_messages_not_mutated(self):
        provider = ScriptedProvider([
            ModelResponse(tool_calls=[_call("c1", "geogebra_create_point", name="A", x=0, y=0)]),
            ModelResponse(content="ok"),
        ])
        messages = list(self.user)
        await self.loop.run(provider, "system", messages, self.tools)
        self.assertEqual(messages, self.user)

    async def test_telemetry_and_log_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            loop = ToolCallLoop(
                CommandExecutor(self.registry), LoopConfig(), log_dir=str(Path(tmpdir) / "logs")
            )
            telemetry = Telemetry(
                TelemetryConfig(enabled=True, log_dir=str(Path(tmpdir) / "metrics")),
                session_id="s1",
            )
            provider = ScriptedProvider([
                ModelResponse(tool_calls=[_call("c1", "geogebra_create_point", name="A", x=0, y=0)]),
                ModelResponse(content="ok"),
            ])

            await loop.run(provider, "system", self.user, self.tools, telemetry=telemetry)

            summary = telemetry.summary()
            self.assertEqual(len(summary.llm_calls), 2)
            self.assertEqual(len(summary.tool_calls), 1)
            self.assertEqual(summary.tool_calls[0].command, "A = (0, 0)")
            self.assertEqual(summary.outcome, "answer")
            self.assertTrue((Path(tmpdir) / "logs" / "tool_loop.log").exists())
