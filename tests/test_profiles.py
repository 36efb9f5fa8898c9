import unittest

from agent.exceptions import PromptTemplateError, UnknownAgentError
from agent.profiles import AgentProfile, AgentRegistry
from prompts.template_engine import PromptTemplateEngine
from tools.tool_registry import ToolRegistry


class TestAgentRegistry(unittest.TestCase):
    def test_builtin_profiles(self):
        registry = AgentRegistry.default()
        ids = [p.id for p in registry.enabled()]
        self.assertEqual(
            ids,
            ["geogebra", "math-tutor", "step-solver", "concept-explainer", "exercise-generator"],
        )
        self.assertTrue(registry.get("geogebra").uses_tools)
        self.assertFalse(registry.get("step-solver").uses_tools)

    def test_unknown_agent(self):
        with self.assertRaises(UnknownAgentError):
            AgentRegistry.default().get("poet")

    def test_duplicate_registration(self):
        registry = AgentRegistry.default()
        with self.assertRaises(ValueError):
            registry.register(registry.get("geogebra"))

    def test_disabled_profiles_are_hidden(self):
        registry = AgentRegistry()
        registry.register(AgentProfile("a", "A", "", "", "agent.geogebra.md"))
        registry.register(AgentProfile("b", "B", "", "", "agent.geogebra.md", enabled=False))
        self.assertEqual([p.id for p in registry.enabled()], ["a"])
        self.assertEqual(len(registry.all()), 2)

    def test_to_dict_hides_template(self):
        data = AgentRegistry.default().get("math-tutor").to_dict()
        self.assertNotIn("prompt_template", data)
        self.assertEqual(data["tools"], ["geogebra"])


class TestPrompts(unittest.TestCase):
    def setUp(self):
        self.engine = PromptTemplateEngine()
        self.descriptions = ToolRegistry.default().get_tool_descriptions()

    def test_every_profile_template_renders(self):
        for profile in AgentRegistry.default().all():
            with self.subTest(profile=profile.id):
                text = self.engine.render(
                    profile.prompt_template, {"tool_descriptions": self.descriptions}
                )
                self.assertNotIn("{{", text)
                if profile.uses_tools:
                    self.assertIn("geogebra_plot_integral", text)

    def test_missing_template(self):
        with self.assertRaises(PromptTemplateError):
            self.engine.render("agent.nope.md", {})

    def test_missing_profile_directory(self):
        with self.assertRaises(PromptTemplateError):
            PromptTemplateEngine(profile="does-not-exist")
