"""Prompt template engine with {{variable}} substitution and {{include:file}} directives."""

import os
import re
from agent.exceptions import PromptTemplateError

PROMPTS_DIR = os.path.dirname(os.path.abspath(__file__))


class PromptTemplateEngine:
    """Renders markdown prompt templates with variable substitution and includes."""

    def __init__(self, prompts_dir: str = PROMPTS_DIR, profile: str = "default"):
        self.base_dir = os.path.join(prompts_dir, profile)
        if not os.path.isdir(self.base_dir):
            raise PromptTemplateError(f"Prompts directory not found: {self.base_dir}")

    def render(self, template_name: str, variables: dict) -> str:
        """Load and render a template file with variable substitution."""
        path = os.path.join(self.base_dir, template_name)
        if not os.path.exists(path):
            raise PromptTemplateError(f"Template not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            template = f.read()

        template = self._resolve_includes(template, depth=0)
        return self.render_string(template, variables)

    def _resolve_includes(self, template: str, depth: int) -> str:
        """Recursively resolve {{include:filename.md}} directives."""
        if depth > 10:
            raise PromptTemplateError("Include depth exceeded 10, possible circular reference")

        pattern = r"\{\{include:([^}]+)\}\}"

        def replacer(match):
            included_name = match.group(1).strip()
            included_path = os.path.join(self.base_dir, included_name)
            if not os.path.exists(included_path):
                raise PromptTemplateError(f"Included template not found: {included_name}")
            with open(included_path, "r", encoding="utf-8") as f:
                content = f.read()
            return self._resolve_includes(content, depth + 1)

        return re.sub(pattern, replacer, template)

    def render_string(self, template_str: str, variables: dict) -> str:
        """Render a template string (not from file) with variable substitution."""
        for key, value in variables.items():
            template_str = template_str.replace("{{" + key + "}}", str(value))
        return template_str
