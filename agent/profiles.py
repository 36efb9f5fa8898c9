"""Agent profiles: a system prompt plus whether GeoGebra tools are offered."""

from __future__ import annotations

from dataclasses import dataclass, asdict

from agent.exceptions import UnknownAgentError


@dataclass(frozen=True)
class AgentProfile:
    id: str
    name: str
    description: str
    icon: str
    prompt_template: str
    uses_tools: bool = False
    enabled: bool = True

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("prompt_template")
        data["tools"] = ["geogebra"] if self.uses_tools else []
        return data


BUILTIN_PROFILES = (
    AgentProfile(
        id="geogebra",
        name="GeoGebra Visualizer",
        description="Geometry, function plots and integral visualizations drawn with GeoGebra.",
        icon="📊",
        prompt_template="agent.geogebra.md",
        uses_tools=True,
    ),
    AgentProfile(
        id="math-tutor",
        name="Math Tutor",
        description="All-round tutor: exercises, function graphs, geometry and integral visualizations.",
        icon="🎓",
        prompt_template="agent.math-tutor.md",
        uses_tools=True,
    ),
    AgentProfile(
        id="step-solver",
        name="Step Solver",
        description="Breaks algebra, calculus and linear algebra problems into detailed steps.",
        icon="🧮",
        prompt_template="agent.step-solver.md",
    ),
    AgentProfile(
        id="concept-explainer",
        name="Concept Explainer",
        description="Explains mathematical concepts and theorems with analogies and examples.",
        icon="📖",
        prompt_template="agent.concept-explainer.md",
    ),
    AgentProfile(
        id="exercise-generator",
        name="Exercise Generator",
        description="Generates graded exercises with answers and worked solutions.",
        icon="📝",
        prompt_template="agent.exercise-generator.md",
    ),
)


class AgentRegistry:
    """Lookup of agent profiles by id, in registration order."""

    def __init__(self):
        self._profiles: dict[str, AgentProfile] = {}

    @classmethod
    def default(cls) -> "AgentRegistry":
        registry = cls()
        for profile in BUILTIN_PROFILES:
            registry.register(profile)
        return registry

    def register(self, profile: AgentProfile) -> None:
        if profile.id in self._profiles:
            raise ValueError(f"Agent '{profile.id}' is already registered")
        self._profiles[profile.id] = profile

    def get(self, agent_id: str) -> AgentProfile:
        profile = self._profiles.get(agent_id)
        if profile is None:
            raise UnknownAgentError(f"Unknown agent '{agent_id}'")
        return profile

    def all(self) -> list[AgentProfile]:
        return list(self._profiles.values())

    def enabled(self) -> list[AgentProfile]:
        return [p for p in self._profiles.values() if p.enabled]

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._profiles
