"""Construction-wide tools: clearing and raw command passthrough."""

from tools.base_tool import GeoGebraTool, ParameterSpec

CLEAR_COMMAND = "Delete(*)"


class ClearConstructionTool(GeoGebraTool):
    name = "geogebra_clear_construction"
    description = "Remove every object from the GeoGebra construction."
    parameters = {}
    target_parameter = None
    clears_construction = True

    def render(self, **params) -> str:
        return CLEAR_COMMAND


class EvalCommandTool(GeoGebraTool):
    name = "geogebra_eval_command"
    description = (
        "Run a raw GeoGebra command when no other tool fits, "
        'e.g. "A = (1, 2)" or "Integral(f, 0, 2)".'
    )
    parameters = {
        "command": ParameterSpec("string", "GeoGebra command to execute verbatim"),
    }
    target_parameter = None

    def render(self, **params) -> str:
        return params["command"]

    def target(self, params: dict) -> str | None:
        # "label = ..." commands name the object they create
        label, sep, _ = params.get("command", "").partition("=")
        label = label.strip()
        if sep and label and label.isidentifier():
            return label
        return None
