"""Function plotting tools."""

from tools.base_tool import GeoGebraTool, ParameterSpec, format_number


class PlotFunctionTool(GeoGebraTool):
    name = "geogebra_plot_function"
    description = (
        "Plot a mathematical function. Optionally restrict it to the domain "
        "[xMin, xMax] by giving both bounds."
    )
    parameters = {
        "name": ParameterSpec("string", 'Function name, e.g. "f" or "g"'),
        "expression": ParameterSpec("string", 'Function expression in x, e.g. "x^2" or "sin(x)"'),
        "xMin": ParameterSpec("number", "Lower end of the domain", required=False),
        "xMax": ParameterSpec("number", "Upper end of the domain", required=False),
    }

    def render(self, **params) -> str:
        name, expression = params["name"], params["expression"]
        x_min, x_max = params.get("xMin"), params.get("xMax")
        # a single bound is ignored; the restricted form needs both
        if x_min is not None and x_max is not None:
            return (
                f"{name}(x) = If({format_number(x_min)} <= x <= {format_number(x_max)}, "
                f"{expression}, ?)"
            )
        return f"{name}(x) = {expression}"


class PlotIntegralTool(GeoGebraTool):
    name = "geogebra_plot_integral"
    description = (
        "Shade the definite integral of an existing function between two bounds "
        "(the area between the curve and the x axis). Define the function first."
    )
    parameters = {
        "name": ParameterSpec("string", "Label of the integral object"),
        "functionName": ParameterSpec("string", "Name of an already defined function"),
        "lowerBound": ParameterSpec("number", "Lower integration bound"),
        "upperBound": ParameterSpec("number", "Upper integration bound"),
    }

    def render(self, **params) -> str:
        return (
            f"{params['name']} = Integral({params['functionName']}, "
            f"{format_number(params['lowerBound'])}, {format_number(params['upperBound'])})"
        )
