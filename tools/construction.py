"""Geometric construction tools: points, lines, circles and polygons."""

from tools.base_tool import GeoGebraTool, ParameterSpec, format_number


class CreatePointTool(GeoGebraTool):
    name = "geogebra_create_point"
    description = "Create a point in GeoGebra at the given coordinates."
    parameters = {
        "name": ParameterSpec("string", 'Point label, e.g. "A" or "P1"'),
        "x": ParameterSpec("number", "X coordinate of the point"),
        "y": ParameterSpec("number", "Y coordinate of the point"),
    }

    def render(self, **params) -> str:
        return f"{params['name']} = ({format_number(params['x'])}, {format_number(params['y'])})"


class CreateLineTool(GeoGebraTool):
    name = "geogebra_create_line"
    description = "Create a line through two existing points."
    parameters = {
        "name": ParameterSpec("string", "Line label"),
        "point1": ParameterSpec("string", "Label of the first point"),
        "point2": ParameterSpec("string", "Label of the second point"),
    }

    def render(self, **params) -> str:
        return f"{params['name']} = Line({params['point1']}, {params['point2']})"


class CreateCircleTool(GeoGebraTool):
    name = "geogebra_create_circle"
    description = "Create a circle from an existing center point and a radius."
    parameters = {
        "name": ParameterSpec("string", "Circle label"),
        "center": ParameterSpec("string", "Label of the center point"),
        "radius": ParameterSpec("number", "Radius of the circle"),
    }

    def render(self, **params) -> str:
        return f"{params['name']} = Circle({params['center']}, {format_number(params['radius'])})"


class CreatePolygonTool(GeoGebraTool):
    name = "geogebra_create_polygon"
    description = "Create a polygon from existing vertex points, in order."
    parameters = {
        "name": ParameterSpec("string", "Polygon label"),
        "vertices": ParameterSpec("array", "Labels of the vertex points", items="string"),
    }

    def render(self, **params) -> str:
        return f"{params['name']} = Polygon({', '.join(params['vertices'])})"
