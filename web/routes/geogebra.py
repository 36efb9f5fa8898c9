"""GeoGebra canvas routes: inspect, clear and command the construction directly."""

import logging

from flask import Blueprint, current_app, jsonify, request

from agent.exceptions import EngineError
from tools.commands import CLEAR_COMMAND
from web.app import run_with_engine

geogebra_bp = Blueprint("geogebra", __name__)

logger = logging.getLogger(__name__)


@geogebra_bp.route("/geogebra/objects", methods=["GET"])
def list_objects():
    """Objects in the managed construction. Always empty in local mode."""
    async def _list(engine):
        if engine is None:
            return []
        return [o.to_dict() for o in await engine.list_objects()]

    try:
        objects = run_with_engine(current_app, _list)
    except EngineError as e:
        logger.error("Listing GeoGebra objects failed: %s", e)
        return jsonify({"error": str(e)}), 500
    return jsonify({"objects": objects})


@geogebra_bp.route("/geogebra/clear", methods=["POST"])
def clear_construction():
    async def _clear(engine):
        if engine is not None:
            await engine.new_construction()

    try:
        run_with_engine(current_app, _clear)
    except EngineError as e:
        logger.error("Clearing GeoGebra construction failed: %s", e)
        return jsonify({"error": str(e)}), 500
    return jsonify({"success": True, "command": CLEAR_COMMAND})


@geogebra_bp.route("/geogebra/command", methods=["POST"])
def eval_command():
    """Apply one raw GeoGebra command through the eval tool."""
    data = request.get_json(silent=True) or {}
    command = data.get("command")
    if not isinstance(command, str) or not command.strip():
        return jsonify({"error": "command is required"}), 400

    executor = current_app.config["executor"]

    async def _eval(engine):
        return await executor.execute("geogebra_eval_command", {"command": command}, engine=engine)

    try:
        result = run_with_engine(current_app, _eval)
    except EngineError as e:
        logger.error("GeoGebra command failed: %s", e)
        return jsonify({"error": str(e)}), 500
    status = 200 if result.success else 422
    return jsonify(result.to_dict()), status


@geogebra_bp.route("/geogebra/export/png", methods=["GET"])
def export_png():
    if current_app.config["engine_pool"] is None:
        return jsonify({"error": "PNG export requires the managed engine mode"}), 400

    async def _export(engine):
        return await engine.export_png()

    try:
        png = run_with_engine(current_app, _export)
    except EngineError as e:
        logger.error("PNG export failed: %s", e)
        return jsonify({"error": str(e)}), 500
    return jsonify({"png": png, "encoding": "base64"})
