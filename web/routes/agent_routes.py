"""Agent profile routes."""

from flask import Blueprint, current_app, jsonify

from agent.exceptions import UnknownAgentError

agents_bp = Blueprint("agents", __name__)


@agents_bp.route("/agents", methods=["GET"])
def list_agents():
    """List enabled agent profiles."""
    registry = current_app.config["agent_registry"]
    return jsonify({
        "agents": [p.to_dict() for p in registry.enabled()],
        "default": current_app.config["agent_config"].default_agent,
    })


@agents_bp.route("/agents/<agent_id>", methods=["GET"])
def get_agent(agent_id):
    try:
        profile = current_app.config["agent_registry"].get(agent_id)
    except UnknownAgentError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(profile.to_dict())
