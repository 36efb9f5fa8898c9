"""Metrics API routes."""

from flask import Blueprint, current_app, jsonify

metrics_bp = Blueprint("metrics", __name__)


@metrics_bp.route("/metrics", methods=["GET"])
def get_metrics():
    """Return telemetry of the latest request of each session."""
    config = current_app.config["agent_config"]
    if not config.telemetry.enabled:
        return jsonify({"enabled": False, "sessions": []})

    result = []
    for sid, telemetry in list(current_app.config["telemetry"].items()):
        result.append({
            "session_id": sid,
            "metrics": telemetry.summary_dict(),
        })

    return jsonify({
        "enabled": True,
        "log_dir": config.telemetry.log_dir,
        "sessions": result,
    })
