"""Chat API routes: run one tool-call loop per message, manage session configs."""

import logging
import re
import uuid

from flask import Blueprint, current_app, jsonify, request

from agent.exceptions import ConfigError, EngineError, ProviderError, UnknownAgentError
from agent.messages import Message
from agent.session_store import SessionConfig
from agent.telemetry import Telemetry
from web.app import run_with_engine

chat_bp = Blueprint("chat", __name__)

logger = logging.getLogger(__name__)

GENERIC_PROVIDER_ERROR = "Something went wrong, please check your configuration."

# Roles a client may send; system prompts come from the agent profile
_CLIENT_ROLES = ("user", "assistant")

# Session ids name telemetry files on disk
_SESSION_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")


@chat_bp.route("/chat/message", methods=["POST"])
def send_message():
    """Answer the latest user message, driving GeoGebra through tool calls."""
    data = request.get_json(silent=True) or {}
    raw_messages = data.get("messages")
    raw_config = data.get("config")
    if not isinstance(raw_messages, list) or not raw_messages or not isinstance(raw_config, dict):
        return jsonify({"error": "messages and config are required"}), 400

    app_config = current_app.config["agent_config"]
    session_id = data.get("sessionId") or uuid.uuid4().hex[:12]
    if not isinstance(session_id, str) or not _SESSION_ID_RE.fullmatch(session_id):
        return jsonify({"error": "sessionId may only contain letters, digits, '-' and '_'"}), 400
    agent_id = data.get("agentId") or app_config.default_agent

    try:
        profile = current_app.config["agent_registry"].get(agent_id)
    except UnknownAgentError as e:
        return jsonify({"error": str(e)}), 404

    try:
        messages = [
            Message.from_dict(m) for m in raw_messages
            if isinstance(m, dict) and m.get("role", "user") in _CLIENT_ROLES
        ]
        session_config = SessionConfig.from_request(session_id, raw_config)
        provider = current_app.config["provider_factory"](
            session_config.provider,
            session_config.api_key,
            session_config.model,
            session_config.base_url,
            app_config.providers,
        )
    except (ConfigError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    if not messages:
        return jsonify({"error": "messages must contain at least one user or assistant turn"}), 400

    telemetry = Telemetry(app_config.telemetry, session_id)
    current_app.config["telemetry"][session_id] = telemetry
    current_app.config["session_store"].put(session_config)

    registry = current_app.config["tool_registry"]
    system_prompt = current_app.config["prompt_engine"].render(
        profile.prompt_template,
        {"tool_descriptions": registry.get_tool_descriptions()},
    )
    tools = registry.definitions() if profile.uses_tools else []
    tool_loop = current_app.config["tool_loop"]

    async def _chat(engine):
        result = await tool_loop.run(
            provider, system_prompt, messages, tools, engine=engine, telemetry=telemetry
        )
        objects = await engine.list_objects() if engine is not None else []
        return result, objects

    try:
        result, objects = run_with_engine(current_app, _chat)
    except ProviderError as e:
        logger.error("Chat failed for session %s (%s): %s", session_id, session_config.provider, e)
        return jsonify({"error": GENERIC_PROVIDER_ERROR, "detail": str(e)}), 502
    except EngineError as e:
        logger.error("GeoGebra engine failed for session %s: %s", session_id, e)
        return jsonify({"error": str(e)}), 500

    message = result.message.to_dict()
    failed = len(result.failed_tool_calls)
    if failed:
        total = len(result.tool_calls)
        message["content"] = (
            f"{message['content']}\n\n"
            f"Note: {failed}/{total} visualization steps failed."
        )

    return jsonify({
        "message": message,
        "toolCalls": [tc.to_dict() for tc in result.tool_calls],
        "objects": [o.to_dict() for o in objects],
        "sessionId": session_id,
        "agentId": profile.id,
    })


@chat_bp.route("/chat/session/<session_id>", methods=["DELETE"])
def delete_session(session_id):
    """Forget a session's provider configuration. Unknown ids are not an error."""
    deleted = current_app.config["session_store"].delete(session_id)
    current_app.config["telemetry"].pop(session_id, None)
    if deleted:
        logger.info("Deleted session %s", session_id)
    return jsonify({"success": True})


@chat_bp.route("/chat/sessions", methods=["GET"])
def list_sessions():
    """List stored sessions without their API keys."""
    return jsonify({"sessions": current_app.config["session_store"].list_sessions()})
