"""Provider configuration helpers for the client settings dialog."""

from urllib.parse import urlparse

from flask import Blueprint, jsonify, request

from agent.config import PROVIDERS

config_bp = Blueprint("config", __name__)

MODELS = {
    "openai": [
        "gpt-4-turbo-preview",
        "gpt-4",
        "gpt-3.5-turbo",
    ],
    "anthropic": [
        "claude-3-5-sonnet-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
    ],
    "custom": [
        "gpt-4",
        "gpt-3.5-turbo",
        "gpt-5-chat",
        "claude-3-5-sonnet",
        "claude-3-opus",
        "claude-3-sonnet",
        "custom-model",
    ],
}


@config_bp.route("/config/validate", methods=["POST"])
def validate_config():
    """Check the shape of a provider configuration without calling the provider."""
    data = request.get_json(silent=True) or {}
    provider = data.get("provider")
    api_key = data.get("apiKey")
    if not provider or not api_key:
        return jsonify({"valid": False, "error": "provider and apiKey are required"}), 400

    error = _check(provider, api_key, data.get("baseURL"))
    if error:
        return jsonify({"valid": False, "error": error})
    return jsonify({"valid": True})


@config_bp.route("/config/models/<provider>", methods=["GET"])
def list_models(provider):
    return jsonify({"models": MODELS.get(provider, [])})


def _check(provider: str, api_key: str, base_url) -> str | None:
    if provider not in PROVIDERS:
        return f"Unsupported provider: {provider}"
    if provider == "openai" and not api_key.startswith("sk-"):
        return "OpenAI API keys start with 'sk-'"
    if provider == "anthropic" and not api_key.startswith("sk-ant-"):
        return "Anthropic API keys start with 'sk-ant-'"
    if provider == "custom":
        if not base_url:
            return "A custom provider needs a baseURL"
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return "baseURL must be an http(s) URL"
    return None
