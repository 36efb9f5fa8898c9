"""Configuration loading and validation."""

import json
import os
from dataclasses import dataclass, field
from agent.exceptions import ConfigError

PROVIDERS = ("openai", "anthropic", "custom")
ENGINE_MODES = ("local", "managed")


@dataclass
class ServerConfig:
    """Configuration for the Flask server."""
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    cors: bool = True


@dataclass
class ProviderSettings:
    """Configuration for LLM provider connectivity and retries."""
    connect_timeout: float = 5.0
    read_timeout: float = 120.0
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: int = 2048
    anthropic_version: str = "2023-06-01"
    default_models: dict[str, str] = field(default_factory=lambda: {
        "openai": "gpt-4-turbo-preview",
        "anthropic": "claude-3-5-sonnet-20241022",
        "custom": "gpt-4-turbo-preview",
    })
    default_base_urls: dict[str, str] = field(default_factory=lambda: {
        "openai": "https://api.openai.com/v1",
        "anthropic": "https://api.anthropic.com",
    })


@dataclass
class LoopConfig:
    """Configuration for the tool-call loop."""
    max_iterations: int = 5
    completion_message: str = "Operation completed."
    exhausted_message: str = "All visualization steps have been completed."


@dataclass
class EngineConfig:
    """Configuration for the GeoGebra command engine."""
    mode: str = "local"  # "local" renders commands only, "managed" drives a live applet
    pool_size: int = 1
    headless: bool = True
    app_name: str = "classic"
    width: int = 800
    height: int = 600
    language: str = "en"
    command_timeout: float = 10.0
    startup_timeout: float = 30.0
    deploy_script_url: str = "https://www.geogebra.org/apps/deployggb.js"


@dataclass
class SessionSettings:
    """Configuration for the in-memory session store."""
    max_sessions: int = 0  # 0 keeps every session until deleted


@dataclass
class TelemetryConfig:
    """Configuration for telemetry and metrics logging."""
    enabled: bool = False
    log_dir: str = "./data/metrics"
    otel_enabled: bool = False
    otel_endpoint: str | None = None
    otel_service_name: str = "geogebra-tutor"


@dataclass
class AppConfig:
    """Complete application configuration."""
    server: ServerConfig = field(default_factory=ServerConfig)
    providers: ProviderSettings = field(default_factory=ProviderSettings)
    loop: LoopConfig = field(default_factory=LoopConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    session: SessionSettings = field(default_factory=SessionSettings)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    default_agent: str = "geogebra"
    prompt_profile: str = "default"
    data_dir: str = "data"
    log_dir: str = "data/logs"


def load_config(config_path: str = "config.json") -> AppConfig:
    """Load configuration from JSON file with defaults."""
    if not os.path.exists(config_path):
        config = AppConfig()
        _apply_env_overrides(config)
        return config

    try:
        with open(config_path, "r") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")

    data_dir = raw.get("data_dir", "data")
    log_dir = raw.get("log_dir", os.path.join(data_dir, "logs"))

    config = AppConfig(
        server=_load_server_settings(raw.get("server", {})),
        providers=_load_provider_settings(raw.get("providers", {})),
        loop=_load_loop_settings(raw.get("loop", {})),
        engine=_load_engine_settings(raw.get("engine", {})),
        session=_load_session_settings(raw.get("session", {})),
        telemetry=_load_telemetry_settings(raw.get("telemetry", {}), data_dir),
        default_agent=_require_str(raw.get("default_agent", "geogebra"), "default_agent"),
        prompt_profile=_require_str(raw.get("prompt_profile", "default"), "prompt_profile"),
        data_dir=data_dir,
        log_dir=log_dir,
    )
    _apply_env_overrides(config)

    for d in [data_dir, log_dir]:
        os.makedirs(d, exist_ok=True)

    return config


def _apply_env_overrides(config: AppConfig) -> None:
    port = os.getenv("PORT")
    if port:
        config.server.port = _coerce_int(port, "PORT", 1)

    mode = os.getenv("GEOGEBRA_ENGINE_MODE")
    if mode:
        if mode not in ENGINE_MODES:
            raise ConfigError("GEOGEBRA_ENGINE_MODE must be 'local' or 'managed'")
        config.engine.mode = mode


def _load_server_settings(raw: dict) -> ServerConfig:
    """Parse and validate server settings."""
    _require_object(raw, "server")

    host = _require_str(raw.get("host", "0.0.0.0"), "server.host")
    port = _coerce_int(raw.get("port", 5000), "server.port", 1)

    debug = raw.get("debug", False)
    if not isinstance(debug, bool):
        raise ConfigError("server.debug must be a boolean")

    cors = raw.get("cors", True)
    if not isinstance(cors, bool):
        raise ConfigError("server.cors must be a boolean")

    return ServerConfig(host=host, port=port, debug=debug, cors=cors)


def _load_provider_settings(raw: dict) -> ProviderSettings:
    """Parse and validate provider connectivity settings."""
    _require_object(raw, "providers")
    defaults = ProviderSettings()

    connect_timeout = _coerce_float(raw.get("connect_timeout", 5.0), "providers.connect_timeout", 0.1)
    read_timeout = _coerce_float(raw.get("read_timeout", 120.0), "providers.read_timeout", 0.1)
    max_retries = _coerce_int(raw.get("max_retries", 3), "providers.max_retries", 1)
    temperature = _coerce_float(raw.get("temperature", 0.7), "providers.temperature", 0.0)
    max_tokens = _coerce_int(raw.get("max_tokens", 2048), "providers.max_tokens", 1)
    anthropic_version = _require_str(
        raw.get("anthropic_version", defaults.anthropic_version),
        "providers.anthropic_version",
    )

    default_models = dict(defaults.default_models)
    default_models.update(_load_provider_map(raw.get("default_models"), "providers.default_models"))

    default_base_urls = dict(defaults.default_base_urls)
    default_base_urls.update(_load_provider_map(raw.get("default_base_urls"), "providers.default_base_urls"))

    return ProviderSettings(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_retries=max_retries,
        temperature=temperature,
        max_tokens=max_tokens,
        anthropic_version=anthropic_version,
        default_models=default_models,
        default_base_urls=default_base_urls,
    )


def _load_provider_map(raw: object, name: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{name} must be an object")
    cleaned: dict[str, str] = {}
    for key, value in raw.items():
        if key not in PROVIDERS:
            raise ConfigError(f"{name} keys must be one of {', '.join(PROVIDERS)}")
        cleaned[key] = _require_str(value, f"{name}.{key}")
    return cleaned


def _load_loop_settings(raw: dict) -> LoopConfig:
    """Parse and validate tool-call loop settings."""
    _require_object(raw, "loop")
    defaults = LoopConfig()
    return LoopConfig(
        max_iterations=_coerce_int(raw.get("max_iterations", 5), "loop.max_iterations", 1),
        completion_message=_require_str(
            raw.get("completion_message", defaults.completion_message),
            "loop.completion_message",
        ),
        exhausted_message=_require_str(
            raw.get("exhausted_message", defaults.exhausted_message),
            "loop.exhausted_message",
        ),
    )


def _load_engine_settings(raw: dict) -> EngineConfig:
    """Parse and validate GeoGebra engine settings."""
    _require_object(raw, "engine")
    defaults = EngineConfig()

    mode = raw.get("mode", "local")
    if mode not in ENGINE_MODES:
        raise ConfigError("engine.mode must be 'local' or 'managed'")

    headless = raw.get("headless", True)
    if not isinstance(headless, bool):
        raise ConfigError("engine.headless must be a boolean")

    return EngineConfig(
        mode=mode,
        pool_size=_coerce_int(raw.get("pool_size", 1), "engine.pool_size", 1),
        headless=headless,
        app_name=_require_str(raw.get("app_name", defaults.app_name), "engine.app_name"),
        width=_coerce_int(raw.get("width", 800), "engine.width", 100),
        height=_coerce_int(raw.get("height", 600), "engine.height", 100),
        language=_require_str(raw.get("language", defaults.language), "engine.language"),
        command_timeout=_coerce_float(raw.get("command_timeout", 10.0), "engine.command_timeout", 0.1),
        startup_timeout=_coerce_float(raw.get("startup_timeout", 30.0), "engine.startup_timeout", 1.0),
        deploy_script_url=_require_str(
            raw.get("deploy_script_url", defaults.deploy_script_url),
            "engine.deploy_script_url",
        ),
    )


def _load_session_settings(raw: dict) -> SessionSettings:
    """Parse and validate session store settings."""
    _require_object(raw, "session")
    max_sessions = _coerce_int(raw.get("max_sessions", 0), "session.max_sessions", 0)
    return SessionSettings(max_sessions=max_sessions)


def _load_telemetry_settings(raw: dict, data_dir: str) -> TelemetryConfig:
    """Parse and validate telemetry settings."""
    _require_object(raw, "telemetry")

    enabled = raw.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError("telemetry.enabled must be a boolean")

    log_dir = raw.get("log_dir", os.path.join(data_dir, "metrics"))
    if not isinstance(log_dir, str) or not log_dir.strip():
        raise ConfigError("telemetry.log_dir must be a non-empty string")

    otel_enabled = raw.get("otel_enabled", False)
    if not isinstance(otel_enabled, bool):
        raise ConfigError("telemetry.otel_enabled must be a boolean")

    otel_endpoint = raw.get("otel_endpoint")
    if otel_endpoint is not None and (not isinstance(otel_endpoint, str) or not otel_endpoint.strip()):
        raise ConfigError("telemetry.otel_endpoint must be a non-empty string if provided")

    otel_service_name = raw.get("otel_service_name", "geogebra-tutor")
    if not isinstance(otel_service_name, str) or not otel_service_name.strip():
        raise ConfigError("telemetry.otel_service_name must be a non-empty string")

    return TelemetryConfig(
        enabled=enabled,
        log_dir=log_dir,
        otel_enabled=otel_enabled,
        otel_endpoint=otel_endpoint.strip() if isinstance(otel_endpoint, str) else None,
        otel_service_name=otel_service_name.strip(),
    )


def _require_object(raw: object, name: str) -> None:
    if not isinstance(raw, dict):
        raise ConfigError(f"{name} must be an object")


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return value.strip()


def _coerce_float(value: object, name: str, min_value: float) -> float:
    """Coerce config value to float with basic validation."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value


def _coerce_int(value: object, name: str, min_value: int) -> int:
    """Coerce config value to int with basic validation."""
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value
