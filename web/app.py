"""Flask application factory for the GeoGebra math tutor."""

import atexit
import logging
import time
from datetime import datetime, timezone
from typing import Callable

from flask import Flask, jsonify
from flask_cors import CORS

from agent.config import AppConfig
from agent.logs import build_file_logger
from agent.profiles import AgentRegistry
from agent.providers import ChatProvider, create_provider
from agent.session_store import SessionStore
from agent.tool_loop import ToolCallLoop
from geogebra.engine import GeoGebraEngine
from geogebra.pool import EnginePool
from prompts.template_engine import PromptTemplateEngine
from tools.executor import CommandExecutor
from tools.tool_registry import ToolRegistry
from web.runner import BackgroundLoop

ProviderFactory = Callable[..., ChatProvider]

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    provider_factory: ProviderFactory | None = None,
    engine_factory: Callable[[], GeoGebraEngine] | None = None,
) -> Flask:
    """Create and configure the Flask application.

    ``provider_factory`` defaults to ``create_provider``; ``engine_factory``
    is only used in managed engine mode and defaults to a Playwright-driven
    browser engine.
    """
    app = Flask(__name__)
    if config.server.cors:
        CORS(app)

    # Component file loggers; handlers are shared per path
    build_file_logger("agent.providers", config.log_dir, "providers.log")
    build_file_logger("geogebra", config.log_dir, "geogebra.log")

    registry = ToolRegistry.default()
    executor = CommandExecutor(registry)
    runner = BackgroundLoop()

    # session_id -> Telemetry of its latest request, pruned with the session store
    telemetry: dict = {}

    # Shared state
    app.config["agent_config"] = config
    app.config["session_store"] = SessionStore(
        max_sessions=config.session.max_sessions,
        on_evict=lambda session_id: telemetry.pop(session_id, None),
    )
    app.config["tool_registry"] = registry
    app.config["executor"] = executor
    app.config["tool_loop"] = ToolCallLoop(executor, config.loop, log_dir=config.log_dir)
    app.config["agent_registry"] = AgentRegistry.default()
    app.config["prompt_engine"] = PromptTemplateEngine(profile=config.prompt_profile)
    app.config["provider_factory"] = provider_factory or create_provider
    app.config["runner"] = runner
    app.config["telemetry"] = telemetry
    app.config["engine_pool"] = None

    if config.engine.mode == "managed":
        if engine_factory is None:
            from geogebra.browser import BrowserEngine

            def engine_factory():
                return BrowserEngine(config.engine, log_dir=config.log_dir)

        app.config["engine_pool"] = EnginePool(engine_factory, size=config.engine.pool_size)
        atexit.register(_shutdown, app)

    logger.info(
        "App ready: %d tool(s), engine mode %s, default agent %s",
        len(registry), config.engine.mode, config.default_agent,
    )

    from web.routes.chat import chat_bp
    from web.routes.agent_routes import agents_bp
    from web.routes.geogebra import geogebra_bp
    from web.routes.config_routes import config_bp
    from web.routes.metrics import metrics_bp

    app.register_blueprint(chat_bp, url_prefix="/api")
    app.register_blueprint(agents_bp, url_prefix="/api")
    app.register_blueprint(geogebra_bp, url_prefix="/api")
    app.register_blueprint(config_bp, url_prefix="/api")
    app.register_blueprint(metrics_bp, url_prefix="/api")

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "engineMode": config.engine.mode,
        })

    return app


def run_with_engine(app: Flask, func: Callable, timeout: float | None = None):
    """Run ``await func(engine)`` on the background loop.

    ``engine`` is a pooled managed engine, or None in local mode.
    """
    pool: EnginePool | None = app.config["engine_pool"]

    async def _call():
        if pool is None:
            return await func(None)
        async with pool.acquire() as engine:
            return await func(engine)

    return app.config["runner"].run(_call(), timeout=timeout)


def _shutdown(app: Flask) -> None:
    pool = app.config.get("engine_pool")
    runner = app.config.get("runner")
    if pool is not None and runner is not None and runner.running:
        started = time.monotonic()
        try:
            runner.run(pool.close(), timeout=10)
        except Exception as e:
            logger.warning("Engine pool shutdown failed: %s", e)
        logger.info("Engine pool closed in %.0f ms", (time.monotonic() - started) * 1000)
    if runner is not None:
        runner.stop()
