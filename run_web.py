#!/usr/bin/env python3
"""Web server entry point for the GeoGebra math tutor."""

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from agent.config import load_config
from agent.logs import configure_console
from web.app import create_app


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.json"
    config = load_config(config_path)
    configure_console(os.getenv("TUTOR_LOG_LEVEL", "INFO"))

    print("\n  GeoGebra Math Tutor")
    print(f"  Engine mode: {config.engine.mode}")
    print(f"  Default agent: {config.default_agent}")
    print(f"  Logs: {config.log_dir}")
    print(f"  Listening on http://{config.server.host}:{config.server.port}\n")

    app = create_app(config)
    app.run(
        host=config.server.host,
        port=config.server.port,
        debug=config.server.debug,
        threaded=True,
        use_reloader=False,
    )


if __name__ == "__main__":
    main()
