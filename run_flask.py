"""Direct Flask server runner using environment variables.

Services still need an asyncio loop, so one runs in a background thread
and Flask views reach it through ``run_coroutine_sync``.
"""

from __future__ import annotations

import os

from config import load_config
from core import ApplicationInitializer, setup_logger
from services.async_runner import run_coroutine_sync, start_background_loop
from web import create_app

if __name__ == "__main__":
    # Load configuration
    config = load_config()
    setup_logger(name="", level=config.log_level)

    # Start the service loop and initialize database and services on it
    start_background_loop()
    initializer = ApplicationInitializer(config)
    run_coroutine_sync(initializer.prepare())

    # Create Flask application
    app = create_app(config, services=initializer.web_services())

    # Get host and port from environment variables with defaults
    host = os.getenv("WEB_HOST", "0.0.0.0")
    port = int(os.getenv("WEB_PORT", "5000"))

    # Run Flask server; the scheduler is left to main.py
    app.run(host=host, port=port, debug=config.debug, use_reloader=False)
