#!/usr/bin/env python3
"""
CCTV Event Monitor - Bootstrap and entry point.

Provides bootstrap() for the WSGI worker (cctv_monitor.wsgi). The server is
started via run_server.py (Gunicorn); do not run Flask's built-in server.

Run the app with: python run_server.py
"""

import logging
import sys

from cctv_monitor.config import load_config
from cctv_monitor.logging_utils import setup_logging
from cctv_monitor.orchestrator import MonitorOrchestrator

# Early logging for config loading (reconfigured after config is loaded)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("cctv-monitor")


def bootstrap() -> tuple[dict, MonitorOrchestrator]:
    """Load config, set up logging, create and return (config, orchestrator).

    Used by the WSGI entry point (wsgi.py). Does not start the web server.
    """
    config = load_config()
    setup_logging(config.get("LOG_LEVEL", "INFO"))
    orchestrator = MonitorOrchestrator(config)
    return config, orchestrator


def main():
    """Entry point: direct user to run_server.py (Gunicorn is the only server)."""
    logger.error(
        "CCTV Event Monitor must be started with run_server.py (Gunicorn). "
        "Do not use python -m cctv_monitor.main to run the server."
    )
    sys.exit(1)


if __name__ == "__main__":
    main()
