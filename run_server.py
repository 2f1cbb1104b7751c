#!/usr/bin/env python3
"""
CCTV Event Monitor - Gunicorn launcher.

Reads FLASK_HOST and FLASK_PORT from config (via config.load_config()) and
execs Gunicorn with a single worker and multiple threads. Uses os.execvp so
Gunicorn replaces this process (PID 1 in Docker), ensuring signals pass through.

Usage: python run_server.py
"""

import os
import sys

# Ensure package is importable when run from repo root (e.g. during development).
if __name__ == "__main__":
    _src = os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")
    if os.path.isdir(_src) and _src not in sys.path:
        sys.path.insert(0, _src)

from cctv_monitor.config import load_config


def main() -> None:
    config = load_config()
    host = config.get("FLASK_HOST", "0.0.0.0")
    port = config.get("FLASK_PORT", 3020)

    # Single-worker guardrail: wsgi.py requires this env to be set.
    os.environ["CCTV_MONITOR_SINGLE_WORKER"] = "1"

    # Threads > 1 so SSE streams do not starve API requests.
    argv = [
        sys.executable,
        "-m",
        "gunicorn",
        "--bind",
        f"{host}:{port}",
        "-w",
        "1",
        "--threads",
        "8",
        "--capture-output",
        "--enable-stdio-inheritance",
        "cctv_monitor.wsgi:application",
    ]
    os.execvp(sys.executable, argv)


if __name__ == "__main__":
    main()
