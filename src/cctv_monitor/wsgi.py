"""
WSGI entry point: ``cctv_monitor.wsgi:application``.

The event store serializes writers with an in-process RLock and the retention
job runs on an in-process scheduler, so exactly one Gunicorn worker may load
this module. run_server.py sets CCTV_MONITOR_SINGLE_WORKER=1 after choosing
``-w 1``; anything else is refused at import time.
"""

import logging
import os
import signal

from cctv_monitor.main import bootstrap

logger = logging.getLogger("cctv-monitor")

SINGLE_WORKER_ENV = "CCTV_MONITOR_SINGLE_WORKER"

_orchestrator = None


def _log_last_sweep(orchestrator) -> None:
    retention = orchestrator.retention_service
    if retention.last_sweep_stats is None:
        logger.info("No retention sweep ran in this process")
        return
    stats = retention.last_sweep_stats
    logger.info(
        f"Last retention sweep at {retention.last_sweep_time:%Y-%m-%d %H:%M:%S}: "
        f"{stats.deleted} deleted, {stats.skipped_locked} locked kept, {len(stats.errors)} errors"
    )


def _handle_termination(signum: int, frame) -> None:
    """Stop the scheduler and sweep executor, then exit the worker."""
    logger.info(f"Signal {signal.Signals(signum).name} received, stopping CCTV event monitor")
    if _orchestrator is not None:
        _log_last_sweep(_orchestrator)
        _orchestrator.stop()
    raise SystemExit(0)


def create_application():
    """Bootstrap config and orchestrator, start the retention scheduler, return the Flask app."""
    global _orchestrator

    if os.environ.get(SINGLE_WORKER_ENV) != "1":
        raise RuntimeError(
            f"{SINGLE_WORKER_ENV}=1 is required. Start the monitor with run_server.py, or run "
            "gunicorn with -w 1 and set the variable yourself: a second worker would write "
            "events-data.json outside the store lock and run a second retention schedule."
        )

    _config, orchestrator = bootstrap()
    _orchestrator = orchestrator
    orchestrator.start_services()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle_termination)

    return orchestrator.flask_app


application = create_application()
