"""Configuration loading and validation."""

import os
import logging
import sys

import yaml
from voluptuous import Schema, Optional, Any, All, Range, Match, ALLOW_EXTRA, Invalid

from cctv_monitor.constants import (
    DEFAULT_FALLBACK_TOLERANCE_MS,
    DEFAULT_LATE_RESPONSE_THRESHOLD_MINUTES,
    DEFAULT_MATCH_TOLERANCE_MS,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_RETENTION_SCHEDULE_TIME,
    DEFAULT_VIDEO_EXTENSION,
    DEFAULT_VIDEO_LOOKBACK_DAYS,
    EVENTS_FILENAME,
    SETTINGS_FILENAME,
)

logger = logging.getLogger('cctv-monitor')

_HH_MM = r'^([01]\d|2[0-3]):[0-5]\d$'

# Configuration Schema
CONFIG_SCHEMA = Schema({
    # Where events-data.json lives and where alarm media is stored.
    Optional('storage'): {
        Optional('storage_path'): str,     # Directory holding the events file.
        Optional('events_file'): str,      # Events file path; default {storage_path}/events-data.json.
        Optional('settings_file'): str,    # Tag vocabulary file; default {storage_path}/settings-data.json.
        Optional('media_root'): str,       # Root for /images/... and /videos/YYYY/MM/DD/... paths.
        Optional('video_extension'): str,  # Extension of uploaded clips (default .mp4).
    },
    # Retention sweep.
    Optional('retention'): {
        Optional('retention_days'): All(int, Range(min=1)),        # Delete unlocked events older than this.
        Optional('schedule_time'): Match(_HH_MM),                   # Daily sweep time, HH:MM local.
        Optional('sweep_timeout_seconds'): All(Any(int, float), Range(min=0)),  # 0 = no limit.
        Optional('run_on_start'): bool,                             # Sweep once when services start.
    },
    # Snapshot-to-video correlation.
    Optional('matching'): {
        Optional('tolerance_ms'): All(int, Range(min=0)),           # Day-scoped search window.
        Optional('fallback_tolerance_ms'): All(int, Range(min=0)),  # All-dates search window (empty day only).
        Optional('lookback_days'): All(int, Range(min=0)),          # All-dates search walks this many days back.
    },
    # Operator response and web server.
    Optional('settings'): {
        Optional('late_response_threshold_minutes'): All(int, Range(min=0)),
        Optional('log_level'): str,
    },
    Optional('network'): {
        Optional('flask_host'): str,
        Optional('flask_port'): int,
    },
}, extra=ALLOW_EXTRA)


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return str(raw).lower() in ('true', '1', 'yes')


def load_config() -> dict:
    """Load configuration from config.yaml merged with environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. config.yaml
    3. Default values
    """
    config = {
        'STORAGE_PATH': '/app/storage',
        'EVENTS_FILE': '',
        'SETTINGS_FILE': '',
        'MEDIA_ROOT': '/app/public',
        'VIDEO_EXTENSION': DEFAULT_VIDEO_EXTENSION,

        'RETENTION_DAYS': DEFAULT_RETENTION_DAYS,
        'RETENTION_SCHEDULE_TIME': DEFAULT_RETENTION_SCHEDULE_TIME,
        'SWEEP_TIMEOUT_SECONDS': 0,
        'RETENTION_RUN_ON_START': False,

        'MATCH_TOLERANCE_MS': DEFAULT_MATCH_TOLERANCE_MS,
        'FALLBACK_TOLERANCE_MS': DEFAULT_FALLBACK_TOLERANCE_MS,
        'VIDEO_LOOKBACK_DAYS': DEFAULT_VIDEO_LOOKBACK_DAYS,

        'LATE_RESPONSE_THRESHOLD_MINUTES': DEFAULT_LATE_RESPONSE_THRESHOLD_MINUTES,
        'LOG_LEVEL': 'INFO',
        'FLASK_HOST': '0.0.0.0',
        'FLASK_PORT': 3020,
    }

    # Load from config.yaml if exists
    config_paths = ['/app/config.yaml', '/app/storage/config.yaml', './config.yaml']
    config_loaded = False

    for path in config_paths:
        if os.path.exists(path):
            try:
                logger.info(f"Loading config from {path}")
                with open(path, 'r') as f:
                    yaml_config = yaml.safe_load(f) or {}

                # Validate schema
                try:
                    yaml_config = CONFIG_SCHEMA(yaml_config)
                except Invalid as e:
                    logger.error(f"Invalid configuration in {path}: {e}")
                    sys.exit(1)

                if 'storage' in yaml_config:
                    storage = yaml_config['storage']
                    config['STORAGE_PATH'] = storage.get('storage_path', config['STORAGE_PATH'])
                    config['EVENTS_FILE'] = storage.get('events_file', config['EVENTS_FILE']) or ''
                    config['SETTINGS_FILE'] = storage.get('settings_file', config['SETTINGS_FILE']) or ''
                    config['MEDIA_ROOT'] = storage.get('media_root', config['MEDIA_ROOT'])
                    config['VIDEO_EXTENSION'] = storage.get('video_extension', config['VIDEO_EXTENSION'])

                if 'retention' in yaml_config:
                    retention = yaml_config['retention']
                    config['RETENTION_DAYS'] = retention.get('retention_days', config['RETENTION_DAYS'])
                    config['RETENTION_SCHEDULE_TIME'] = retention.get('schedule_time', config['RETENTION_SCHEDULE_TIME'])
                    config['SWEEP_TIMEOUT_SECONDS'] = retention.get('sweep_timeout_seconds', config['SWEEP_TIMEOUT_SECONDS'])
                    config['RETENTION_RUN_ON_START'] = bool(retention.get('run_on_start', config['RETENTION_RUN_ON_START']))

                if 'matching' in yaml_config:
                    matching = yaml_config['matching']
                    config['MATCH_TOLERANCE_MS'] = matching.get('tolerance_ms', config['MATCH_TOLERANCE_MS'])
                    config['FALLBACK_TOLERANCE_MS'] = matching.get('fallback_tolerance_ms', config['FALLBACK_TOLERANCE_MS'])
                    config['VIDEO_LOOKBACK_DAYS'] = matching.get('lookback_days', config['VIDEO_LOOKBACK_DAYS'])

                if 'settings' in yaml_config:
                    settings = yaml_config['settings']
                    config['LATE_RESPONSE_THRESHOLD_MINUTES'] = settings.get(
                        'late_response_threshold_minutes', config['LATE_RESPONSE_THRESHOLD_MINUTES'])
                    config['LOG_LEVEL'] = settings.get('log_level', config['LOG_LEVEL'])

                if 'network' in yaml_config:
                    network = yaml_config['network']
                    config['FLASK_HOST'] = network.get('flask_host', config['FLASK_HOST'])
                    config['FLASK_PORT'] = network.get('flask_port', config['FLASK_PORT'])

                config_loaded = True
                break

            except Exception as e:
                logger.error(f"Error loading config from {path}: {e}")

    if not config_loaded:
        logger.info("No config.yaml found, using defaults")

    # Environment variables override everything (for deployment)
    config['STORAGE_PATH'] = os.getenv('STORAGE_PATH', config['STORAGE_PATH'])
    config['EVENTS_FILE'] = os.getenv('EVENTS_FILE') or config['EVENTS_FILE']
    config['SETTINGS_FILE'] = os.getenv('SETTINGS_FILE') or config['SETTINGS_FILE']
    config['MEDIA_ROOT'] = os.getenv('MEDIA_ROOT', config['MEDIA_ROOT'])
    config['VIDEO_EXTENSION'] = os.getenv('VIDEO_EXTENSION', config['VIDEO_EXTENSION'])
    config['RETENTION_DAYS'] = int(os.getenv('RETENTION_DAYS', str(config['RETENTION_DAYS'])))
    config['RETENTION_SCHEDULE_TIME'] = os.getenv('RETENTION_SCHEDULE_TIME', config['RETENTION_SCHEDULE_TIME'])
    config['SWEEP_TIMEOUT_SECONDS'] = float(os.getenv('SWEEP_TIMEOUT_SECONDS', str(config['SWEEP_TIMEOUT_SECONDS'])))
    config['MATCH_TOLERANCE_MS'] = int(os.getenv('MATCH_TOLERANCE_MS', str(config['MATCH_TOLERANCE_MS'])))
    config['FALLBACK_TOLERANCE_MS'] = int(os.getenv('FALLBACK_TOLERANCE_MS', str(config['FALLBACK_TOLERANCE_MS'])))
    config['VIDEO_LOOKBACK_DAYS'] = int(os.getenv('VIDEO_LOOKBACK_DAYS', str(config['VIDEO_LOOKBACK_DAYS'])))
    config['LATE_RESPONSE_THRESHOLD_MINUTES'] = int(os.getenv(
        'LATE_RESPONSE_THRESHOLD_MINUTES', str(config['LATE_RESPONSE_THRESHOLD_MINUTES'])))
    config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', config['LOG_LEVEL'])
    config['FLASK_HOST'] = os.getenv('FLASK_HOST', config['FLASK_HOST'])
    config['FLASK_PORT'] = int(os.getenv('PORT') or os.getenv('FLASK_PORT') or config['FLASK_PORT'])
    _run_on_start = _env_bool('RETENTION_RUN_ON_START')
    if _run_on_start is not None:
        config['RETENTION_RUN_ON_START'] = _run_on_start

    if not config['EVENTS_FILE']:
        config['EVENTS_FILE'] = os.path.join(config['STORAGE_PATH'], EVENTS_FILENAME)
    if not config['SETTINGS_FILE']:
        config['SETTINGS_FILE'] = os.path.join(config['STORAGE_PATH'], SETTINGS_FILENAME)

    if config['RETENTION_DAYS'] < 1:
        raise ValueError("RETENTION_DAYS must be at least 1")

    return config
