import os
import unittest
from unittest.mock import patch, mock_open

from cctv_monitor.config import load_config

# Environment variables load_config reads; cleared so the host environment cannot leak in.
_ENV_KEYS = [
    'STORAGE_PATH', 'EVENTS_FILE', 'SETTINGS_FILE', 'MEDIA_ROOT', 'VIDEO_EXTENSION', 'RETENTION_DAYS',
    'RETENTION_SCHEDULE_TIME', 'SWEEP_TIMEOUT_SECONDS', 'RETENTION_RUN_ON_START',
    'MATCH_TOLERANCE_MS', 'FALLBACK_TOLERANCE_MS', 'VIDEO_LOOKBACK_DAYS',
    'LATE_RESPONSE_THRESHOLD_MINUTES', 'LOG_LEVEL', 'FLASK_HOST', 'FLASK_PORT', 'PORT',
]


class TestConfigSchema(unittest.TestCase):

    def setUp(self):
        saved = {k: os.environ.pop(k) for k in _ENV_KEYS if k in os.environ}
        self.addCleanup(os.environ.update, saved)

    @patch('builtins.open', new_callable=mock_open)
    @patch('os.path.exists')
    @patch('cctv_monitor.config.yaml.safe_load')
    def test_valid_config(self, mock_yaml_load, mock_exists, mock_file):
        valid_yaml = {
            'storage': {
                'storage_path': '/data',
                'media_root': '/srv/public',
            },
            'retention': {
                'retention_days': 14,
                'schedule_time': '04:30',
            },
            'matching': {
                'tolerance_ms': 60000,
            },
        }
        mock_exists.return_value = True
        mock_yaml_load.return_value = valid_yaml

        config = load_config()
        self.assertEqual(config['STORAGE_PATH'], '/data')
        self.assertEqual(config['EVENTS_FILE'], os.path.join('/data', 'events-data.json'))
        self.assertEqual(config['SETTINGS_FILE'], os.path.join('/data', 'settings-data.json'))
        self.assertEqual(config['MEDIA_ROOT'], '/srv/public')
        self.assertEqual(config['RETENTION_DAYS'], 14)
        self.assertEqual(config['RETENTION_SCHEDULE_TIME'], '04:30')
        self.assertEqual(config['MATCH_TOLERANCE_MS'], 60000)
        self.assertEqual(config['FALLBACK_TOLERANCE_MS'], 120000)

    @patch('os.path.exists')
    def test_defaults_without_config_file(self, mock_exists):
        mock_exists.return_value = False

        config = load_config()
        self.assertEqual(config['RETENTION_DAYS'], 7)
        self.assertEqual(config['RETENTION_SCHEDULE_TIME'], '03:00')
        self.assertEqual(config['MATCH_TOLERANCE_MS'], 120000)
        self.assertEqual(config['VIDEO_LOOKBACK_DAYS'], 7)
        self.assertEqual(config['LATE_RESPONSE_THRESHOLD_MINUTES'], 2)
        self.assertEqual(config['EVENTS_FILE'], os.path.join('/app/storage', 'events-data.json'))
        self.assertEqual(config['SETTINGS_FILE'], os.path.join('/app/storage', 'settings-data.json'))
        self.assertEqual(config['FLASK_PORT'], 3020)
        self.assertFalse(config['RETENTION_RUN_ON_START'])

    @patch('builtins.open', new_callable=mock_open)
    @patch('os.path.exists')
    @patch('cctv_monitor.config.yaml.safe_load')
    def test_env_overrides_yaml(self, mock_yaml_load, mock_exists, mock_file):
        mock_exists.return_value = True
        mock_yaml_load.return_value = {'retention': {'retention_days': 14}}

        with patch.dict(os.environ, {'RETENTION_DAYS': '30', 'EVENTS_FILE': '/tmp/ev.json',
                                     'SETTINGS_FILE': '/tmp/tags.json', 'RETENTION_RUN_ON_START': 'true', 'PORT': '8080'}):
            config = load_config()
        self.assertEqual(config['RETENTION_DAYS'], 30)
        self.assertEqual(config['EVENTS_FILE'], '/tmp/ev.json')
        self.assertEqual(config['SETTINGS_FILE'], '/tmp/tags.json')
        self.assertTrue(config['RETENTION_RUN_ON_START'])
        self.assertEqual(config['FLASK_PORT'], 8080)

    @patch('builtins.open', new_callable=mock_open)
    @patch('os.path.exists')
    @patch('cctv_monitor.config.yaml.safe_load')
    def test_zero_retention_days_rejected(self, mock_yaml_load, mock_exists, mock_file):
        mock_exists.return_value = True
        mock_yaml_load.return_value = {'retention': {'retention_days': 0}}

        with self.assertRaises(SystemExit) as cm:
            load_config()
        self.assertEqual(cm.exception.code, 1)

    @patch('os.path.exists')
    def test_zero_retention_days_from_env_rejected(self, mock_exists):
        mock_exists.return_value = False
        with patch.dict(os.environ, {'RETENTION_DAYS': '0'}):
            with self.assertRaises(ValueError):
                load_config()

    @patch('builtins.open', new_callable=mock_open)
    @patch('os.path.exists')
    @patch('cctv_monitor.config.yaml.safe_load')
    def test_invalid_schedule_time(self, mock_yaml_load, mock_exists, mock_file):
        mock_exists.return_value = True
        mock_yaml_load.return_value = {'retention': {'schedule_time': '25:00'}}

        with self.assertRaises(SystemExit) as cm:
            load_config()
        self.assertEqual(cm.exception.code, 1)

    @patch('builtins.open', new_callable=mock_open)
    @patch('os.path.exists')
    @patch('cctv_monitor.config.yaml.safe_load')
    def test_invalid_network_field_type(self, mock_yaml_load, mock_exists, mock_file):
        # flask_port as string
        mock_exists.return_value = True
        mock_yaml_load.return_value = {'network': {'flask_port': "invalid_port"}}

        with self.assertRaises(SystemExit) as cm:
            load_config()
        self.assertEqual(cm.exception.code, 1)

    @patch('builtins.open', new_callable=mock_open)
    @patch('os.path.exists')
    @patch('cctv_monitor.config.yaml.safe_load')
    def test_extra_field_allowed(self, mock_yaml_load, mock_exists, mock_file):
        valid_yaml = {
            'extra_field': 'something',
            'storage': {'storage_path': '/tmp'},
        }
        mock_exists.return_value = True
        mock_yaml_load.return_value = valid_yaml

        try:
            config = load_config()
        except SystemExit:
            self.fail("load_config raised SystemExit unexpectedly with extra fields")

        self.assertEqual(config['STORAGE_PATH'], '/tmp')


if __name__ == '__main__':
    unittest.main()
