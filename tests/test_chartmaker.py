#!/usr/bin/env python3
"""
Tests for chartmaker.py: configuration loading and validation.

Run with:
    python -m pytest tests/test_chartmaker.py
"""
import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import chartmaker
from chartmaker import ChartMakerConfig, ConfigError, load_config


class TmpDirMixin(unittest.TestCase):
    """Creates a fresh temp directory for each test."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _write(self, name: str, content) -> str:
        path = os.path.join(self.tmp, name)
        with open(path, 'w') as f:
            f.write(content if isinstance(content, str) else json.dumps(content))
        return path


class TestLoadConfig(TmpDirMixin):

    @patch.dict(os.environ, {}, clear=True)
    def test_reads_file(self):
        path = self._write('config.json', {
            'twitch_client_id': 'file_id',
            'twitch_client_secret': 'file_secret',
            'api_timeout_seconds': 5,
        })
        cfg = load_config(path)
        self.assertEqual(cfg.twitch_client_id, 'file_id')
        self.assertEqual(cfg.twitch_client_secret, 'file_secret')
        self.assertEqual(cfg.api_timeout_seconds, 5)

    @patch.dict(os.environ, {'TWITCH_CLIENT_ID': 'env_id', 'TWITCH_CLIENT_SECRET': 'env_secret'},
                clear=True)
    def test_environment_overrides_file(self):
        path = self._write('config.json', {'twitch_client_id': 'file_id'})
        cfg = load_config(path)
        self.assertEqual(cfg.twitch_client_id, 'env_id')
        self.assertEqual(cfg.twitch_client_secret, 'env_secret')

    @patch.dict(os.environ, {'TWITCH_CLIENT_ID': 'env_id', 'TWITCH_CLIENT_SECRET': 'env_secret'},
                clear=True)
    def test_missing_file_uses_environment(self):
        cfg = load_config(os.path.join(self.tmp, 'nope.json'))
        self.assertEqual(cfg.twitch_client_id, 'env_id')
        self.assertEqual(cfg.api_timeout_seconds, chartmaker.DEFAULT_API_TIMEOUT)

    @patch.dict(os.environ, {'CHARTMAKER_LOG_LEVEL': 'DEBUG'}, clear=True)
    def test_log_level_from_environment(self):
        cfg = load_config(os.path.join(self.tmp, 'nope.json'))
        self.assertEqual(cfg.log_level, 'DEBUG')

    @patch.dict(os.environ, {}, clear=True)
    def test_invalid_json_raises(self):
        path = self._write('config.json', '{not json')
        with self.assertRaises(ConfigError):
            load_config(path)

    @patch.dict(os.environ, {}, clear=True)
    def test_non_object_raises(self):
        path = self._write('config.json', [1, 2])
        with self.assertRaises(ConfigError):
            load_config(path)

    def test_template_has_placeholders(self):
        path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                            'config_template.json')
        with open(path) as f:
            cfg = json.load(f)
        self.assertIn('twitch_client_id', cfg)
        self.assertIn('twitch_client_secret', cfg)
        self.assertTrue(chartmaker.is_placeholder_value(cfg['twitch_client_id']))


class TestValidate(unittest.TestCase):

    def test_valid_config_returns_self(self):
        cfg = ChartMakerConfig('id', 'secret')
        self.assertIs(cfg.validate(), cfg)

    def test_missing_both_named(self):
        with self.assertRaises(ConfigError) as ctx:
            ChartMakerConfig().validate()
        self.assertIn('TWITCH_CLIENT_ID', str(ctx.exception))
        self.assertIn('TWITCH_CLIENT_SECRET', str(ctx.exception))

    def test_missing_secret_only(self):
        self.assertEqual(ChartMakerConfig('id', '').missing_fields(), ['TWITCH_CLIENT_SECRET'])

    def test_placeholder_counts_as_missing(self):
        with self.assertRaises(ConfigError):
            ChartMakerConfig('YOUR_TWITCH_CLIENT_ID_HERE', 'secret').validate()

    def test_timeout_coerced(self):
        cfg = ChartMakerConfig('id', 'secret', api_timeout_seconds='7').validate()
        self.assertEqual(cfg.api_timeout_seconds, 7)

    def test_bad_timeout(self):
        with self.assertRaises(ConfigError):
            ChartMakerConfig('id', 'secret', api_timeout_seconds='soon').validate()
        with self.assertRaises(ConfigError):
            ChartMakerConfig('id', 'secret', api_timeout_seconds=0).validate()

    def test_to_dict_masks_secret(self):
        self.assertEqual(ChartMakerConfig('id', 'secret').to_dict()['twitch_client_secret'], '***')


class TestSetupLogging(unittest.TestCase):

    def test_sets_level(self):
        logger = chartmaker.setup_logging('DEBUG')
        self.assertEqual(logger.name, 'chartmaker')
        self.assertEqual(logger.level, 10)
        chartmaker.setup_logging('WARNING')

    def test_single_handler(self):
        chartmaker.setup_logging('INFO')
        logger = chartmaker.setup_logging('INFO')
        self.assertEqual(len(logger.handlers), 1)


if __name__ == '__main__':
    unittest.main()
