#!/usr/bin/env python3
"""
Tests for config_manager.py
"""

import unittest
import os
import sys
import tempfile
import shutil
import json

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config_manager import ConfigManager


class TestConfigManager(unittest.TestCase):
    """Test configuration management"""

    def setUp(self):
        """Set up test environment"""
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.temp_dir, "server_config.json")

    def tearDown(self):
        """Clean up"""
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def write_config(self, data):
        with open(self.config_file, 'w') as f:
            json.dump(data, f)

    def test_default_values(self):
        """Missing file gives the defaults"""
        config = ConfigManager(self.config_file)

        self.assertEqual(config.get('port'), 6680)
        self.assertEqual(config.get('ws_port'), 6681)
        self.assertTrue(config.get('enable_websocket'))
        self.assertEqual(config.get('rate_limits', 'messages', 'max_requests'), 30)

    def test_defaults_not_shared(self):
        """Changing one instance must not leak into the class defaults"""
        config = ConfigManager(self.config_file)
        config.override('rate_limits', 'messages', 'max_requests', value=1)

        self.assertEqual(ConfigManager.DEFAULT_CONFIG['rate_limits']['messages']['max_requests'], 30)

    def test_nested_merge(self):
        """A partial file only replaces the keys it names"""
        self.write_config({
            "port": 7000,
            "rate_limits": {"messages": {"max_requests": 5}}
        })
        config = ConfigManager(self.config_file)

        self.assertEqual(config.get('port'), 7000)
        self.assertEqual(config.get('host'), '0.0.0.0')
        self.assertEqual(config.get('rate_limits', 'messages', 'max_requests'), 5)
        self.assertEqual(config.get('rate_limits', 'messages', 'time_window'), 10.0)
        self.assertEqual(config.get('rate_limits', 'signaling', 'max_requests'), 200)

    def test_invalid_file_falls_back_to_defaults(self):
        with open(self.config_file, 'w') as f:
            f.write("{not json")
        config = ConfigManager(self.config_file)
        self.assertEqual(config.get('port'), 6680)

    def test_non_object_file_ignored(self):
        self.write_config([1, 2, 3])
        config = ConfigManager(self.config_file)
        self.assertEqual(config.get('max_connections'), 1000)

    def test_get_with_default(self):
        config = ConfigManager(self.config_file)
        self.assertIsNone(config.get('nonexistent'))
        self.assertEqual(config.get('port', 'nested', default=42), 42)

    def test_override_ignores_none(self):
        """Command line flags that were not given leave the value alone"""
        config = ConfigManager(self.config_file)
        config.override('port', value=None)
        config.override('host', value='127.0.0.1')

        self.assertEqual(config.get('port'), 6680)
        self.assertEqual(config.get('host'), '127.0.0.1')

    def test_save_and_load(self):
        config = ConfigManager(self.config_file)
        config.override('history_limit', value=50)
        config.save_config()

        config2 = ConfigManager(self.config_file)
        self.assertEqual(config2.get('history_limit'), 50)


if __name__ == '__main__':
    unittest.main()
