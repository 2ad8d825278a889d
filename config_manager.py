"""
Configuration Manager for Parley Server
Loads server settings from a JSON file merged over defaults
"""

import copy
import json
import logging
import os
from typing import Dict, Any


logger = logging.getLogger('Parley-Config')


class ConfigManager:
    """Manages server configuration"""

    DEFAULT_CONFIG = {
        "host": "0.0.0.0",
        "port": 6680,
        "ws_port": 6681,
        "enable_websocket": True,
        "data_dir": "./server_data",
        "max_connections": 1000,
        "max_message_size": 65536,
        "read_timeout": 0,  # seconds, 0 disables
        "history_limit": 500,
        "rate_limits": {
            "messages": {"max_requests": 30, "time_window": 10.0},
            "signaling": {"max_requests": 200, "time_window": 10.0}
        }
    }

    def __init__(self, config_path: str = "server_config.json"):
        self.config_path = config_path
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file"""
        defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        if not self.config_path or not os.path.exists(self.config_path):
            logger.info("No server config found, using defaults")
            return defaults
        try:
            with open(self.config_path, 'r') as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config: {e}")
            return defaults
        if not isinstance(loaded, dict):
            logger.error(f"Ignoring {self.config_path}: top level must be an object")
            return defaults
        logger.info(f"Loaded server config from {self.config_path}")
        # Merge with defaults to ensure all keys exist
        return self._merge_configs(defaults, loaded)

    def save_config(self):
        """Save configuration to file"""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.config, f, indent=2)
        except OSError as e:
            logger.error(f"Error saving config: {e}")

    def _merge_configs(self, default: dict, loaded: dict) -> dict:
        """Recursively merge loaded config with defaults"""
        for key, value in loaded.items():
            if key in default and isinstance(default[key], dict) and isinstance(value, dict):
                default[key] = self._merge_configs(default[key], value)
            else:
                default[key] = value
        return default

    def get(self, *keys, default=None):
        """Get a config value by path"""
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def override(self, *keys, value):
        """Set a value in memory only (command line overrides)"""
        if value is None:
            return
        config = self.config
        for key in keys[:-1]:
            config = config.setdefault(key, {})
        config[keys[-1]] = value
