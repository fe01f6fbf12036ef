#!/usr/bin/env python3
"""
Configuration Manager Module for the Plate-Solve Synchronization System

This module provides a centralized configuration management system for
stella-sync. It handles loading, merging, and accessing configuration
settings from YAML files with support for defaults and overrides.

Key Features:
- YAML-based configuration files
- Default configuration with user overrides
- Environment variable overrides (STELLA_SYNC_<SECTION>__<KEY>)
- Command line overrides through apply_overrides()
- Section-based configuration access

Override order (highest wins):
    command line > environment > config file > defaults

Dependencies:
- PyYAML for YAML file parsing and environment value coercion
- Logging for configuration events
"""

import copy
import logging
import os
from typing import Any, Dict, Mapping, Optional

import yaml

from .exceptions import ConfigurationError
from .utils.constants import (
    DEFAULT_API_URL,
    DEFAULT_BASE_FOV,
    DEFAULT_LENS_RATIOS,
    DEFAULT_PATTERN,
    DEFAULT_SEARCH_RADIUS,
    DEFAULT_TMP_DIR,
    LENS_PROPERTY,
    ROTATION_PROPERTY,
)

ENV_PREFIX = "STELLA_SYNC_"


class ConfigManager:
    """
    Manages configuration settings for stella-sync.

    Every component receives a ConfigManager at construction time instead of
    reading module level constants, so tests can pass a dedicated instance
    (or a small fake exposing the same section getters).
    """

    def __init__(self, config_path: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file. If None, uses config.yaml.
            environ: Environment mapping used for overrides. Defaults to os.environ.
        """
        self.config_path = config_path or "config.yaml"
        self.environ = os.environ if environ is None else environ
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file with defaults and environment overrides."""
        default_config = self._get_default_config()

        user_config = {}
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r', encoding='utf-8') as file:
                    user_config = yaml.safe_load(file) or {}
                self.logger.info(f"Configuration loaded from {self.config_path}")
            except (OSError, yaml.YAMLError) as e:
                self.logger.warning(f"Failed to load configuration from {self.config_path}: {e}")
                self.logger.info("Using default configuration")
        else:
            self.logger.debug(f"Configuration file {self.config_path} not found. Using defaults.")

        if not isinstance(user_config, dict):
            raise ConfigurationError(
                f"Configuration file {self.config_path} must contain a mapping",
                details={'type': type(user_config).__name__},
            )

        self.config = self._deep_merge(default_config, user_config)
        self._apply_environment()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get the default configuration.

        Returns:
            Dict[str, Any]: Default configuration dictionary
        """
        return {
            'planetarium': {
                'api_url': DEFAULT_API_URL,
                'timeout': 5.0,
                'lens_property': LENS_PROPERTY,
                'rotation_property': ROTATION_PROPERTY,
                'lens_ratios': list(DEFAULT_LENS_RATIOS),
                'base_fov': DEFAULT_BASE_FOV,  # degrees on the y axis without barlow/reducer
            },
            'plate_solve': {
                'default_solver': 'astap',
                'search_radius': DEFAULT_SEARCH_RADIUS,
                'fov': None,  # None -> estimated from the planetarium optical train
                'validate_declination': True,
                'astap': {
                    'executable_path': '~/bin/astap',
                    'timeout': 120,
                },
                'solve_field': {
                    'executable_path': 'solve-field',
                    'cpulimit': 20,
                    'timeout': 120,
                },
            },
            'paths': {
                'tmp_dir': DEFAULT_TMP_DIR,
                'plate_solve_dir': None,  # defaults to <tmp_dir>/platesolve
                'download_dir': None,     # defaults to <tmp_dir>/download
                'upload_dir': None,       # defaults to <tmp_dir>/upload
                'lock_file': None,        # defaults to <tmp_dir>/stella_sync.lock
            },
            'watch': {
                'pattern': DEFAULT_PATTERN,
                'recursive': True,
                'strategy': 'poll',  # poll | events
                'poll_interval': 0.5,
                'settle_delay': 0.5,  # camera software writes files in stages
            },
            'lock': {
                'mode': 'file',  # file | memory
            },
            'peer': {
                'server_url': None,
                'host': '0.0.0.0',
                'port': 8000,
                'timeout': 180,
            },
            'notifications': {
                'enabled': True,
                'player': '/usr/bin/afplay',
                'success_sound': '/System/Library/Sounds/Purr.aiff',
                'failure_sound': '/System/Library/Sounds/Ping.aiff',
            },
            'cleanup': {
                'delete_previews': True,
                'preview_marker': 'Light_Preview_test_',
            },
            'logging': {
                'level': 'INFO',
                'log_to_file': False,
                'log_file': 'stella_sync.log',
            },
        }

    def _deep_merge(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Deeply merge user configuration with default settings."""
        result = copy.deepcopy(default)

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_environment(self) -> None:
        """Apply STELLA_SYNC_<SECTION>__<KEY> environment overrides.

        Values go through yaml.safe_load so numbers, booleans and lists keep
        their type (STELLA_SYNC_WATCH__RECURSIVE=false -> False).
        """
        for name, raw in self.environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            key_path = name[len(ENV_PREFIX):].lower().replace('__', '.')
            if '.' not in key_path:
                continue
            try:
                value = yaml.safe_load(raw)
            except yaml.YAMLError:
                value = raw
            self.set(key_path, value)
            self.logger.debug(f"Environment override {name} -> {key_path}")

    def apply_overrides(self, overrides: Mapping[str, Any]) -> None:
        """Apply command line overrides given as dot paths. None values are skipped."""
        for key_path, value in overrides.items():
            if value is None:
                continue
            self.set(key_path, value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot notation.

        Args:
            key_path: Path to the value (e.g., 'plate_solve.astap.timeout')
            default: Value to return if the key is not found.
        """
        keys = key_path.split('.')
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any) -> None:
        """Set a configuration value by dot notation, creating sections as needed."""
        keys = key_path.split('.')
        node = self.config
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value

    def get_planetarium_config(self) -> Dict[str, Any]:
        return self.config.get('planetarium', {})

    def get_plate_solve_config(self) -> Dict[str, Any]:
        return self.config.get('plate_solve', {})

    def get_paths_config(self) -> Dict[str, Any]:
        return self.config.get('paths', {})

    def get_watch_config(self) -> Dict[str, Any]:
        return self.config.get('watch', {})

    def get_lock_config(self) -> Dict[str, Any]:
        return self.config.get('lock', {})

    def get_peer_config(self) -> Dict[str, Any]:
        return self.config.get('peer', {})

    def get_notifications_config(self) -> Dict[str, Any]:
        return self.config.get('notifications', {})

    def get_cleanup_config(self) -> Dict[str, Any]:
        return self.config.get('cleanup', {})

    def get_logging_config(self) -> Dict[str, Any]:
        return self.config.get('logging', {})

    def reload(self) -> None:
        """Reload the configuration from the file, re-merging with defaults."""
        self.config = {}
        self._load_config()

    def save_default_config(self, path: Optional[str] = None) -> None:
        """Save the default configuration to a file.

        If no path is provided, it saves next to the config file with a
        .default suffix.
        """
        if path is None:
            path = f"{self.config_path}.default"

        try:
            with open(path, 'w', encoding='utf-8') as file:
                yaml.dump(self._get_default_config(), file, default_flow_style=False, allow_unicode=True)
            self.logger.info(f"Default configuration saved to {path}")
        except OSError as e:
            self.logger.error(f"Error saving default configuration: {e}")
