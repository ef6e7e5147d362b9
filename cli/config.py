#!/usr/bin/env python3
"""
Configuration Management Module for the nftmeta CLI

Handles hierarchical configuration loading (defaults, profiles, config files,
environment variables), validation and persistence of registry settings.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from nftmeta.schema import MAX_ROYALTY_BPS, RegistryConfig

# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.nftmeta.yml',
    Path.cwd() / '.nftmeta.json',
    Path.cwd() / 'nftmeta.config.yml',
    Path.cwd() / 'nftmeta.config.json',
    Path.home() / '.nftmeta' / 'config.yml',
    Path.home() / '.nftmeta' / 'config.json',
    Path('/etc/nftmeta/config.yml'),
    Path('/etc/nftmeta/config.json'),
]

# Environment variable prefix; '__' separates nesting levels,
# e.g. NFTMETA_REGISTRY__MAX_COMPOSE_KEYS=16
ENV_PREFIX = 'NFTMETA_'
ENV_NESTING = '__'

DEFAULT_CONFIG = {
    'registry': {
        'state_dir': '~/.nftmeta/state',
        'compressed': False,
        'backup_count': 5,
        'royalty_ceiling_bps': MAX_ROYALTY_BPS,
        'max_compose_keys': 32,
        'derived_collection': 'nftmeta-derived',
        'enforce_write_once': False,
    },
    'cli': {
        'output_format': 'table',  # table, json, yaml, csv
        'verbose': 0,
    },
}

PROFILES = {
    'strict': {
        'registry': {'enforce_write_once': True, 'backup_count': 10},
    },
    'development': {
        'registry': {'state_dir': './.nftmeta-state', 'backup_count': 1},
        'cli': {'verbose': 2},
    },
}

OUTPUT_FORMATS = ['table', 'json', 'yaml', 'csv']


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to apply (strict, development)
        """
        self.logger = logging.getLogger('nftmeta-cli.config')
        self.config_file = config_file
        self.profile = profile
        self._config_cache: Optional[Dict[str, Any]] = None
        self._config_sources: List[str] = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        self._config_sources = ["defaults"]
        configs = [copy.deepcopy(DEFAULT_CONFIG)]

        if self.profile:
            if self.profile not in PROFILES:
                raise ValueError(f"Unknown configuration profile: {self.profile}")
            configs.append(copy.deepcopy(PROFILES[self.profile]))
            self._config_sources.append(f"profile:{self.profile}")
            self.logger.debug(f"Applied profile: {self.profile}")

        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {path}")
            configs.append(self._load_config_file(path))
            self._config_sources.append(f"file:{path}")
        else:
            for path in CONFIG_SEARCH_PATHS:
                if path.exists():
                    configs.append(self._load_config_file(path))
                    self._config_sources.append(f"file:{path}")
                    self.logger.debug(f"Loaded config from {path}")
                    break

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        self._expand_paths(self._config_cache)
        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load a YAML or JSON configuration file."""
        with open(path, 'r') as f:
            if path.suffix in ('.yml', '.yaml'):
                data = yaml.safe_load(f)
            elif path.suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unknown config file format: {path}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        env_config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = self._parse_env_value(value)

        return env_config

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool, None]:
        """Parse environment variable value to appropriate type."""
        lowered = value.lower()
        if lowered in ('true', 'yes', 'on'):
            return True
        if lowered in ('false', 'no', 'off'):
            return False

        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value

        return result

    def _expand_paths(self, config: Dict[str, Any]) -> None:
        for key, value in config.items():
            if isinstance(value, dict):
                self._expand_paths(value)
            elif isinstance(value, str) and ('~' in value or '$' in value):
                config[key] = os.path.expanduser(os.path.expandvars(value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'registry.max_compose_keys')
            default: Default value if key not found
        """
        current: Any = self.load()
        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value by dot-notation path."""
        config = self.load()
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def save(self, path: Optional[str] = None, format: str = 'yaml') -> Path:
        """Save current configuration to file."""
        config = self.load()
        if not path:
            path = Path.cwd() / ('.nftmeta.yml' if format == 'yaml' else '.nftmeta.json')

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            if format == 'yaml':
                yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(config, f, indent=2)

        self.logger.info(f"Configuration saved to {path}")
        return path

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        config = self.load()
        errors = []

        registry = config.get('registry', {})
        try:
            RegistryConfig.from_dict(registry)
        except ValueError as e:
            errors.append(f"Invalid registry settings: {e}")

        if not registry.get('state_dir'):
            errors.append("registry.state_dir is required")

        backup_count = registry.get('backup_count')
        if not isinstance(backup_count, int) or backup_count < 0:
            errors.append("registry.backup_count must be a non-negative integer")

        output_format = config.get('cli', {}).get('output_format')
        if output_format not in OUTPUT_FORMATS:
            errors.append(f"Invalid output format: {output_format}")

        return errors

    def registry_config(self) -> RegistryConfig:
        """Build the registry limits from the loaded configuration."""
        return RegistryConfig.from_dict(self.get('registry', {}))

    def get_sources(self) -> List[str]:
        self.load()
        return self._config_sources

    def reset(self) -> None:
        self._config_cache = None
        self._config_sources = []
