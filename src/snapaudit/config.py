"""Configuration management for SnapAudit."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional

from .exceptions import ConfigurationError


DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into ``base`` recursively, returning ``base``."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class Config:
    """Configuration manager for SnapAudit."""

    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        """Initialize configuration.

        Args:
            config_path: Path to custom configuration file
            overrides: Nested values applied after the configuration file
        """
        self.config_path = config_path
        self._config = self._load_config(overrides or {})

    def _load_config(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Load configuration from file."""
        with open(DEFAULT_CONFIG_PATH, 'r') as f:
            config = yaml.safe_load(f)

        # Override with custom configuration if provided
        if self.config_path:
            if not os.path.exists(self.config_path):
                raise ConfigurationError(
                    f"Configuration file not found: {self.config_path}",
                    "Create one with: snapaudit init --output snapaudit.yaml",
                )
            with open(self.config_path, 'r') as f:
                try:
                    custom_config = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}")
            if not isinstance(custom_config, dict):
                raise ConfigurationError(f"Configuration file must contain a mapping: {self.config_path}")
            _deep_merge(config, custom_config)

        _deep_merge(config, copy.deepcopy(overrides))

        # Override with environment variables
        config = self._apply_env_overrides(config)

        return config

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        # Example: SNAPAUDIT_RETENTION_DAYS overrides policy.retention_days
        env_mappings = {
            'SNAPAUDIT_RETENTION_DAYS': ['policy', 'retention_days'],
            'SNAPAUDIT_PROTECTED_TAG': ['policy', 'protected_tag'],
            'SNAPAUDIT_REPORT_OUTPUT': ['report', 'output'],
            'SNAPAUDIT_LOG_LEVEL': ['notifications', 'level'],
        }

        for env_var, config_path in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                # Convert to appropriate type
                if config_path[-1] == 'retention_days':
                    try:
                        value = int(value)
                    except ValueError:
                        raise ConfigurationError(f"{env_var} must be an integer, got '{value}'")
                elif config_path[-1] == 'level':
                    value = value.upper()

                # Set nested configuration value
                current = config
                for key in config_path[:-1]:
                    if key not in current or current[key] is None:
                        current[key] = {}
                    current = current[key]
                current[config_path[-1]] = value

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'policy.retention_days')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split('.')
        current = self._config

        for k in keys[:-1]:
            if k not in current or current[k] is None:
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value

    def save(self, path: str) -> None:
        """Save current configuration to file.

        Args:
            path: Path to save configuration file
        """
        with open(path, 'w') as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, indent=2, sort_keys=False)

    @property
    def sources(self) -> List[Dict[str, Any]]:
        """Get configured source definitions."""
        return self.get('sources') or []

    @property
    def template_patterns(self) -> List[str]:
        """Get VM name patterns that mark template VMs."""
        return self.get('policy.template_patterns', ['VMT', 'Template', 'Templ'])

    @property
    def protected_tag(self) -> str:
        """Get the tag name that protects a VM's snapshots."""
        return self.get('policy.protected_tag', 'PersistantSnapshot')

    @property
    def retention_days(self) -> int:
        """Get snapshot retention threshold in days."""
        return self.get('policy.retention_days', 14)

    @property
    def report_output(self) -> str:
        """Get report output path."""
        return self.get('report.output', './snapshot-report.html')

    @property
    def report_title(self) -> str:
        """Get report title."""
        return self.get('report.title', 'Snapshot Audit Report')

    @property
    def dump_on_failure(self) -> bool:
        """Whether the report is dumped as JSON when rendering fails."""
        return bool(self.get('report.dump_on_failure', True))

    @property
    def parallel(self) -> bool:
        """Whether sources are collected concurrently."""
        return bool(self.get('audit.parallel', False))

    @property
    def max_workers(self) -> int:
        """Get the worker count for concurrent source collection."""
        return self.get('audit.max_workers', 4)
