"""Configuration management for the transaction ingest tool."""

import json
import os
import yaml
from typing import Dict, Any, Optional, List
import logging

from ..exceptions import ConfigurationError
from ..models.core import (
    IngestConfig,
    NotificationSettings,
    PlaidSettings,
    SourceConfig,
)


logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages loading and validation of ingest configuration"""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to configuration file. If None, searches for default locations.
        """
        self.config_path = config_path
        self._config_cache: Optional[IngestConfig] = None

    def load_config(self, force_reload: bool = False) -> IngestConfig:
        """Load ingest configuration from file or return default

        Args:
            force_reload: Force reload from file even if cached

        Returns:
            IngestConfig instance with loaded or default configuration

        Raises:
            ConfigurationError: If the configured sources are invalid
        """
        if self._config_cache is not None and not force_reload:
            return self._config_cache

        config_data = self._load_config_file()

        try:
            plaid_data = config_data.get('plaid', {})
            notification_data = config_data.get('notifications', {})

            self._config_cache = IngestConfig(
                sheet_path=config_data.get('sheet_path', 'data/transactions.csv'),
                initial_lookback_days=config_data.get('initial_lookback_days', 800),
                overlap_days=config_data.get('overlap_days', 10),
                rollup_label=config_data.get('rollup_label', 'Rollup'),
                rules_file=config_data.get('rules_file'),
                log_directory=config_data.get('log_directory', 'logs'),
                plaid=PlaidSettings(**plaid_data),
                notifications=NotificationSettings(**notification_data),
                sources=self._load_sources(config_data.get('sources', []))
            )

            logger.info(f"Configuration loaded successfully from {self.config_path or 'defaults'}")
            return self._config_cache

        except Exception as e:
            logger.warning(f"Error loading configuration: {e}. Using defaults.")
            self._config_cache = IngestConfig()
            return self._config_cache

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration from file

        Returns:
            Dictionary with configuration data or empty dict if no file found
        """
        config_file = self._find_config_file()

        if not config_file or not os.path.exists(config_file):
            logger.info("No configuration file found, using defaults")
            return {}

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                if config_file.endswith('.json'):
                    data = json.load(f)
                elif config_file.endswith(('.yml', '.yaml')):
                    data = yaml.safe_load(f)
                else:
                    logger.warning(f"Unsupported config file format: {config_file}")
                    return {}

            if data is None:
                return {}

            self._validate_config_data(data)
            logger.info(f"Configuration loaded from {config_file}")
            return data

        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error reading configuration file {config_file}: {e}")
            return {}

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations

        Returns:
            Path to configuration file or None if not found
        """
        if self.config_path:
            return self.config_path

        search_paths = [
            'plaid_ingest.yml',
            'plaid_ingest.yaml',
            'plaid_ingest.json',
            'config/plaid_ingest.yml',
            'config/plaid_ingest.yaml',
            'config/plaid_ingest.json',
            os.path.expanduser('~/.plaid_ingest/config.yml'),
            os.path.expanduser('~/.plaid_ingest/config.json'),
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        return None

    def _validate_config_data(self, data: Dict[str, Any]) -> None:
        """Validate configuration data structure

        Args:
            data: Configuration data to validate

        Raises:
            ValueError: If configuration data is invalid
            ConfigurationError: If the sources list is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Configuration must be a dictionary")

        for str_key in ['sheet_path', 'rollup_label', 'log_directory']:
            if str_key in data:
                if not isinstance(data[str_key], str):
                    raise ValueError(f"{str_key} must be a string")
                if not data[str_key].strip():
                    raise ValueError(f"{str_key} cannot be empty")

        if data.get('rules_file') is not None and not isinstance(data['rules_file'], str):
            raise ValueError("rules_file must be a string")

        # Window constants
        for int_key in ['initial_lookback_days', 'overlap_days']:
            if int_key in data:
                value = data[int_key]
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"{int_key} must be an integer")
                if value < 0:
                    raise ValueError(f"{int_key} cannot be negative")

        for section, allowed in [('plaid', PlaidSettings), ('notifications', NotificationSettings)]:
            if section in data:
                if not isinstance(data[section], dict):
                    raise ValueError(f"{section} must be a dictionary")
                known = set(allowed.__dataclass_fields__)
                unknown = set(data[section]) - known
                if unknown:
                    raise ValueError(f"Unknown {section} keys: {', '.join(sorted(unknown))}")

        if 'sources' in data:
            if not isinstance(data['sources'], list):
                raise ConfigurationError("sources must be a list")
            self._validate_sources(data['sources'])

    def _validate_sources(self, sources: List[Any]) -> None:
        """Validate owner/account source entries

        Raises:
            ConfigurationError: If a source entry is invalid
        """
        for position, source in enumerate(sources):
            if not isinstance(source, dict):
                raise ConfigurationError(f"Source {position} must be a dictionary")

            for required in ['owner', 'account']:
                if not isinstance(source.get(required), str) or not source[required].strip():
                    raise ConfigurationError(f"Source {position} missing required field: {required}")

            for optional in ['access_token', 'access_token_env']:
                if source.get(optional) is not None and not isinstance(source[optional], str):
                    raise ConfigurationError(f"{optional} for source {position} must be a string")

    def _load_sources(self, sources_data: List[Dict[str, Any]]) -> List[SourceConfig]:
        """Build source configurations

        Args:
            sources_data: List of source dictionaries
        """
        sources = []
        for source in sources_data:
            sources.append(SourceConfig(
                owner=source['owner'],
                account=source['account'],
                access_token=source.get('access_token'),
                access_token_env=source.get('access_token_env')
            ))
            logger.debug(f"Loaded source: {source['owner']}/{source['account']}")
        return sources

    def save_config_template(self, output_path: str) -> None:
        """Generate and save a configuration file template

        Args:
            output_path: Path where to save the template
        """
        template = {
            "sheet_path": "data/transactions.csv",
            "initial_lookback_days": 800,
            "overlap_days": 10,
            "rollup_label": "Rollup",
            "rules_file": "config/rules.yml",
            "log_directory": "logs",
            "plaid": {
                "env": "development",
                "client_id": "",
                "secret": "",
                "page_size": 500
            },
            "notifications": {
                "email": "",
                "smtp_host": "smtp.example.com",
                "smtp_port": 587,
                "username": "",
                "password": "",
                "use_tls": True
            },
            "sources": [
                {
                    "owner": "Alice",
                    "account": "Chase",
                    "access_token_env": "PLAID_TOKEN_ALICE_CHASE"
                },
                {
                    "owner": "Bob",
                    "account": "Amex",
                    "access_token_env": "PLAID_TOKEN_BOB_AMEX"
                }
            ]
        }

        try:
            output_dir = os.path.dirname(output_path)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

            with open(output_path, 'w', encoding='utf-8') as f:
                if output_path.endswith(('.yml', '.yaml')):
                    yaml.dump(template, f, default_flow_style=False, indent=2, sort_keys=False)
                else:
                    json.dump(template, f, indent=2)

            logger.info(f"Configuration template saved to {output_path}")

        except Exception as e:
            logger.error(f"Error saving configuration template: {e}")
            raise

    def reset_config(self) -> None:
        """Reset configuration cache, forcing reload on next access"""
        self._config_cache = None
        logger.debug("Configuration cache reset")


def get_default_config_manager() -> ConfigManager:
    """Get a default configuration manager instance

    Returns:
        ConfigManager instance with default settings
    """
    return ConfigManager()
