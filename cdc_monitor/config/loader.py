"""
Configuration loader utilities.

Provides functions to load configuration from various sources:
- Environment variables (primary)
- Configuration files (YAML/JSON)
- Default values (fallback)
"""

import os
import copy
import json
import logging
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

from .settings import AppConfig

logger = logging.getLogger(__name__)

# Environment variable -> dotted config path
ENV_MAPPINGS = {
    'ENVIRONMENT': 'environment',
    'APP_NAME': 'app_name',
    'APP_VERSION': 'version',
    # Kafka settings
    'KAFKA_BOOTSTRAP_SERVERS': 'kafka.bootstrap_servers',
    'KAFKA_BROKERS': 'kafka.bootstrap_servers',
    'KAFKA_CLIENT_ID': 'kafka.client_id',
    'KAFKA_GROUP_ID': 'kafka.group_id',
    'KAFKA_TOPIC': 'kafka.topic',
    'KAFKA_FROM_BEGINNING': 'kafka.from_beginning',
    'KAFKA_SESSION_TIMEOUT_MS': 'kafka.session_timeout_ms',
    'KAFKA_HEARTBEAT_INTERVAL_MS': 'kafka.heartbeat_interval_ms',
    'KAFKA_CONNECTION_TIMEOUT_MS': 'kafka.connection_timeout_ms',
    'KAFKA_REQUEST_TIMEOUT_MS': 'kafka.request_timeout_ms',
    'KAFKA_POLL_TIMEOUT': 'kafka.poll_timeout_seconds',
    'KAFKA_PROBE_TIMEOUT': 'kafka.probe_timeout_seconds',
    # Consumer lifecycle settings
    'STARTUP_MAX_ATTEMPTS': 'consumer.max_startup_attempts',
    'STARTUP_RETRY_DELAY': 'consumer.startup_retry_delay_seconds',
    'SHUTDOWN_GRACE_SECONDS': 'consumer.shutdown_grace_seconds',
    'CDC_SOURCE_TAG': 'consumer.source_tag',
    # Logging settings
    'LOG_LEVEL': 'logging.level',
    'LOG_FORMAT': 'logging.format',
    'LOG_DATE_FORMAT': 'logging.date_format',
    'LOG_TO_FILE': 'logging.log_to_file',
    'LOG_FILE_PATH': 'logging.log_file_path',
    'LOG_MAX_FILE_SIZE': 'logging.max_file_size',
    'LOG_BACKUP_COUNT': 'logging.backup_count',
    'LOG_STRUCTURED': 'logging.structured',
    # Monitoring settings
    'MONITORING_ENABLED': 'monitoring.enabled',
    'HEALTH_HOST': 'monitoring.host',
    'HEALTH_PORT': 'monitoring.health_check_port',
    'SERVICE_NAME': 'monitoring.service_name',
    'PROMETHEUS_ENABLED': 'monitoring.prometheus_enabled',
    'PROMETHEUS_PATH': 'monitoring.prometheus_path',
    'COLLECT_SYSTEM_METRICS': 'monitoring.collect_system_metrics',
}


class ConfigLoader:
    """Configuration loader with support for multiple sources."""

    def __init__(self):
        self.config_paths = [
            Path.cwd() / "config" / "app.yaml",
            Path.cwd() / "config" / "app.json",
            Path.home() / ".cdc_monitor" / "config.yaml",
            Path.home() / ".cdc_monitor" / "config.json",
        ]

    def load_from_file(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        Load configuration from file.

        Args:
            config_path: Specific config file path, or None to try defaults

        Returns:
            Configuration dictionary from file, or empty dict if not found
        """
        if config_path:
            paths_to_try = [Path(config_path)]
        else:
            paths_to_try = self.config_paths

        for path in paths_to_try:
            if path.exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        if path.suffix.lower() in ['.yaml', '.yml']:
                            return yaml.safe_load(f) or {}
                        elif path.suffix.lower() == '.json':
                            return json.load(f) or {}
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning(f"Failed to load config from {path}: {e}")
                    continue

        return {}

    def merge_configs(self, file_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge file configuration with environment variables.

        Environment variables take precedence over file config.

        Raises:
            ValueError: If the file content is not a mapping
        """
        if not isinstance(file_config or {}, dict):
            raise ValueError("Configuration file must contain a mapping")
        merged = copy.deepcopy(file_config or {})

        for env_var, config_path in ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(merged, config_path, env_value)

        return merged

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """Set a value in a nested dictionary using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        # Raw strings; AppConfig.from_dict coerces them to the field types
        current[keys[-1]] = value

    def load_config(self, config_path: Optional[Path] = None) -> AppConfig:
        """
        Load and create AppConfig from available sources.

        Args:
            config_path: Optional specific config file path

        Returns:
            Validated AppConfig instance
        """
        file_config = self.load_from_file(config_path)
        merged_config = self.merge_configs(file_config)

        config = AppConfig.from_dict(merged_config)
        config.validate()
        return config


def load_configuration(config_path: Optional[Path] = None) -> AppConfig:
    """
    Convenience function to load application configuration.

    Args:
        config_path: Optional path to configuration file

    Returns:
        Configured AppConfig instance
    """
    loader = ConfigLoader()
    return loader.load_config(config_path)


# Example configuration file template
DEFAULT_CONFIG_YAML = """
environment: development

kafka:
  bootstrap_servers:
    - kafka:29092
  group_id: cdc-consumer-group
  topic: tidb-cdc-changes
  from_beginning: false

consumer:
  max_startup_attempts: 10
  startup_retry_delay_seconds: 15
  shutdown_grace_seconds: 10

logging:
  level: INFO
  structured: false

monitoring:
  enabled: true
  health_check_port: 3002
"""
