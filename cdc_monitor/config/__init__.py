"""
Configuration package for the CDC change monitor.

This package provides centralized configuration management with:
- Environment variable support
- Configuration file loading (YAML/JSON)
- Type-safe configuration classes
- Validation of values before startup
"""

from .settings import (
    AppConfig,
    KafkaConfig,
    ConsumerConfig,
    LoggingConfig,
    MonitoringConfig,
    Environment,
)

from .loader import (
    ConfigLoader,
    load_configuration,
    DEFAULT_CONFIG_YAML,
)

__all__ = [
    # Configuration classes
    "AppConfig",
    "KafkaConfig",
    "ConsumerConfig",
    "LoggingConfig",
    "MonitoringConfig",
    "Environment",

    # Loading utilities
    "ConfigLoader",
    "load_configuration",
    "DEFAULT_CONFIG_YAML",
]
