"""
Centralized configuration management for the CDC change monitor.

This module provides:
- Type-safe configuration classes
- Default value management
- Coercion of file and environment values to field types
- Configuration validation

Environment variables are overlaid by ``ConfigLoader``; the classes here only
build from nested mappings.
"""

from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field, fields
from enum import Enum


class Environment(str, Enum):
    """Deployment environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _coerce(name: str, annotation: Any, value: Any) -> Any:
    """Convert a file or environment value to the field's scalar type."""
    try:
        if annotation is bool:
            if isinstance(value, str):
                return value.strip().lower() in ("true", "1", "yes", "on")
            return bool(value)
        if annotation is int and not isinstance(value, bool):
            return int(value)
        if annotation is float and not isinstance(value, bool):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r}") from e
    return value


def _known_fields(cls, data: Any, section: str) -> Dict[str, Any]:
    """Keep the keys that are fields of the dataclass, coerced to their types."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration section '{section}' must be a mapping")

    types = {f.name: f.type for f in fields(cls)}
    return {
        key: _coerce(f"{section}.{key}", types[key], value)
        for key, value in data.items()
        if key in types
    }


@dataclass
class KafkaConfig:
    """Kafka consumer configuration."""
    bootstrap_servers: List[str] = field(default_factory=lambda: ["kafka:29092"])
    client_id: str = "cdc-consumer"
    group_id: str = "cdc-consumer-group"
    topic: str = "tidb-cdc-changes"
    from_beginning: bool = False
    session_timeout_ms: int = 30000
    heartbeat_interval_ms: int = 3000
    connection_timeout_ms: int = 30000
    request_timeout_ms: int = 30000

    # Blocking call timeouts
    poll_timeout_seconds: float = 1.0
    probe_timeout_seconds: float = 10.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KafkaConfig":
        values = _known_fields(cls, data, "kafka")
        brokers = values.get("bootstrap_servers")
        if isinstance(brokers, str):
            values["bootstrap_servers"] = _split_list(brokers)
        elif brokers is not None:
            if not isinstance(brokers, list):
                raise ValueError(f"Invalid value for kafka.bootstrap_servers: {brokers!r}")
            values["bootstrap_servers"] = [str(broker) for broker in brokers]
        return cls(**values)


@dataclass
class ConsumerConfig:
    """Change consumer lifecycle configuration."""
    # Startup retry policy
    max_startup_attempts: int = 10
    startup_retry_delay_seconds: float = 15.0

    # Upper bound on waiting for the in-flight message at shutdown
    shutdown_grace_seconds: float = 10.0

    # Tag written into every change log entry
    source_tag: str = "database-cdc"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsumerConfig":
        return cls(**_known_fields(cls, data, "consumer"))


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s] - %(message)s"
    date_format: str = "%Y-%m-%dT%H:%M:%S"

    # File logging
    log_to_file: bool = False
    log_file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    # Structured logging (JSON) for operational logs
    structured: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        values = _known_fields(cls, data, "logging")
        if "level" in values:
            values["level"] = str(values["level"]).upper()
        return cls(**values)


@dataclass
class MonitoringConfig:
    """Liveness endpoint and metrics configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    health_check_port: int = 3002
    service_name: str = "cdc-consumer"

    # Prometheus metrics
    prometheus_enabled: bool = True
    prometheus_path: str = "/metrics"
    collect_system_metrics: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitoringConfig":
        return cls(**_known_fields(cls, data, "monitoring"))


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: Environment = Environment.DEVELOPMENT

    # Component configs
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    consumer: ConsumerConfig = field(default_factory=ConsumerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    # Application settings
    app_name: str = "cdc-consumer"
    version: str = "1.0.0"

    @staticmethod
    def _parse_environment(value: Optional[str]) -> Environment:
        try:
            return Environment(str(value or "development").lower())
        except ValueError:
            return Environment.DEVELOPMENT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """
        Create application config from a nested mapping (e.g. a YAML file).

        Raises:
            ValueError: If a section is not a mapping or a value has the wrong type
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("Configuration must be a mapping")

        return cls(
            environment=cls._parse_environment(data.get("environment")),
            kafka=KafkaConfig.from_dict(data.get("kafka")),
            consumer=ConsumerConfig.from_dict(data.get("consumer")),
            logging=LoggingConfig.from_dict(data.get("logging")),
            monitoring=MonitoringConfig.from_dict(data.get("monitoring")),
            app_name=str(data.get("app_name", "cdc-consumer")),
            version=str(data.get("version", "1.0.0")),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.kafka.bootstrap_servers:
            raise ValueError("At least one Kafka broker must be configured")

        if not self.kafka.topic:
            raise ValueError("Kafka topic must be configured")

        if not self.kafka.group_id:
            raise ValueError("Kafka consumer group must be configured")

        if self.consumer.max_startup_attempts <= 0:
            raise ValueError("Max startup attempts must be positive")

        if self.consumer.startup_retry_delay_seconds < 0:
            raise ValueError("Startup retry delay cannot be negative")

        if self.consumer.shutdown_grace_seconds < 0:
            raise ValueError("Shutdown grace period cannot be negative")

        if not 0 < self.monitoring.health_check_port < 65536:
            raise ValueError(f"Invalid health check port: {self.monitoring.health_check_port}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for logging/serialization."""
        return {
            "environment": self.environment.value,
            "app_name": self.app_name,
            "version": self.version,
            "kafka": {
                "bootstrap_servers": self.kafka.bootstrap_servers,
                "group_id": self.kafka.group_id,
                "topic": self.kafka.topic,
                "from_beginning": self.kafka.from_beginning,
            },
            "consumer": {
                "max_startup_attempts": self.consumer.max_startup_attempts,
                "startup_retry_delay_seconds": self.consumer.startup_retry_delay_seconds,
                "shutdown_grace_seconds": self.consumer.shutdown_grace_seconds,
            },
            "monitoring": {
                "enabled": self.monitoring.enabled,
                "health_check_port": self.monitoring.health_check_port,
            },
        }
