"""
Prometheus metrics for the CDC change monitor.

Every collector owns its registry so several instances (tests, embedded
services) never clash on metric names.
"""

import logging
import time
from typing import Optional

import psutil
from prometheus_client import (
    Counter, Gauge, CollectorRegistry, generate_latest
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Prometheus metrics collector."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Message processing metrics
        self.messages_consumed = Counter(
            'cdc_messages_consumed_total',
            'Total number of messages consumed',
            ['topic', 'partition'],
            registry=self.registry
        )

        self.changes_emitted = Counter(
            'cdc_changes_emitted_total',
            'Total number of change records written to the change log',
            ['topic', 'change_type'],
            registry=self.registry
        )

        self.messages_failed = Counter(
            'cdc_messages_failed_total',
            'Total number of messages that failed processing',
            ['topic', 'error_type'],
            registry=self.registry
        )

        self.messages_empty = Counter(
            'cdc_messages_empty_total',
            'Total number of messages skipped because the body was empty',
            ['topic'],
            registry=self.registry
        )

        self.commit_failures = Counter(
            'cdc_commit_failures_total',
            'Total number of failed offset commits',
            registry=self.registry
        )

        # Lifecycle metrics
        self.startup_attempts = Counter(
            'cdc_startup_attempts_total',
            'Broker connection attempts made at startup',
            ['outcome'],
            registry=self.registry
        )

        self.consumer_running = Gauge(
            'cdc_consumer_running',
            'Whether the message loop is running (1) or not (0)',
            registry=self.registry
        )

        # Process metrics
        self.process_memory = Gauge(
            'cdc_process_memory_rss_bytes',
            'Resident memory of the consumer process',
            registry=self.registry
        )

        self.process_cpu = Gauge(
            'cdc_process_cpu_percent',
            'CPU usage of the consumer process',
            registry=self.registry
        )

        self.app_uptime = Gauge(
            'cdc_app_uptime_seconds',
            'Application uptime in seconds',
            registry=self.registry
        )

        self.app_start_time = time.time()
        self._process = psutil.Process()

    def record_message_consumed(self, topic: str, partition: int) -> None:
        self.messages_consumed.labels(topic=topic, partition=partition).inc()

    def record_change_emitted(self, topic: str, change_type: str) -> None:
        self.changes_emitted.labels(topic=topic, change_type=change_type).inc()

    def record_message_failed(self, topic: str, error_type: str) -> None:
        self.messages_failed.labels(topic=topic, error_type=error_type).inc()

    def record_message_empty(self, topic: str) -> None:
        self.messages_empty.labels(topic=topic).inc()

    def record_commit_failure(self) -> None:
        self.commit_failures.inc()

    def record_startup_attempt(self, success: bool) -> None:
        self.startup_attempts.labels(outcome="success" if success else "failure").inc()

    def set_running(self, running: bool) -> None:
        self.consumer_running.set(1 if running else 0)

    def collect_system_metrics(self) -> None:
        """Collect current process metrics."""
        try:
            self.process_memory.set(self._process.memory_info().rss)
            self.process_cpu.set(self._process.cpu_percent(interval=None))
        except psutil.Error as e:
            logger.debug(f"Failed to collect process metrics: {e}")

        self.app_uptime.set(time.time() - self.app_start_time)

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry).decode('utf-8')
