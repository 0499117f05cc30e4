"""
Shared lifecycle state of the consumer process.

One ConsumerContext is created per process and handed to the message loop,
the signal-driven shutdown routine and the liveness reporter.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from ..config import AppConfig
from ..core.logging import utc_timestamp
from ..monitoring.metrics import MetricsCollector
from .connector import BrokerConnector

logger = logging.getLogger(__name__)


@dataclass
class ConsumerContext:
    """Lifecycle state shared by the loop, shutdown handling and health checks."""
    config: AppConfig
    connector: BrokerConnector
    metrics: MetricsCollector = field(default_factory=MetricsCollector)
    running: bool = False
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()

    def mark_running(self) -> None:
        self.running = True
        self.metrics.set_running(True)

    def mark_stopped(self) -> None:
        self.running = False
        self.metrics.set_running(False)

    def request_shutdown(self) -> None:
        if not self.shutdown_event.is_set():
            logger.info("Shutdown requested")
        self.shutdown_event.set()

    @property
    def healthy(self) -> bool:
        return self.running and not self.shutdown_requested

    def health_status(self) -> Dict[str, Any]:
        """Liveness payload for the health endpoint."""
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "timestamp": utc_timestamp(),
            "service": self.config.monitoring.service_name,
        }
