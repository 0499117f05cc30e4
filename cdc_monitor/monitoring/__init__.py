"""
Monitoring package for the CDC change monitor.

This package provides:
- The liveness endpoint reporting whether the message loop is running
- Prometheus metrics collection and exposure
"""

from .metrics import MetricsCollector
from .service import MonitoringService

__all__ = [
    "MetricsCollector",
    "MonitoringService",
]
