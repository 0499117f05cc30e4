"""
Monitoring service for the CDC change monitor.

This module provides:
- The liveness endpoint (/health)
- Prometheus metrics exposure (/metrics)

The service only reads the shared ConsumerContext; it runs on the same event
loop as the consumer, whose blocking broker calls happen in worker threads.
"""

import logging
from typing import Optional, TYPE_CHECKING

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST

from ..config import MonitoringConfig

if TYPE_CHECKING:
    from ..consumer.context import ConsumerContext

logger = logging.getLogger(__name__)


class MonitoringService:
    """HTTP server exposing liveness and metrics."""

    def __init__(self, config: MonitoringConfig, context: "ConsumerContext"):
        self.config = config
        self.context = context

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with its routes."""
        app = web.Application()
        app.router.add_get('/health', self.health_check_handler)
        if self.config.prometheus_enabled:
            app.router.add_get(self.config.prometheus_path, self.metrics_handler)
        return app

    async def start(self) -> None:
        """Start the monitoring server."""
        if not self.config.enabled:
            logger.info("Monitoring disabled in configuration")
            return

        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            self.config.host,
            self.config.health_check_port
        )
        await self.site.start()

        logger.info(f"Health check server running on port {self.config.health_check_port}")

    async def stop(self) -> None:
        """Stop the monitoring server."""
        if self.runner:
            await self.runner.cleanup()
            logger.info("Monitoring service stopped")

        self.site = None
        self.runner = None
        self.app = None

    async def health_check_handler(self, request: web.Request) -> web.Response:
        """Liveness endpoint handler."""
        health_status = self.context.health_status()
        status_code = 200 if health_status["status"] == "healthy" else 503
        return web.json_response(health_status, status=status_code)

    async def metrics_handler(self, request: web.Request) -> web.Response:
        """Metrics endpoint handler."""
        metrics = self.context.metrics

        if self.config.collect_system_metrics:
            metrics.collect_system_metrics()

        return web.Response(
            body=metrics.get_metrics_text().encode('utf-8'),
            headers={'Content-Type': CONTENT_TYPE_LATEST}
        )
