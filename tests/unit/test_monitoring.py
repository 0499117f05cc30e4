"""
Unit tests for the liveness endpoint and metrics exposure.
"""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from cdc_monitor.config import MonitoringConfig
from cdc_monitor.monitoring import MetricsCollector, MonitoringService


@pytest.fixture
async def client(consumer_context):
    """HTTP client bound to the monitoring app."""
    service = MonitoringService(MonitoringConfig(), consumer_context)
    async with TestClient(TestServer(service.create_app())) as test_client:
        yield test_client


class TestHealthEndpoint:
    """Test cases for /health."""

    async def test_unhealthy_before_loop_runs(self, client):
        """Test that the service is unhealthy until the message loop runs."""
        response = await client.get("/health")
        body = await response.json()

        assert response.status == 503
        assert body["status"] == "unhealthy"
        assert body["service"] == "cdc-consumer"
        assert body["timestamp"].endswith("Z")

    async def test_healthy_while_running(self, client, consumer_context):
        consumer_context.mark_running()

        response = await client.get("/health")

        assert response.status == 200
        assert (await response.json())["status"] == "healthy"

    async def test_unhealthy_after_shutdown_request(self, client, consumer_context):
        """Test that a pending shutdown flips liveness before the loop exits."""
        consumer_context.mark_running()
        consumer_context.request_shutdown()

        response = await client.get("/health")

        assert response.status == 503
        assert (await response.json())["status"] == "unhealthy"


class TestMetricsEndpoint:
    """Test cases for /metrics."""

    async def test_metrics_text(self, client, consumer_context):
        consumer_context.metrics.record_message_consumed("tidb-cdc-changes", 0)
        consumer_context.metrics.record_change_emitted("tidb-cdc-changes", "insert")

        response = await client.get("/metrics")
        text = await response.text()

        assert response.status == 200
        assert response.headers["Content-Type"].startswith("text/plain")
        assert 'cdc_messages_consumed_total{partition="0",topic="tidb-cdc-changes"} 1.0' in text
        assert 'cdc_changes_emitted_total{change_type="insert",topic="tidb-cdc-changes"} 1.0' in text
        assert "cdc_app_uptime_seconds" in text

    async def test_metrics_disabled(self, consumer_context):
        service = MonitoringService(MonitoringConfig(prometheus_enabled=False), consumer_context)

        async with TestClient(TestServer(service.create_app())) as client:
            response = await client.get("/metrics")

        assert response.status == 404


class TestServerLifecycle:
    """Test cases for starting and stopping the HTTP server."""

    async def test_start_and_stop(self, consumer_context):
        service = MonitoringService(MonitoringConfig(host="127.0.0.1", health_check_port=0), consumer_context)

        await service.start()
        assert service.runner is not None

        await service.stop()
        assert service.runner is None

    async def test_disabled(self, consumer_context):
        service = MonitoringService(MonitoringConfig(enabled=False), consumer_context)

        await service.start()

        assert service.runner is None
        await service.stop()


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_independent_registries(self):
        """Test that collectors do not share metric state."""
        first = MetricsCollector()
        second = MetricsCollector()

        first.record_startup_attempt(success=False)

        assert 'cdc_startup_attempts_total{outcome="failure"} 1.0' in first.get_metrics_text()
        assert "cdc_startup_attempts_total{" not in second.get_metrics_text()

    def test_running_gauge(self):
        metrics = MetricsCollector()

        metrics.set_running(True)
        assert "cdc_consumer_running 1.0" in metrics.get_metrics_text()

        metrics.set_running(False)
        assert "cdc_consumer_running 0.0" in metrics.get_metrics_text()
