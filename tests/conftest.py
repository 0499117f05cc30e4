"""
Test configuration and fixtures for the CDC change monitor tests.

This module provides:
- Test configuration overrides
- Sample TiDB change payloads
- In-process fakes for the confluent-kafka Consumer and AdminClient
- Async test utilities
"""

import asyncio
import json
import logging
import time
from collections import deque
from typing import Any, Dict, List, Optional

import pytest
from confluent_kafka import KafkaException, TIMESTAMP_CREATE_TIME, TIMESTAMP_NOT_AVAILABLE

from cdc_monitor.config import (
    AppConfig,
    ConsumerConfig,
    Environment,
    KafkaConfig,
    LoggingConfig,
    MonitoringConfig,
)
from cdc_monitor.consumer import BrokerConnector, ConsumerContext
from cdc_monitor.consumer.emitter import StructuredEmitter
from cdc_monitor.core.logging import CHANGE_LOGGER_NAME


@pytest.fixture
def test_config() -> AppConfig:
    """Create test configuration with fast timeouts and no HTTP server."""
    return AppConfig(
        environment=Environment.DEVELOPMENT,
        kafka=KafkaConfig(
            bootstrap_servers=["localhost:9094"],
            topic="tidb-cdc-changes",
            poll_timeout_seconds=0.05,
            probe_timeout_seconds=1.0,
        ),
        consumer=ConsumerConfig(
            max_startup_attempts=3,
            startup_retry_delay_seconds=0,
            shutdown_grace_seconds=2.0,
        ),
        logging=LoggingConfig(level="WARNING"),
        monitoring=MonitoringConfig(enabled=False),
    )


@pytest.fixture
def sample_insert_payload() -> Dict[str, Any]:
    """Sample TiDB insert change."""
    return {
        "type": "insert",
        "database": "auth",
        "table": "sessions",
        "data": [
            {"id": 42, "user_id": 7, "token": "abc123", "expires_at": "2024-01-01 12:00:00"},
        ],
        "ts": 1703123456789,
    }


@pytest.fixture
def sample_update_payload() -> Dict[str, Any]:
    """Sample TiDB update change."""
    return {
        "type": "update",
        "database": "auth",
        "table": "users",
        "data": [{"id": 7, "email": "new@example.com", "last_login": "2024-01-02 08:00:00"}],
        "old_data": {"email": "old@example.com", "last_login": None},
        "timestamp": "2024-01-02T08:00:00Z",
    }


@pytest.fixture
def sample_delete_payload() -> Dict[str, Any]:
    """Sample TiDB delete change."""
    return {
        "type": "delete",
        "database": "auth",
        "table": "sessions",
        "data": [{"id": 42}],
        "old_data": {"id": 42, "user_id": 7, "token": "abc123"},
        "ts": 1703123499999,
    }


class FakeError:
    """Stand-in for confluent_kafka.KafkaError on a message."""

    def __init__(self, code: int, reason: str = "broker error"):
        self._code = code
        self._reason = reason

    def code(self):
        return self._code

    def __str__(self):
        return self._reason


class FakeMessage:
    """Stand-in for confluent_kafka.Message."""

    def __init__(
        self,
        value,
        topic: str = "tidb-cdc-changes",
        partition: int = 0,
        offset: int = 0,
        key: Optional[bytes] = None,
        timestamp: Optional[int] = 1703123456800,
        error: Optional[FakeError] = None,
    ):
        if isinstance(value, (dict, list)):
            value = json.dumps(value).encode("utf-8")
        self._value = value
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._key = key
        self._timestamp = timestamp
        self._error = error

    def value(self):
        return self._value

    def topic(self):
        return self._topic

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def key(self):
        return self._key

    def timestamp(self):
        if self._timestamp is None:
            return (TIMESTAMP_NOT_AVAILABLE, -1)
        return (TIMESTAMP_CREATE_TIME, self._timestamp)

    def error(self):
        return self._error


class FakeClusterMetadata:
    def __init__(self, topics: List[str]):
        self.topics = {topic: object() for topic in topics}


class FakeBroker:
    """
    In-process broker shared by the fake admin clients and consumers.

    The first ``unavailable_probes`` metadata requests fail; use
    ``float("inf")`` for a broker that never comes up.
    """

    def __init__(self, unavailable_probes: float = 0, topics: Optional[List[str]] = None):
        self.unavailable_probes = unavailable_probes
        self.topics = topics or ["tidb-cdc-changes"]
        self.probe_calls = 0
        self.messages = deque()
        self.consumers: List["FakeKafkaConsumer"] = []
        self.admin_configs: List[Dict[str, Any]] = []

    def publish(self, *messages: FakeMessage) -> None:
        self.messages.extend(messages)

    def metadata(self) -> FakeClusterMetadata:
        self.probe_calls += 1
        if self.probe_calls <= self.unavailable_probes:
            raise KafkaException("Broker transport failure")
        return FakeClusterMetadata(self.topics)

    def admin_factory(self, config: Dict[str, Any]) -> "FakeAdminClient":
        self.admin_configs.append(config)
        return FakeAdminClient(self)

    def consumer_factory(self, config: Dict[str, Any]) -> "FakeKafkaConsumer":
        consumer = FakeKafkaConsumer(self, config)
        self.consumers.append(consumer)
        return consumer

    @property
    def poll_calls(self) -> int:
        return sum(consumer.poll_calls for consumer in self.consumers)

    @property
    def committed_offsets(self) -> List[int]:
        return [offset for consumer in self.consumers for offset in consumer.commits]


class FakeAdminClient:
    def __init__(self, broker: FakeBroker):
        self.broker = broker

    def list_topics(self, timeout=None):
        return self.broker.metadata()


class FakeKafkaConsumer:
    def __init__(self, broker: FakeBroker, config: Dict[str, Any]):
        self.broker = broker
        self.config = config
        self.subscriptions: List[str] = []
        self.on_assign = None
        self.assigned = None
        self.commits: List[int] = []
        self.poll_calls = 0
        self.closed = False
        self.poll_delay = 0.0
        self.in_poll = False
        self.closed_during_poll = False

    def list_topics(self, timeout=None):
        return FakeClusterMetadata(self.broker.topics)

    def subscribe(self, topics, on_assign=None):
        self.subscriptions.extend(topics)
        self.on_assign = on_assign

    def poll(self, timeout=None):
        if self.closed:
            raise RuntimeError("Consumer closed")
        self.poll_calls += 1
        self.in_poll = True
        try:
            if self.poll_delay:
                time.sleep(self.poll_delay)
            if self.broker.messages:
                return self.broker.messages.popleft()
            time.sleep(min(timeout or 0.01, 0.01))
            return None
        finally:
            self.in_poll = False

    def commit(self, message=None, asynchronous=True):
        self.commits.append(message.offset())

    def committed(self, partitions, timeout=None):
        return partitions

    def assign(self, partitions):
        self.assigned = partitions

    def close(self):
        self.closed_during_poll = self.in_poll
        self.closed = True


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def connector(test_config, fake_broker) -> BrokerConnector:
    return BrokerConnector(
        test_config.kafka,
        consumer_factory=fake_broker.consumer_factory,
        admin_factory=fake_broker.admin_factory,
    )


@pytest.fixture
def consumer_context(test_config, connector) -> ConsumerContext:
    return ConsumerContext(config=test_config, connector=connector)


class RecordingEmitter(StructuredEmitter):
    """Emitter that keeps built entries instead of logging them."""

    def __init__(self, fail_times: int = 0):
        super().__init__(source_tag="database-cdc")
        self.entries: List[Dict[str, Any]] = []
        self.fail_times = fail_times

    def emit(self, record, metadata) -> None:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise TypeError("Object of type bytes is not JSON serializable")
        self.entries.append(self.build_entry(record, metadata))


@pytest.fixture
def recording_emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def restore_change_logger():
    """Restore the change stream logger after a test reconfigures it."""
    change_logger = logging.getLogger(CHANGE_LOGGER_NAME)
    handlers = list(change_logger.handlers)
    propagate = change_logger.propagate
    level = change_logger.level

    yield change_logger

    change_logger.handlers[:] = handlers
    change_logger.propagate = propagate
    change_logger.setLevel(level)


async def wait_for_condition(condition_func, timeout: float = 5.0, interval: float = 0.01):
    """Wait for a condition to become true without blocking the event loop."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if condition_func():
            return True
        await asyncio.sleep(interval)

    raise AssertionError(f"Condition not met within {timeout} seconds")


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
