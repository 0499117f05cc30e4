"""
Kafka broker connector for the CDC change monitor.

Owns the single consumer-group handle: connectivity probing, connecting,
subscribing, polling, offset commits and disconnecting. Every call here is
blocking; the message loop runs them on the connector's own worker thread,
so calls on the handle never overlap (a close is queued behind an in-flight
poll).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from confluent_kafka import Consumer, KafkaException, TopicPartition, OFFSET_BEGINNING
from confluent_kafka.admin import AdminClient

from ..config import KafkaConfig

logger = logging.getLogger(__name__)


class ConnectError(Exception):
    """Raised when the broker cannot be reached or the subscription fails."""
    pass


class BrokerConnector:
    """Connection lifecycle for one Kafka consumer group member."""

    def __init__(
        self,
        kafka_config: KafkaConfig,
        consumer_factory: Callable[[Dict[str, Any]], Any] = Consumer,
        admin_factory: Callable[[Dict[str, Any]], Any] = AdminClient,
    ):
        self.kafka_config = kafka_config
        self._consumer_factory = consumer_factory
        self._admin_factory = admin_factory

        self._consumer = None
        self._topic: Optional[str] = None
        self._from_beginning = False
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kafka-consumer")

    @property
    def connected(self) -> bool:
        return self._consumer is not None

    @property
    def subscribed_topic(self) -> Optional[str]:
        return self._topic

    def _client_config(self, bootstrap_servers: Optional[List[str]] = None) -> Dict[str, Any]:
        return {
            "bootstrap.servers": ",".join(bootstrap_servers or self.kafka_config.bootstrap_servers),
            "client.id": self.kafka_config.client_id,
            "socket.connection.setup.timeout.ms": self.kafka_config.connection_timeout_ms,
            "socket.timeout.ms": self.kafka_config.request_timeout_ms,
        }

    def probe(self) -> None:
        """
        Check broker connectivity by listing topics.

        Uses a separate admin client, independent of the consumer group.

        Raises:
            ConnectError: If cluster metadata cannot be retrieved
        """
        try:
            admin = self._admin_factory(self._client_config())
            metadata = admin.list_topics(timeout=self.kafka_config.probe_timeout_seconds)
        except KafkaException as e:
            raise ConnectError(f"Kafka connection test failed: {e}") from e

        if metadata is None:
            raise ConnectError("Kafka connection test failed: no cluster metadata")

        logger.info(f"Kafka connectivity verified ({len(metadata.topics)} topics visible)")

    def connect(
        self,
        bootstrap_servers: Optional[List[str]] = None,
        group_id: Optional[str] = None,
    ) -> None:
        """
        Create the consumer-group connection.

        Raises:
            ConnectError: If the consumer cannot be created or reach the brokers
        """
        if self._consumer is not None:
            return

        consumer_config = self._client_config(bootstrap_servers)
        consumer_config.update({
            "group.id": group_id or self.kafka_config.group_id,
            "auto.offset.reset": "latest",
            "enable.auto.commit": False,
            "session.timeout.ms": self.kafka_config.session_timeout_ms,
            "heartbeat.interval.ms": self.kafka_config.heartbeat_interval_ms,
        })

        consumer = None
        try:
            consumer = self._consumer_factory(consumer_config)
            # Metadata request so an unreachable cluster fails here, not on first poll
            consumer.list_topics(timeout=self.kafka_config.probe_timeout_seconds)
        except KafkaException as e:
            if consumer is not None:
                self._close_quietly(consumer)
            raise ConnectError(f"Failed to connect consumer: {e}") from e

        self._consumer = consumer
        logger.info(f"Connected to Kafka as group {consumer_config['group.id']}")

    def subscribe(self, topic: str, from_beginning: bool = False) -> None:
        """
        Subscribe the connected consumer to a topic.

        Args:
            topic: Topic name
            from_beginning: Start partitions without a committed offset at the
                beginning instead of the latest offset
        """
        if self._consumer is None:
            raise ConnectError("Cannot subscribe before connecting")

        self._from_beginning = from_beginning
        try:
            self._consumer.subscribe([topic], on_assign=self._on_assign)
        except KafkaException as e:
            raise ConnectError(f"Failed to subscribe to {topic}: {e}") from e

        self._topic = topic
        logger.info(f"Subscribed to topic {topic} (from_beginning={from_beginning})")

    def _on_assign(self, consumer, partitions: List[TopicPartition]) -> None:
        """Callback when partitions are assigned."""
        logger.info(f"Partitions assigned: {[(p.topic, p.partition) for p in partitions]}")

        if not self._from_beginning:
            return

        committed = consumer.committed(partitions, timeout=self.kafka_config.probe_timeout_seconds)
        for partition in committed:
            if partition.offset < 0:
                partition.offset = OFFSET_BEGINNING
        consumer.assign(committed)

    def poll(self, timeout: float):
        """Return the next message, or None when none arrived within timeout."""
        if self._consumer is None:
            raise ConnectError("Consumer is not connected")
        return self._consumer.poll(timeout)

    def commit(self, message) -> bool:
        """Synchronously commit the offset following the given message."""
        if self._consumer is None:
            return False

        try:
            self._consumer.commit(message=message, asynchronous=False)
            return True
        except KafkaException as e:
            logger.warning(
                f"Failed to commit offset {message.topic()}:{message.partition()}:{message.offset()}: {e}"
            )
            return False

    def disconnect(self) -> None:
        """Close the consumer-group connection. Failures are logged, not raised."""
        consumer = self._consumer
        self._consumer = None
        self._topic = None

        if consumer is None:
            return

        logger.info("Disconnecting from Kafka...")
        if self._close_quietly(consumer):
            logger.info("Consumer stopped")

    @staticmethod
    def _close_quietly(consumer) -> bool:
        try:
            consumer.close()
            return True
        except Exception as e:
            logger.error(f"Failed to close Kafka consumer: {e}")
            return False

    def shutdown(self) -> None:
        """Release the worker thread once the connector is no longer used."""
        self.executor.shutdown(wait=False)
