"""
Kafka consumer service for the CDC change monitor.

This module provides:
- Startup with bounded, fixed-delay retry of probe/connect/subscribe
- The per-message loop: decode, normalize, emit, commit
- Per-message failure isolation
- Cooperative shutdown driven by the shared ConsumerContext

Processing is at-least-once: an offset is committed only after its message
has been handled, so a crash mid-message leads to redelivery.
"""

import asyncio
import functools
import logging
from typing import Optional

from confluent_kafka import KafkaError, KafkaException

from ..core.logging import LogContextManager
from .connector import ConnectError
from .context import ConsumerContext
from .emitter import StructuredEmitter
from .normalizer import ChangeNormalizer, ChangeRecord
from .payload import MessageMetadata, PayloadParseError, parse_payload

logger = logging.getLogger(__name__)


class StartupError(Exception):
    """Raised when the broker stays unreachable for every startup attempt."""
    pass


class ChangeConsumerService:
    """
    Change consumer service.

    Connects through the context's BrokerConnector, then consumes messages
    one at a time until shutdown is requested on the context.
    """

    def __init__(
        self,
        context: ConsumerContext,
        normalizer: Optional[ChangeNormalizer] = None,
        emitter: Optional[StructuredEmitter] = None,
    ):
        self.context = context
        self.connector = context.connector
        self.kafka_config = context.config.kafka
        self.consumer_config = context.config.consumer
        self.normalizer = normalizer or ChangeNormalizer()
        self.emitter = emitter or StructuredEmitter(source_tag=self.consumer_config.source_tag)

    async def start(self) -> None:
        """
        Connect and run the message loop until shutdown.

        Raises:
            StartupError: If every startup attempt failed
        """
        try:
            if not await self.connect_with_retry():
                return

            self.context.mark_running()
            logger.info("CDC Consumer started successfully")
            await self._processing_loop()
        finally:
            self.context.mark_stopped()
            await self._run_blocking(self.connector.disconnect)

    async def connect_with_retry(self) -> bool:
        """
        Probe, connect and subscribe, retrying with a fixed delay.

        Returns:
            True once subscribed, False if shutdown was requested while waiting

        Raises:
            StartupError: After the maximum number of failed attempts
        """
        max_attempts = self.consumer_config.max_startup_attempts
        retry_delay = self.consumer_config.startup_retry_delay_seconds

        for attempt in range(1, max_attempts + 1):
            if self.context.shutdown_requested:
                return False

            logger.info(f"Starting CDC message processor (attempt {attempt}/{max_attempts})...")
            try:
                await self._run_blocking(self.connector.probe)
                await self._run_blocking(self.connector.connect)
                await self._run_blocking(
                    self.connector.subscribe,
                    self.kafka_config.topic,
                    from_beginning=self.kafka_config.from_beginning,
                )
                self.context.metrics.record_startup_attempt(success=True)
                return True

            except ConnectError as e:
                self.context.metrics.record_startup_attempt(success=False)
                logger.error(f"Consumer startup attempt {attempt} failed: {e}")
                await self._run_blocking(self.connector.disconnect)

                if attempt == max_attempts:
                    raise StartupError(
                        f"Broker unavailable after {max_attempts} attempts"
                    ) from e

                logger.info(f"Retrying in {retry_delay:g} seconds...")
                if await self._wait_for_shutdown(retry_delay):
                    logger.info("Shutdown requested during startup, giving up")
                    return False

        return False

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """Sleep up to timeout; True if shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self.context.shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _processing_loop(self) -> None:
        """Main processing loop."""
        poll_timeout = self.kafka_config.poll_timeout_seconds

        while not self.context.shutdown_requested:
            try:
                message = await self._run_blocking(self.connector.poll, poll_timeout)
            except (ConnectError, KafkaException, RuntimeError) as e:
                logger.error(f"Error polling Kafka: {e}")
                await asyncio.sleep(1)
                continue

            if message is None:
                continue

            if message.error():
                self._handle_kafka_error(message)
                continue

            self.process_message(message)

            if not await self._run_blocking(self.connector.commit, message):
                self.context.metrics.record_commit_failure()

    def _handle_kafka_error(self, message) -> None:
        error = message.error()
        if error.code() == KafkaError._PARTITION_EOF:
            logger.debug(f"Reached end of partition {message.partition()}")
        else:
            logger.error(f"Kafka error: {error}")

    def process_message(self, message) -> Optional[ChangeRecord]:
        """
        Decode, normalize and emit one message.

        Never raises: any failure is logged with the raw payload and the
        message is skipped.

        Returns:
            The emitted ChangeRecord, or None if the message was skipped
        """
        metadata = MessageMetadata.from_message(message)
        self.context.metrics.record_message_consumed(metadata.topic, metadata.partition)

        with LogContextManager(corr_id=metadata.position):
            value = message.value()
            if not value:
                logger.warning(f"Received empty message at {metadata.position}")
                self.context.metrics.record_message_empty(metadata.topic)
                return None

            try:
                payload = parse_payload(value)
                record = self.normalizer.normalize(payload)
                self.emitter.emit(record, metadata)

            except PayloadParseError as e:
                logger.error(f"{e}; raw message: {self._raw_text(value)}")
                self.context.metrics.record_message_failed(metadata.topic, type(e).__name__)
                return None

            except Exception as e:
                logger.error(
                    f"Error processing message {metadata.position}: {e}; "
                    f"raw message: {self._raw_text(value)}"
                )
                self.context.metrics.record_message_failed(metadata.topic, type(e).__name__)
                return None

        self.context.metrics.record_change_emitted(metadata.topic, record.change_type.value)
        return record

    @staticmethod
    def _raw_text(value) -> str:
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return str(value)

    async def _run_blocking(self, func, *args, **kwargs):
        """Run a blocking connector call on the connector's worker thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.connector.executor, functools.partial(func, *args, **kwargs))
