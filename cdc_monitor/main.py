"""
Main entry point for the CDC change monitor.

This module provides:
- Application initialization and configuration
- Liveness endpoint startup
- Signal handling with a bounded shutdown grace period
- Process exit codes (1 when the broker never became reachable)
"""

import asyncio
import os
import signal
import sys
from typing import Optional

from .config import AppConfig, load_configuration
from .consumer import BrokerConnector, ChangeConsumerService, ConsumerContext, StartupError
from .monitoring import MonitoringService
from .core.logging import logger, setup_logging


class CDCConsumerApplication:
    """
    Main CDC consumer application.

    Owns the ConsumerContext and wires it into the consumer service, the
    monitoring service and signal handling.
    """

    def __init__(self, config: AppConfig, connector: Optional[BrokerConnector] = None):
        self.config = config
        self.context = ConsumerContext(
            config=config,
            connector=connector or BrokerConnector(config.kafka),
        )
        self.consumer_service = ChangeConsumerService(self.context)
        self.monitoring_service: Optional[MonitoringService] = None
        self.consumer_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        """Start the liveness endpoint."""
        if self.config.monitoring.enabled:
            self.monitoring_service = MonitoringService(self.config.monitoring, self.context)
            await self.monitoring_service.start()

    def install_signal_handlers(self) -> None:
        """Request shutdown on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig)
            except NotImplementedError:
                # Event loops without signal support (e.g. Windows)
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self.handle_signal, signum))

    def handle_signal(self, signum) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down gracefully...")
        self.context.request_shutdown()

    async def run(self) -> int:
        """
        Run the application until shutdown.

        Returns:
            Process exit code
        """
        exit_code = 0

        try:
            await self.initialize()
            self.consumer_task = asyncio.create_task(self.consumer_service.start())
            await self._wait_for_consumer()

        except StartupError as e:
            logger.error(f"{e}. Max retry attempts reached. Exiting...")
            exit_code = 1

        except Exception as e:
            logger.error(f"Application error: {e}")
            exit_code = 1

        finally:
            await self.cleanup()

        return exit_code

    async def _wait_for_consumer(self) -> None:
        """Wait for the consumer to finish, bounding the wait once shutdown starts."""
        shutdown_waiter = asyncio.create_task(self.context.shutdown_event.wait())

        try:
            await asyncio.wait(
                {self.consumer_task, shutdown_waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            shutdown_waiter.cancel()

        if not self.consumer_task.done():
            grace = self.config.consumer.shutdown_grace_seconds
            try:
                await asyncio.wait_for(asyncio.shield(self.consumer_task), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning(f"Consumer did not stop within {grace:g}s, cancelling")
                self.consumer_task.cancel()
                # Disconnect is queued on the connector thread behind any in-flight poll
                await asyncio.gather(self.consumer_task, return_exceptions=True)
                return

        # Re-raise StartupError or any unexpected consumer failure
        self.consumer_task.result()

    async def cleanup(self) -> None:
        """Clean up all resources."""
        logger.info("Cleaning up application resources...")

        if self.consumer_task and not self.consumer_task.done():
            self.consumer_task.cancel()
            await asyncio.gather(self.consumer_task, return_exceptions=True)

        if self.monitoring_service:
            await self.monitoring_service.stop()

        self.context.connector.shutdown()

        logger.info("Application cleanup completed")


async def main(config_path: Optional[str] = None) -> None:
    """Main application entry point."""
    try:
        config = load_configuration(config_path)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.logging, config.environment)

    logger.info(f"Starting {config.app_name} v{config.version}")
    logger.info(f"Environment: {config.environment.value}")
    logger.info(f"Configuration: {config.to_dict()}")

    app = CDCConsumerApplication(config)
    app.install_signal_handlers()

    exit_code = await app.run()
    if exit_code:
        sys.exit(exit_code)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main(os.getenv("CDC_CONFIG_FILE")))


if __name__ == "__main__":
    run()
