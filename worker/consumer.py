# ============================================================================
# STATE UPDATE CONSUMER
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Worker - Service Bus session consumer
# PURPOSE: Drain the state-update queue in order, one message at a time
# CREATED: 18 OCT 2026
# ============================================================================
"""
State Update Consumer

Listens to the session-enabled state-update queue and applies each message
through StateUpdateProcessor, strictly in arrival order.

Features:
- Single active consumer (PostgreSQL advisory lock); standbys poll for it
- Sequential processing within the cluster-state session
- Message settlement (complete / abandon / dead-letter)
- Graceful shutdown
"""

import asyncio
import json
import logging
import signal
from typing import Optional

from azure.servicebus import ServiceBusReceivedMessage
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver
from pydantic import ValidationError

from core.models import StateUpdateMessage
from infrastructure.locking import LockService
from messaging import MessagingConfig, create_service_bus_client
from worker.state_updater import StateUpdateProcessor

logger = logging.getLogger(__name__)


# ============================================================================
# CONSUMER
# ============================================================================

class StateUpdateConsumer:
    """
    Consumes the state-update queue.

    Only the holder of the updater lock receives messages, so mutations are
    applied by exactly one process in submission order.
    """

    def __init__(
        self,
        config: MessagingConfig,
        processor: StateUpdateProcessor,
        lock_service: Optional[LockService] = None,
        standby_interval: float = 5.0,
        max_batch: int = 10,
    ):
        """
        Initialize consumer.

        Args:
            config: Messaging configuration
            processor: Applies each message to the store
            lock_service: Advisory-lock guard (None runs unguarded)
            standby_interval: Seconds between lock attempts while standby
            max_batch: Messages received per round trip
        """
        self.config = config
        self.processor = processor
        self.lock_service = lock_service
        self.standby_interval = standby_interval
        self.max_batch = max_batch

        self._client: Optional[ServiceBusClient] = None
        self._receiver: Optional[ServiceBusReceiver] = None

        self._running = False
        self._shutdown_event = asyncio.Event()

        # Stats
        self.messages_received = 0
        self.messages_applied = 0
        self.messages_failed = 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def run(self) -> None:
        """Run until stop() is called."""
        self._running = True
        self._shutdown_event.clear()

        try:
            if not await self._wait_for_lock():
                return

            await self._connect()
            while self._running:
                try:
                    await self.receive_batch()
                except Exception as e:
                    logger.exception(f"Error in receive loop: {e}")
                    await asyncio.sleep(1)
        finally:
            await self._disconnect()
            if self.lock_service is not None:
                await self.lock_service.release_updater_lock()
            logger.info(
                f"Consumer stopped. Stats: received={self.messages_received}, "
                f"applied={self.messages_applied}, failed={self.messages_failed}"
            )

    async def stop(self) -> None:
        """Stop the consumer gracefully."""
        if not self._running:
            return
        logger.info("Stopping state update consumer...")
        self._running = False
        self._shutdown_event.set()

    async def _wait_for_lock(self) -> bool:
        """Block as a standby until this process holds the updater lock."""
        if self.lock_service is None:
            return True

        while self._running:
            if await self.lock_service.try_acquire_updater_lock():
                return True
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), self.standby_interval)
            except asyncio.TimeoutError:
                pass
        return False

    async def _connect(self) -> None:
        self._client = create_service_bus_client(self.config)
        self._receiver = self._client.get_queue_receiver(
            queue_name=self.config.state_update_queue,
            session_id=self.config.state_update_session_id,
            max_wait_time=5,
        )
        await self._receiver.__aenter__()
        logger.info(
            f"Receiving session {self.config.state_update_session_id} "
            f"on queue {self.config.state_update_queue}"
        )

    async def _disconnect(self) -> None:
        if self._receiver:
            await self._receiver.close()
            self._receiver = None

        if self._client:
            await self._client.close()
            self._client = None

    # =========================================================================
    # PROCESSING
    # =========================================================================

    async def receive_batch(self) -> None:
        """Receive and apply one batch of messages, sequentially."""
        if not self._receiver:
            return

        messages = await self._receiver.receive_messages(
            max_message_count=self.max_batch,
            max_wait_time=5,
        )
        for message in messages:
            self.messages_received += 1
            await self.process_message(message)

    async def process_message(self, message: ServiceBusReceivedMessage) -> None:
        """
        Apply one message and settle it.

        Malformed messages are dead-lettered. Store failures abandon the
        message so Service Bus redelivers it within the same session.
        """
        try:
            update = StateUpdateMessage.from_queue_message(json.loads(str(message)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Invalid state update message: {e}")
            await self._receiver.dead_letter_message(
                message,
                reason="invalid_message",
                error_description=str(e),
            )
            self.messages_failed += 1
            return

        try:
            await self.processor.apply(update)
        except (KeyError, ValueError) as e:
            logger.error(f"Could not apply state update {update.message_id}: {e}")
            await self._receiver.dead_letter_message(
                message,
                reason="unappliable_update",
                error_description=str(e),
            )
            self.messages_failed += 1
            return
        except Exception as e:
            logger.exception(f"Error applying state update {update.message_id}: {e}")
            await self._receiver.abandon_message(message)
            self.messages_failed += 1
            return

        await self._receiver.complete_message(message)
        self.messages_applied += 1


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

async def run_consumer(
    config: MessagingConfig,
    processor: StateUpdateProcessor,
    lock_service: Optional[LockService] = None,
) -> None:
    """Run a consumer until SIGTERM or SIGINT."""
    consumer = StateUpdateConsumer(config, processor, lock_service)

    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(consumer.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await consumer.run()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "StateUpdateConsumer",
    "run_consumer",
]
