# ============================================================================
# STATE UPDATE PUBLISHER
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Service Bus state-update dispatch
# PURPOSE: Append cluster-state mutations to the ordered state-update queue
# CREATED: 18 OCT 2026
# ============================================================================
"""
State Update Publisher

Sends StateUpdateMessage instances to the session-enabled Service Bus
queue consumed by the single active state updater.
"""

import json
import logging
from datetime import timedelta
from typing import Optional

from azure.servicebus import ServiceBusMessage
from azure.servicebus.aio import ServiceBusClient, ServiceBusSender

from core.models import StateUpdateMessage
from .config import MessagingConfig

logger = logging.getLogger(__name__)

# Global publisher instance
_publisher: Optional["StateUpdatePublisher"] = None


def create_service_bus_client(config: MessagingConfig) -> ServiceBusClient:
    """Build a client using managed identity or a connection string."""
    if config.use_managed_identity:
        from azure.identity.aio import ManagedIdentityCredential

        if config.managed_identity_client_id:
            credential = ManagedIdentityCredential(client_id=config.managed_identity_client_id)
        else:
            credential = ManagedIdentityCredential()

        logger.info(
            f"Connecting to Service Bus via managed identity: "
            f"{config.fully_qualified_namespace}"
        )
        return ServiceBusClient(
            fully_qualified_namespace=config.fully_qualified_namespace,
            credential=credential,
        )

    logger.info("Connecting to Service Bus via connection string")
    return ServiceBusClient.from_connection_string(config.connection_string)


class StateUpdatePublisher:
    """Publisher for the legacy state-update queue."""

    def __init__(self, config: MessagingConfig):
        """
        Initialize state update publisher.

        Args:
            config: Messaging configuration
        """
        self.config = config
        self._client: Optional[ServiceBusClient] = None
        self._sender: Optional[ServiceBusSender] = None

    async def connect(self) -> None:
        """Establish connection to Service Bus."""
        if self._client is not None:
            return

        self._client = create_service_bus_client(self.config)
        self._sender = self._client.get_queue_sender(
            queue_name=self.config.state_update_queue
        )
        logger.info(f"Connected to Service Bus queue: {self.config.state_update_queue}")

    async def close(self) -> None:
        """Close connection to Service Bus."""
        if self._sender:
            await self._sender.close()
            self._sender = None

        if self._client:
            await self._client.close()
            self._client = None

        logger.info("Service Bus connection closed")

    def _to_service_bus_message(self, update: StateUpdateMessage) -> ServiceBusMessage:
        message = ServiceBusMessage(
            body=json.dumps(update.to_queue_message()),
            message_id=update.message_id,
            session_id=self.config.state_update_session_id,
            subject=update.operation.value,
            application_properties={
                "collection": update.collection,
                "operation": update.operation.value,
            },
        )
        message.time_to_live = timedelta(seconds=self.config.message_ttl_seconds)
        return message

    async def publish(self, update: StateUpdateMessage) -> bool:
        """
        Append one mutation to the queue.

        Returns:
            True if the message was accepted by Service Bus
        """
        if self._sender is None:
            await self.connect()

        try:
            await self._sender.send_messages(self._to_service_bus_message(update))
            logger.info(
                f"Queued state update {update.message_id} "
                f"op={update.operation.value} collection={update.collection}"
            )
            return True

        except Exception as e:
            logger.error(f"Failed to queue state update {update.message_id}: {e}")
            return False

    async def __aenter__(self) -> "StateUpdatePublisher":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def get_publisher() -> StateUpdatePublisher:
    """
    Get the global StateUpdatePublisher instance.

    Returns:
        StateUpdatePublisher instance (connected)
    """
    global _publisher

    if _publisher is None:
        config = MessagingConfig.from_env()
        _publisher = StateUpdatePublisher(config)
        await _publisher.connect()

    return _publisher


async def close_publisher() -> None:
    """Close the global StateUpdatePublisher instance."""
    global _publisher

    if _publisher is not None:
        await _publisher.close()
        _publisher = None
