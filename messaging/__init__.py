# ============================================================================
# MESSAGING MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Azure Service Bus integration
# PURPOSE: Ordered state-update queue
# CREATED: 18 OCT 2026
# ============================================================================
"""
Messaging Module

Provides Azure Service Bus integration for the legacy state-update queue.

Usage:
    from messaging import get_publisher

    publisher = await get_publisher()
    await publisher.publish(StateUpdateMessage.delete("products"))
"""

from .publisher import (
    StateUpdatePublisher,
    create_service_bus_client,
    get_publisher,
    close_publisher,
)
from .config import MessagingConfig

__all__ = [
    "StateUpdatePublisher",
    "create_service_bus_client",
    "get_publisher",
    "close_publisher",
    "MessagingConfig",
]
