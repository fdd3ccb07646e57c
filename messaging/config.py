# ============================================================================
# MESSAGING CONFIGURATION
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Service Bus configuration
# PURPOSE: Centralize state-update queue configuration
# CREATED: 18 OCT 2026
# ============================================================================
"""
Messaging Configuration

Configuration for the Azure Service Bus state-update queue.
Supports both connection string and managed identity authentication.

The queue must be session-enabled. Every message carries the same session
id, so Service Bus delivers them in order to one session receiver.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class MessagingConfig:
    """
    Configuration for Azure Service Bus messaging.

    Loaded from environment variables.
    """
    # Connection - either connection_string OR fully_qualified_namespace
    connection_string: Optional[str] = None
    fully_qualified_namespace: Optional[str] = None

    # Managed identity settings
    use_managed_identity: bool = False
    managed_identity_client_id: Optional[str] = None

    # Queue (MUST be set explicitly - no default)
    state_update_queue: str = ""
    state_update_session_id: str = "cluster-state"

    # Timeouts
    send_timeout_seconds: int = 30
    receive_timeout_seconds: int = 60

    # Messages older than this are dead-lettered by Service Bus
    message_ttl_seconds: int = 3600

    @classmethod
    def from_env(cls) -> "MessagingConfig":
        """
        Load configuration from environment variables.

        For connection string auth:
            STATE_SERVICEBUS_CONNECTION_STRING: Service Bus connection string

        For managed identity auth:
            USE_MANAGED_IDENTITY: Set to "true" to use managed identity
            STATE_SERVICEBUS_FQDN: Fully qualified namespace
            AZURE_CLIENT_ID: Optional client ID for user-assigned managed identity

        Common:
            STATE_UPDATE_QUEUE: State-update queue (REQUIRED)
            STATE_UPDATE_SESSION_ID: Ordering session (default "cluster-state")
        """
        queue = os.environ.get("STATE_UPDATE_QUEUE")
        if not queue:
            raise ValueError("STATE_UPDATE_QUEUE environment variable is required")

        session_id = os.environ.get("STATE_UPDATE_SESSION_ID", "cluster-state")
        use_mi = os.environ.get("USE_MANAGED_IDENTITY", "").lower() == "true"

        if use_mi:
            fqdn = os.environ.get("STATE_SERVICEBUS_FQDN")
            if not fqdn:
                raise ValueError(
                    "STATE_SERVICEBUS_FQDN required when USE_MANAGED_IDENTITY=true"
                )
            return cls(
                use_managed_identity=True,
                fully_qualified_namespace=fqdn,
                managed_identity_client_id=os.environ.get("AZURE_CLIENT_ID"),
                state_update_queue=queue,
                state_update_session_id=session_id,
            )

        connection_string = os.environ.get("STATE_SERVICEBUS_CONNECTION_STRING")
        if not connection_string:
            raise ValueError(
                "STATE_SERVICEBUS_CONNECTION_STRING required (or set USE_MANAGED_IDENTITY=true)"
            )
        return cls(
            connection_string=connection_string,
            state_update_queue=queue,
            state_update_session_id=session_id,
        )
