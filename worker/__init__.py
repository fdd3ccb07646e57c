# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Legacy state-update consumer
# PURPOSE: Apply queued cluster-state mutations in order
# CREATED: 18 OCT 2026
# ============================================================================
"""
Worker Module

Components of the single active state updater:
- state_updater: applies one StateUpdateMessage to the store
- consumer: Service Bus session consumer guarded by an advisory lock
- main: process entry point
"""

from worker.state_updater import StateUpdateProcessor
from worker.consumer import StateUpdateConsumer, run_consumer

__all__ = [
    "StateUpdateProcessor",
    "StateUpdateConsumer",
    "run_consumer",
]
