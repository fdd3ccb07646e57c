# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Collection admin commands
# PURPOSE: Create, delete and extend collections across nodes
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Module

Collection admin commands built on the services layer.

Usage:
    from orchestrator import CommandContext, CreateCollectionCommand

    ctx = CommandContext.build(store, publisher, core_admin, LockService(pool))
    result, error = await CreateCollectionCommand(ctx).execute(request)
"""

from .context import CommandContext
from .create_collection import CreateCollectionCommand, CreateRun
from .delete_collection import DeleteCollectionCommand
from .add_replica import AddReplicaCommand

__all__ = [
    "CommandContext",
    "CreateCollectionCommand",
    "CreateRun",
    "DeleteCollectionCommand",
    "AddReplicaCommand",
]
