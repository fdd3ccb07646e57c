# ============================================================================
# COMMAND CONTEXT
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Orchestrator - Collaborator wiring
# PURPOSE: Everything a collection command needs, built once per process
# CREATED: 18 OCT 2026
# ============================================================================
"""
Command Context

Holds the repositories and services shared by the collection commands.
build() wires them from a state store, a state-update publisher, a core-admin
client and a lock service, so the API lifespan and the tests construct
commands the same way.
"""

from dataclasses import dataclass, field
from typing import Optional

from core.config import TimeoutDefaults, get_defaults
from infrastructure import LockService
from messaging import StateUpdatePublisher
from repositories import (
    AliasRepository,
    ClusterPropsRepository,
    CollectionRepository,
    ConfigSetRepository,
    DistributedStateStore,
    LiveNodeRepository,
    RequestStatusRepository,
)
from services import (
    ClusterStateReader,
    ConfigSetService,
    CoreAdminClient,
    DirectStateWriter,
    ProvisioningTracker,
    QueuedStateWriter,
    ReplicaAssigner,
    ReplicaStateMonitor,
    SessionManager,
    StateWriters,
)


@dataclass
class CommandContext:
    """Collaborators of the collection commands."""
    store: DistributedStateStore
    collections: CollectionRepository
    aliases: AliasRepository
    live_nodes: LiveNodeRepository
    request_status: RequestStatusRepository
    configsets: ConfigSetService
    reader: ClusterStateReader
    sessions: SessionManager
    assigner: ReplicaAssigner
    writers: StateWriters
    tracker: ProvisioningTracker
    monitor: ReplicaStateMonitor
    locks: LockService
    timeouts: TimeoutDefaults = field(default_factory=lambda: get_defaults().timeouts)

    @classmethod
    def build(
        cls,
        store: DistributedStateStore,
        publisher: StateUpdatePublisher,
        core_admin: CoreAdminClient,
        locks: LockService,
        timeouts: Optional[TimeoutDefaults] = None,
        sessions: Optional[SessionManager] = None,
    ) -> "CommandContext":
        timeouts = timeouts or get_defaults().timeouts
        collections = CollectionRepository(store)
        aliases = AliasRepository(store)
        live_nodes = LiveNodeRepository(store)
        request_status = RequestStatusRepository(store)
        reader = ClusterStateReader(collections, live_nodes, aliases)
        sessions = sessions or SessionManager()

        return cls(
            store=store,
            collections=collections,
            aliases=aliases,
            live_nodes=live_nodes,
            request_status=request_status,
            configsets=ConfigSetService(ConfigSetRepository(store)),
            reader=reader,
            sessions=sessions,
            assigner=ReplicaAssigner(sessions, ClusterPropsRepository(store)),
            writers=StateWriters(
                queued=QueuedStateWriter(publisher),
                direct=DirectStateWriter(collections, max_attempts=timeouts.cas_max_attempts),
            ),
            tracker=ProvisioningTracker(
                core_admin,
                request_status=request_status,
                timeout=timeouts.core_admin_timeout,
                poll_interval=timeouts.async_status_poll_interval,
            ),
            monitor=ReplicaStateMonitor(collections, reader),
            locks=locks,
            timeouts=timeouts,
        )


__all__ = ["CommandContext"]
