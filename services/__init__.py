# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service layer
# PURPOSE: Planning, placement, state writing and remote provisioning
# CREATED: 18 OCT 2026
# ============================================================================
"""
Services Module

Building blocks driven by the collection commands in orchestrator/.

    topology        shard names and hash ranges
    assignment      placement strategies, capacity check, session leases
    cluster_state   immutable snapshots, overlay view, polling reader
    mutators        pure Collection record transformations
    state_writer    queued and direct write protocols
    replica_states  waits on replica ACTIVE reports
    configset_service  configuration bundle resolution
    provisioning    core-admin client and parallel tracker
"""

from .topology import (
    plan_shards,
    plan_shard_ranges,
    partition_hash_range,
    check_replica_type_counts,
)
from .cluster_state import ClusterState, OverlayClusterState, ClusterStateReader
from .assignment import (
    PLACEMENT_STRATEGIES,
    ReplicaAssigner,
    SessionManager,
    check_capacity,
    resolve_candidate_nodes,
)
from . import mutators
from .state_writer import QueuedStateWriter, DirectStateWriter, StateWriters
from .replica_states import ReplicaStateMonitor
from .configset_service import ConfigSetService, ResolvedConfig
from .provisioning import (
    CoreAdminClient,
    CoreCreateRequest,
    ProvisioningResult,
    ProvisioningTracker,
)

__all__ = [
    "plan_shards",
    "plan_shard_ranges",
    "partition_hash_range",
    "check_replica_type_counts",
    "ClusterState",
    "OverlayClusterState",
    "ClusterStateReader",
    "PLACEMENT_STRATEGIES",
    "ReplicaAssigner",
    "SessionManager",
    "check_capacity",
    "resolve_candidate_nodes",
    "mutators",
    "QueuedStateWriter",
    "DirectStateWriter",
    "StateWriters",
    "ReplicaStateMonitor",
    "ConfigSetService",
    "ResolvedConfig",
    "CoreAdminClient",
    "CoreCreateRequest",
    "ProvisioningResult",
    "ProvisioningTracker",
]
