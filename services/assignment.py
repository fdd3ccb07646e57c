# ============================================================================
# REPLICA ASSIGNMENT STRATEGY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Replica placement under capacity constraints
# PURPOSE: Map shards x replica slots onto live nodes; session leases
# CREATED: 18 OCT 2026
# ============================================================================
"""
Replica Assignment Strategy

Placement algorithms live in a strategy table keyed by policy id. Every
strategy has the same contract:

    strategy(request, nodes, load) -> List[ReplicaPosition]

    request: AssignRequest (shards, per-type counts, max per node)
    nodes:   ordered candidate node names (order is the tie-break)
    load:    node name -> cores already hosted or reserved

Strategies are pure. Capacity is validated before any strategy runs, so a
strategy never has to fail.

Policies:
    least_loaded  For each slot pick the eligible node hosting the fewest
                  cores, preferring a node without a replica of the same
                  shard. Default.
    round_robin   Sort nodes by load and cycle through them.

Session leases:
    Each orchestration run holds an AssignmentLease for its whole duration.
    Placements it computes are reserved on the lease, and other runs count
    reserved cores as load until the lease is released.
"""

import random
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from core.config import get_defaults
from core.errors import CapacityExceeded, PreconditionViolation
from core.logging import get_logger
from core.models import AssignmentLease, AssignRequest, ReplicaPosition
from core.outcome import StepOutcome
from repositories import ClusterPropsRepository, PLACEMENT_POLICY
from services.cluster_state import ClusterView

logger = get_logger(__name__)

PlacementStrategy = Callable[[AssignRequest, List[str], Dict[str, int]], List[ReplicaPosition]]


# ============================================================================
# STRATEGIES
# ============================================================================

def assign_least_loaded(
    request: AssignRequest,
    nodes: List[str],
    load: Dict[str, int],
) -> List[ReplicaPosition]:
    """Fewest cores first, distinct node per shard preferred, then node order."""
    load = {node: load.get(node, 0) for node in nodes}
    placed: Dict[str, int] = {node: 0 for node in nodes}
    order = {node: i for i, node in enumerate(nodes)}
    limit = request.max_shards_per_node

    positions: List[ReplicaPosition] = []
    for shard in request.shard_names:
        shard_nodes: Set[str] = set()
        for index, replica_type in enumerate(request.slots()):
            eligible = [n for n in nodes if limit is None or placed[n] < limit]
            node = min(eligible, key=lambda n: (n in shard_nodes, load[n], order[n]))
            positions.append(
                ReplicaPosition(shard=shard, index=index, type=replica_type, node=node)
            )
            shard_nodes.add(node)
            load[node] += 1
            placed[node] += 1
    return positions


def assign_round_robin(
    request: AssignRequest,
    nodes: List[str],
    load: Dict[str, int],
) -> List[ReplicaPosition]:
    """Cycle through nodes sorted by load (stable, so ties keep node order)."""
    ordered = sorted(nodes, key=lambda n: load.get(n, 0))
    positions: List[ReplicaPosition] = []
    i = 0
    for shard in request.shard_names:
        for index, replica_type in enumerate(request.slots()):
            positions.append(
                ReplicaPosition(
                    shard=shard,
                    index=index,
                    type=replica_type,
                    node=ordered[i % len(ordered)],
                )
            )
            i += 1
    return positions


PLACEMENT_STRATEGIES: Dict[str, PlacementStrategy] = {
    "least_loaded": assign_least_loaded,
    "round_robin": assign_round_robin,
}


# ============================================================================
# CONSTRAINTS
# ============================================================================

def resolve_candidate_nodes(
    live_nodes: List[str],
    create_node_set: Optional[List[str]] = None,
    shuffle: bool = True,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """
    Candidate nodes for placement.

    Without a createNodeSet every live node is a candidate, in sorted order.
    With one, only its live members are, optionally shuffled. The EMPTY
    sentinel yields no candidates.
    """
    if create_node_set is None:
        return sorted(live_nodes)

    if create_node_set == [get_defaults().cluster.create_node_set_empty]:
        return []

    live = set(live_nodes)
    candidates = [node for node in create_node_set if node in live]
    if shuffle:
        (rng or random.Random()).shuffle(candidates)
    return candidates


def check_capacity(request: AssignRequest) -> Optional[CapacityExceeded]:
    """
    maxShardsPerNode * |nodes| must cover shards * replicas per shard.

    Returns:
        CapacityExceeded carrying max allowed vs requested, or None
    """
    if request.max_shards_per_node is None:
        return None

    max_allowed = request.max_shards_per_node * len(request.nodes)
    requested = request.requested_total
    if max_allowed >= requested:
        return None

    return CapacityExceeded(
        f"Cannot create collection {request.collection}. Value of maxShardsPerNode is "
        f"{request.max_shards_per_node}, and the number of nodes currently live or live "
        f"and part of your createNodeSet is {len(request.nodes)}. This allows a maximum of "
        f"{max_allowed} to be created. Value of numShards is {len(request.shard_names)}, "
        f"value of nrtReplicas is {request.nrt_replicas}, value of tlogReplicas is "
        f"{request.tlog_replicas} and value of pullReplicas is {request.pull_replicas}. "
        f"This requires {requested} shards to be created (higher than the allowed number)",
        max_allowed=max_allowed,
        requested=requested,
    )


# ============================================================================
# SESSION LEASES
# ============================================================================

class SessionManager:
    """
    In-flight capacity reservations of concurrent orchestration runs.

    One instance per process. Runs in one event loop, so plain dict updates
    are safe between awaits.
    """

    def __init__(self, lease_ttl_sec: int = 600):
        self.lease_ttl_sec = lease_ttl_sec
        self._leases: Dict[str, AssignmentLease] = {}

    @property
    def active_leases(self) -> List[AssignmentLease]:
        return list(self._leases.values())

    def acquire(self, holder: str) -> AssignmentLease:
        lease = AssignmentLease(holder=holder, lease_ttl_sec=self.lease_ttl_sec)
        self._leases[lease.lease_id] = lease
        logger.debug(f"Acquired assignment lease {lease.lease_id} for {holder}")
        return lease

    def release(self, lease: AssignmentLease) -> None:
        """
        Release a lease.

        Raises:
            RuntimeError: lease was already released
        """
        if lease.is_released:
            raise RuntimeError(f"Assignment lease {lease.lease_id} released twice")
        lease.released_at = datetime.now(timezone.utc)
        self._leases.pop(lease.lease_id, None)
        logger.debug(f"Released assignment lease {lease.lease_id} for {lease.holder}")

    @asynccontextmanager
    async def scope(self, holder: str) -> AsyncIterator[AssignmentLease]:
        """Hold a lease for the body of an async with block."""
        lease = self.acquire(holder)
        try:
            yield lease
        finally:
            self.release(lease)

    def in_flight_load(self, exclude: Optional[str] = None) -> Dict[str, int]:
        """Cores reserved per node by other live leases."""
        now = datetime.now(timezone.utc)
        load: Dict[str, int] = {}
        for lease_id, lease in list(self._leases.items()):
            if lease.is_expired(now):
                logger.warning(f"Dropping expired assignment lease {lease_id} ({lease.holder})")
                self._leases.pop(lease_id, None)
                continue
            if lease_id == exclude:
                continue
            for node, count in lease.reserved.items():
                load[node] = load.get(node, 0) + count
        return load


# ============================================================================
# ASSIGNER
# ============================================================================

class ReplicaAssigner:
    """Runs the selected placement strategy against a cluster view."""

    def __init__(
        self,
        sessions: SessionManager,
        cluster_props: Optional[ClusterPropsRepository] = None,
        strategies: Optional[Dict[str, PlacementStrategy]] = None,
    ):
        self.sessions = sessions
        self.cluster_props = cluster_props
        self.strategies = strategies or PLACEMENT_STRATEGIES

    async def resolve_policy(self, requested: Optional[str] = None) -> str:
        """Request policy, else cluster property, else the configured default."""
        if requested:
            return requested
        if self.cluster_props is not None:
            configured = await self.cluster_props.get(PLACEMENT_POLICY)
            if configured:
                return configured
        return get_defaults().cluster.default_placement_policy

    async def assign(
        self,
        request: AssignRequest,
        view: ClusterView,
        lease: AssignmentLease,
        policy: Optional[str] = None,
    ) -> StepOutcome[List[ReplicaPosition]]:
        """
        Compute placements and reserve them on the lease.

        Returns:
            StepOutcome with positions (empty when there are no candidate
            nodes), or CapacityExceeded / PreconditionViolation
        """
        if not request.nodes:
            logger.warning(
                f"No candidate nodes: creating collection {request.collection} without cores"
            )
            return StepOutcome.success([])

        capacity_error = check_capacity(request)
        if capacity_error is not None:
            logger.warning(capacity_error.message)
            return StepOutcome.failure(capacity_error)

        if request.total_replicas_per_shard > len(request.nodes):
            logger.warning(
                f"Specified number of replicas ({request.total_replicas_per_shard}) is higher "
                f"than the number of nodes ({len(request.nodes)}); replicas of the same shard "
                f"will share nodes"
            )

        policy_id = await self.resolve_policy(policy)
        strategy = self.strategies.get(policy_id)
        if strategy is None:
            return StepOutcome.failure(
                PreconditionViolation(
                    f"Unknown placement policy: {policy_id}",
                    details={"known": sorted(self.strategies)},
                )
            )

        load = view.cores_per_node()
        for node, count in self.sessions.in_flight_load(exclude=lease.lease_id).items():
            load[node] = load.get(node, 0) + count

        positions = strategy(request, list(request.nodes), load)
        for position in positions:
            lease.reserve(position.node)

        logger.info(
            f"Placed {len(positions)} replicas of {request.collection} "
            f"with policy {policy_id} on {len({p.node for p in positions})} nodes"
        )
        return StepOutcome.success(positions)


__all__ = [
    "PlacementStrategy",
    "PLACEMENT_STRATEGIES",
    "assign_least_loaded",
    "assign_round_robin",
    "resolve_candidate_nodes",
    "check_capacity",
    "SessionManager",
    "ReplicaAssigner",
]
