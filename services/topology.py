# ============================================================================
# TOPOLOGY PLANNER
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Shard naming and hash ranges
# PURPOSE: Derive the ordered shard set and validate replica type counts
# CREATED: 18 OCT 2026
# ============================================================================
"""
Topology Planner

Implicit routing:
    shard names come from the caller's list, in the given order.
Hash (compositeId) routing:
    numShards > 0 is required; names are shard1..shardN and each shard gets
    a contiguous slice of the signed 32-bit hash space.

Hash ranges are rendered as unsigned hex "start-end":
    1 shard  -> ["80000000-7fffffff"]
    2 shards -> ["80000000-ffffffff", "0-7fffffff"]
"""

from typing import Dict, List, Optional

from core.contracts import RouterName
from core.errors import PreconditionViolation
from core.outcome import StepOutcome

HASH_MIN = -(2 ** 31)
HASH_MAX = 2 ** 31 - 1

# Boundaries are rounded to 16-bit hash domains while the step is large enough
_ROUND_BITS = 16
_ROUND_MASK = 0x0000FFFF


def format_hash(value: int) -> str:
    """Render a signed 32-bit hash as unsigned hex without padding."""
    return format(value & 0xFFFFFFFF, "x")


def partition_hash_range(partitions: int, low: int = HASH_MIN, high: int = HASH_MAX) -> List[str]:
    """
    Split [low, high] into contiguous ranges.

    The last range always ends exactly on high.
    """
    if partitions <= 0:
        return []

    step = max(1, (high - low) // partitions)
    round_boundaries = step >= (1 << _ROUND_BITS) * 16
    increment = 1 << _ROUND_BITS

    ranges: List[str] = []
    start = low
    end = start
    target_start = low

    while end < high:
        target_end = target_start + step
        end = target_end

        if round_boundaries and (end & _ROUND_MASK) != _ROUND_MASK:
            round_down = (end | _ROUND_MASK) - increment
            round_up = (end | _ROUND_MASK) + increment
            if end - round_down < round_up - end and round_down > start:
                end = round_down
            else:
                end = round_up

        if len(ranges) == partitions - 1:
            end = high

        ranges.append(f"{format_hash(start)}-{format_hash(end)}")
        start = end + 1
        target_start = target_end + 1

    return ranges


def plan_shards(
    router: RouterName,
    shard_names: Optional[List[str]] = None,
    num_shards: Optional[int] = None,
) -> StepOutcome[List[str]]:
    """
    Ordered shard names for a new collection.

    Returns:
        StepOutcome with the names, or PreconditionViolation
    """
    if router == RouterName.IMPLICIT:
        names: List[str] = []
        for name in shard_names or []:
            if name not in names:
                names.append(name)
        if not names:
            return StepOutcome.failure(
                PreconditionViolation("shards is a required param when using the implicit router")
            )
        return StepOutcome.success(names)

    if num_shards is None or num_shards <= 0:
        return StepOutcome.failure(
            PreconditionViolation("numShards is a required param (when using compositeId router)")
        )
    return StepOutcome.success([f"shard{i}" for i in range(1, num_shards + 1)])


def plan_shard_ranges(router: RouterName, shard_names: List[str]) -> Dict[str, Optional[str]]:
    """Shard name -> hash range (None for every shard under implicit routing)."""
    if router != RouterName.COMPOSITE_ID:
        return {name: None for name in shard_names}
    return dict(zip(shard_names, partition_hash_range(len(shard_names))))


def check_replica_type_counts(nrt: int, tlog: int, pull: int) -> Optional[PreconditionViolation]:
    """
    Validate replica counts.

    At least one leader-capable replica (NRT or TLOG) is required; PULL
    replicas alone have nothing to replicate from.
    """
    if nrt < 0 or tlog < 0 or pull < 0:
        return PreconditionViolation(
            f"Replica counts must be non-negative: nrt={nrt}, tlog={tlog}, pull={pull}"
        )
    if nrt + tlog <= 0:
        return PreconditionViolation(
            f"nrtReplicas + tlogReplicas must be greater than 0 "
            f"(nrt={nrt}, tlog={tlog}, pull={pull})"
        )
    return None


__all__ = [
    "HASH_MIN",
    "HASH_MAX",
    "format_hash",
    "partition_hash_range",
    "plan_shards",
    "plan_shard_ranges",
    "check_replica_type_counts",
]
