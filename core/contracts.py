# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Foundation - Core enums shared by every layer
# PURPOSE: Replica types/states, routing modes, queued operations, error codes
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: ReplicaType, ReplicaState, ShardState, RouterName, StateUpdateOperation,
#          RequestState, ErrorCode
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the collection provisioning system.

These enums cross every boundary:
- Distributed state store (JSON records)
- State-update queue (Azure Service Bus)
- Remote core-admin calls (query parameters)
- Python (internal processing)
"""

from enum import Enum


# ============================================================================
# REPLICA ENUMS
# ============================================================================

class ReplicaType(str, Enum):
    """
    Replica flavours.

    NRT and TLOG replicas can become shard leader; PULL replicas only
    replicate from the leader.
    """
    NRT = "NRT"      # Near-real-time, indexes locally
    TLOG = "TLOG"    # Transaction log only, can become leader
    PULL = "PULL"    # Read replica, pulls segments from leader

    @property
    def suffix(self) -> str:
        """Single letter used in generated core names (n, t, p)."""
        return self.value[0].lower()

    def can_lead(self) -> bool:
        """Check if this replica type is a leader candidate."""
        return self in (ReplicaType.NRT, ReplicaType.TLOG)


class ReplicaState(str, Enum):
    """
    Replica lifecycle states, reported by the owning node.

    State transitions:
        DOWN -> RECOVERING -> ACTIVE
                           -> FAILED
    """
    DOWN = "down"
    RECOVERING = "recovering"
    ACTIVE = "active"
    FAILED = "failed"


class ShardState(str, Enum):
    """Shard (slice) states; new collections create ACTIVE shards."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    CONSTRUCTION = "construction"


# ============================================================================
# ROUTING
# ============================================================================

class RouterName(str, Enum):
    """Document routing modes for a collection."""
    IMPLICIT = "implicit"        # Shard names come from a caller-supplied list
    COMPOSITE_ID = "compositeId" # Hash-range routing over N generated shards

    @classmethod
    def parse(cls, value: str) -> "RouterName":
        """Parse a router name, raising ValueError for unknown routers."""
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown router: {value}")


# ============================================================================
# QUEUED STATE UPDATES
# ============================================================================

class StateUpdateOperation(str, Enum):
    """Operations carried on the legacy state-update queue."""
    CREATE = "create"
    ADD_REPLICA = "addreplica"
    MODIFY_COLLECTION = "modifycollection"
    STATE = "state"
    DELETE = "delete"


class RequestState(str, Enum):
    """Status of an async-correlated admin request."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_FOUND = "notfound"


# ============================================================================
# ERROR CODES
# ============================================================================

class ErrorCode(int, Enum):
    """Client-visible error codes (mirrors HTTP status semantics)."""
    BAD_REQUEST = 400
    NOT_FOUND = 404
    SERVER_ERROR = 500
    INVALID_STATE = 510


__all__ = [
    "ReplicaType",
    "ReplicaState",
    "ShardState",
    "RouterName",
    "StateUpdateOperation",
    "RequestState",
    "ErrorCode",
]
