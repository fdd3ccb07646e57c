# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for collection provisioning.
Records stored in the distributed state store are complete JSON documents
produced by model_dump(mode="json").
"""

from core.models.collection import (
    Collection,
    Shard,
    Replica,
    build_core_name,
    build_core_node_name,
)
from core.models.aliases import Aliases
from core.models.request import CreateCollectionRequest
from core.models.placement import ReplicaPosition, AssignRequest
from core.models.state_update import StateUpdateMessage
from core.models.response import CoreAdminResponse, CreateCollectionResult, RequestStatus
from core.models.lease import AssignmentLease

__all__ = [
    # Topology
    "Collection",
    "Shard",
    "Replica",
    "build_core_name",
    "build_core_node_name",
    "Aliases",
    # Command
    "CreateCollectionRequest",
    # Placement
    "ReplicaPosition",
    "AssignRequest",
    "AssignmentLease",
    # Queue
    "StateUpdateMessage",
    # Responses
    "CoreAdminResponse",
    "CreateCollectionResult",
    "RequestStatus",
]
