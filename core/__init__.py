# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================

from core.contracts import (
    ReplicaType,
    ReplicaState,
    ShardState,
    RouterName,
    StateUpdateOperation,
    RequestState,
    ErrorCode,
)
from core.errors import (
    CollectionAdminError,
    PreconditionViolation,
    ConfigurationNotFound,
    CapacityExceeded,
    ProvisioningFailure,
    ServerError,
    StateWaitTimeout,
)
from core.models import (
    Collection,
    Shard,
    Replica,
    Aliases,
    CreateCollectionRequest,
    ReplicaPosition,
    AssignRequest,
    StateUpdateMessage,
    CreateCollectionResult,
)

__all__ = [
    # Enums
    "ReplicaType",
    "ReplicaState",
    "ShardState",
    "RouterName",
    "StateUpdateOperation",
    "RequestState",
    "ErrorCode",
    # Errors
    "CollectionAdminError",
    "PreconditionViolation",
    "ConfigurationNotFound",
    "CapacityExceeded",
    "ProvisioningFailure",
    "ServerError",
    "StateWaitTimeout",
    # Models
    "Collection",
    "Shard",
    "Replica",
    "Aliases",
    "CreateCollectionRequest",
    "ReplicaPosition",
    "AssignRequest",
    "StateUpdateMessage",
    "CreateCollectionResult",
]
