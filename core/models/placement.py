# ============================================================================
# PLACEMENT MODELS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core model - Placement request/result values
# PURPOSE: Immutable inputs and outputs of the assignment strategy
# CREATED: 18 OCT 2026
# ============================================================================
"""
Placement Models

Produced and consumed within one orchestration run; never persisted.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from core.contracts import ReplicaType


class ReplicaPosition(BaseModel):
    """One placed replica: (shard, type, node)."""

    shard: str
    index: int = Field(..., ge=0, description="Slot index within the shard")
    type: ReplicaType
    node: str

    model_config = {"frozen": True}


class AssignRequest(BaseModel):
    """
    Desired counts per type per shard over a candidate node list.

    max_shards_per_node=None means unbounded.
    """

    collection: str
    shard_names: List[str]
    nrt_replicas: int = Field(default=0, ge=0)
    tlog_replicas: int = Field(default=0, ge=0)
    pull_replicas: int = Field(default=0, ge=0)
    nodes: List[str] = Field(default_factory=list)
    max_shards_per_node: Optional[int] = Field(default=1, ge=1)

    model_config = {"frozen": True}

    @property
    def total_replicas_per_shard(self) -> int:
        return self.nrt_replicas + self.tlog_replicas + self.pull_replicas

    @property
    def requested_total(self) -> int:
        return len(self.shard_names) * self.total_replicas_per_shard

    def slots(self) -> List[ReplicaType]:
        """Replica types for one shard, in NRT, TLOG, PULL order."""
        return (
            [ReplicaType.NRT] * self.nrt_replicas
            + [ReplicaType.TLOG] * self.tlog_replicas
            + [ReplicaType.PULL] * self.pull_replicas
        )


__all__ = ["ReplicaPosition", "AssignRequest"]
