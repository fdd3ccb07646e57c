# ============================================================================
# COLLECTION TOPOLOGY MODELS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core model - Collection / Shard / Replica records
# PURPOSE: The versioned Collection record stored in the distributed store
# CREATED: 18 OCT 2026
# EXPORTS: Replica, Shard, Collection, build_core_name, build_core_node_name
# DEPENDENCIES: pydantic
# ============================================================================
"""
Collection Topology Models

A Collection record is always stored as ONE complete JSON document at
/collections/<name>/state.json. Writers never patch individual fields:
they read the record, apply a pure mutation to a copy, and write the
whole copy back. A crash between two writes therefore only ever leaves a
structurally valid prior or next record.

Key concept:
- Collection = named, sharded, replicated dataset
- Shard      = disjoint partition of the key space
- Replica    = one serving unit of a shard, hosted by one node
"""

from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from core.contracts import ReplicaState, ReplicaType, RouterName, ShardState


def build_core_name(collection: str, shard: str, replica_type: ReplicaType, number: int) -> str:
    """Core name for the Nth replica of a collection: products_shard1_replica_n3."""
    return f"{collection}_{shard}_replica_{replica_type.suffix}{number}"


def build_core_node_name(number: int) -> str:
    """Replica record name: core_node3."""
    return f"core_node{number}"


class Replica(BaseModel):
    """
    One replica of a shard.

    Created DOWN; the owning node reports later transitions.
    """

    name: str = Field(..., max_length=64, description="Replica record name (core_node<n>)")
    core: str = Field(..., max_length=256, description="Core name, unique within the collection")
    shard: str = Field(..., max_length=128)
    node_name: str = Field(..., max_length=256, description="Owning live node")
    base_url: str = Field(..., max_length=512)
    type: ReplicaType = Field(default=ReplicaType.NRT)
    state: ReplicaState = Field(default=ReplicaState.DOWN)
    leader: bool = False


class Shard(BaseModel):
    """A shard and its replicas, keyed by replica record name."""

    name: str = Field(..., max_length=128)
    range: Optional[str] = Field(
        default=None,
        description="Hex hash range 'start-end' (hash routing only)"
    )
    state: ShardState = Field(default=ShardState.ACTIVE)
    replicas: Dict[str, Replica] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        """Shard is serving: ACTIVE and at least one ACTIVE replica."""
        return self.state == ShardState.ACTIVE and any(
            r.state == ReplicaState.ACTIVE for r in self.replicas.values()
        )


class Collection(BaseModel):
    """
    Complete Collection record.

    Stored at: /collections/<name>/state.json
    znode_version is the store version the record was read at; it is not
    part of the stored document.
    """

    name: str = Field(..., max_length=256)
    router: RouterName = Field(default=RouterName.COMPOSITE_ID)
    shards: Dict[str, Shard] = Field(default_factory=dict)
    config_name: str = Field(..., max_length=256)

    # Direct-conditional protocol when True, legacy queue otherwise.
    # Fixed for the collection's lifetime.
    per_replica_state: bool = False

    max_shards_per_node: int = Field(default=1, description="-1 means unbounded")
    nrt_replicas: int = Field(default=1, ge=0)
    tlog_replicas: int = Field(default=0, ge=0)
    pull_replicas: int = Field(default=0, ge=0)

    # Colocation
    with_collection: Optional[str] = None
    colocated_with: Optional[str] = None

    properties: Dict[str, str] = Field(default_factory=dict)

    znode_version: int = Field(default=-1, exclude=True)

    # =========================================================================
    # READ HELPERS
    # =========================================================================

    def replicas(self) -> Iterator[Replica]:
        """Iterate every replica across shards."""
        for shard in self.shards.values():
            yield from shard.replicas.values()

    def replicas_on_node(self, node_name: str) -> List[Replica]:
        """Replicas hosted by a node."""
        return [r for r in self.replicas() if r.node_name == node_name]

    def replica_by_core(self, core: str) -> Optional[Replica]:
        """Find a replica by core name."""
        for replica in self.replicas():
            if replica.core == core:
                return replica
        return None

    def active_shards(self) -> List[Shard]:
        """Shards in ACTIVE shard state."""
        return [s for s in self.shards.values() if s.state == ShardState.ACTIVE]

    def next_replica_number(self) -> int:
        """Smallest number above every core_node<n> already present."""
        highest = 0
        for replica in self.replicas():
            suffix = replica.name.replace("core_node", "", 1)
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest + 1

    def all_replicas_in_state(self, state: ReplicaState) -> bool:
        """True if every replica reports the given state (False if none)."""
        replicas = list(self.replicas())
        return bool(replicas) and all(r.state == state for r in replicas)

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_record(self) -> Dict[str, Any]:
        """Full JSON document for the store."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, data: Dict[str, Any], version: int = -1) -> "Collection":
        """Parse a stored document, remembering the version it was read at."""
        collection = cls.model_validate(data)
        collection.znode_version = version
        return collection


__all__ = [
    "Replica",
    "Shard",
    "Collection",
    "build_core_name",
    "build_core_node_name",
]
