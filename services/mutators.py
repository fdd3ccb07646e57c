# ============================================================================
# COLLECTION STATE MUTATORS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Pure Collection record transformations
# PURPOSE: One set of mutations shared by the queued and direct writers
# CREATED: 18 OCT 2026
# ============================================================================
"""
Collection State Mutators

Every function takes a Collection record and returns a NEW record. Inputs
are never modified, so a failed conditional write can simply re-read and
re-apply. The queue consumer and the direct writer call the same functions,
which keeps the two write protocols from drifting apart.
"""

from typing import Any, Dict, List, Optional

from core.contracts import ReplicaState, ReplicaType, RouterName, StateUpdateOperation
from core.models import Collection, Replica, Shard, StateUpdateMessage, build_core_node_name

# Collection attributes a modifycollection message may change
MODIFIABLE_PROPERTIES = {
    "with_collection",
    "colocated_with",
    "max_shards_per_node",
    "properties",
}


def _copy(collection: Collection) -> Collection:
    return collection.model_copy(deep=True)


def build_collection(
    name: str,
    router: RouterName,
    shard_ranges: Dict[str, Optional[str]],
    config_name: str,
    per_replica_state: bool = False,
    max_shards_per_node: int = 1,
    nrt_replicas: int = 1,
    tlog_replicas: int = 0,
    pull_replicas: int = 0,
    with_collection: Optional[str] = None,
    properties: Optional[Dict[str, str]] = None,
) -> Collection:
    """Initial record: every shard present, no replicas."""
    return Collection(
        name=name,
        router=router,
        shards={
            shard: Shard(name=shard, range=shard_range)
            for shard, shard_range in shard_ranges.items()
        },
        config_name=config_name,
        per_replica_state=per_replica_state,
        max_shards_per_node=max_shards_per_node,
        nrt_replicas=nrt_replicas,
        tlog_replicas=tlog_replicas,
        pull_replicas=pull_replicas,
        with_collection=with_collection,
        properties=dict(properties or {}),
    )


def add_replica(
    collection: Collection,
    shard: str,
    core: str,
    node_name: str,
    base_url: str,
    replica_type: ReplicaType = ReplicaType.NRT,
    state: ReplicaState = ReplicaState.DOWN,
    replica_name: Optional[str] = None,
) -> Collection:
    """
    Add one replica.

    Re-adding an existing core returns an unchanged copy. The replica
    record name defaults to the next free core_node<n>.

    Raises:
        KeyError: shard does not exist
    """
    updated = _copy(collection)
    if updated.replica_by_core(core) is not None:
        return updated
    if shard not in updated.shards:
        raise KeyError(f"Collection {collection.name} has no shard {shard}")

    name = replica_name or build_core_node_name(updated.next_replica_number())
    target = updated.shards[shard]
    target.replicas[name] = Replica(
        name=name,
        core=core,
        shard=shard,
        node_name=node_name,
        base_url=base_url,
        type=replica_type,
        state=state,
        leader=False,
    )
    return updated


def modify_collection(collection: Collection, props: Dict[str, Any]) -> Collection:
    """
    Change collection-level attributes.

    Unknown keys are ignored. A None value clears an optional attribute.
    """
    updated = _copy(collection)
    for key, value in props.items():
        if key not in MODIFIABLE_PROPERTIES:
            continue
        if key == "properties":
            merged = dict(updated.properties)
            merged.update({k: str(v) for k, v in (value or {}).items()})
            updated.properties = merged
        else:
            setattr(updated, key, value)
    return updated


def set_replica_state(collection: Collection, core: str, state: ReplicaState) -> Collection:
    """
    Record a replica state report.

    The first leader-capable replica to become ACTIVE in a shard without a
    leader is marked leader. Unknown cores return an unchanged copy.
    """
    updated = _copy(collection)
    replica = updated.replica_by_core(core)
    if replica is None:
        return updated

    replica.state = state
    if state == ReplicaState.ACTIVE and replica.type.can_lead():
        shard = updated.shards[replica.shard]
        if not any(r.leader for r in shard.replicas.values()):
            replica.leader = True
    elif state != ReplicaState.ACTIVE:
        replica.leader = False
    return updated


def apply_replica_states(collection: Collection, states: Dict[str, ReplicaState]) -> Collection:
    """Fold per-replica status records (replica name -> state) into the record."""
    updated = collection
    by_name = {r.name: r.core for r in collection.replicas()}
    for replica_name, state in states.items():
        core = by_name.get(replica_name)
        if core is not None:
            updated = set_replica_state(updated, core, state)
    return updated


def apply_message(
    current: Optional[Collection],
    message: StateUpdateMessage,
) -> Optional[Collection]:
    """
    Apply one queued mutation.

    Returns:
        The new record, or None when the collection should not exist
        (deleted, or never created)

    Raises:
        ValueError: malformed payload
    """
    op = message.operation

    if op == StateUpdateOperation.CREATE:
        if current is not None:
            return current
        return Collection.model_validate(message.payload["collection"])

    if op == StateUpdateOperation.DELETE:
        return None

    if current is None:
        return None

    if op == StateUpdateOperation.ADD_REPLICA:
        payload = message.payload
        return add_replica(
            current,
            shard=payload["shard"],
            core=payload["core"],
            node_name=payload["node_name"],
            base_url=payload["base_url"],
            replica_type=ReplicaType(payload.get("type", ReplicaType.NRT.value)),
            state=ReplicaState(payload.get("state", ReplicaState.DOWN.value)),
        )

    if op == StateUpdateOperation.MODIFY_COLLECTION:
        return modify_collection(current, message.payload.get("props", {}))

    if op == StateUpdateOperation.STATE:
        return set_replica_state(
            current,
            core=message.payload["core"],
            state=ReplicaState(message.payload["state"]),
        )

    raise ValueError(f"Unsupported state update operation: {op}")


def replica_cores(collection: Collection) -> List[str]:
    return [r.core for r in collection.replicas()]


__all__ = [
    "MODIFIABLE_PROPERTIES",
    "build_collection",
    "add_replica",
    "modify_collection",
    "set_replica_state",
    "apply_replica_states",
    "apply_message",
    "replica_cores",
]
