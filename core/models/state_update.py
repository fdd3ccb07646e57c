# ============================================================================
# STATE UPDATE MESSAGE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core model - Legacy state-update queue message
# PURPOSE: Serialized cluster-state mutation consumed by the single updater
# CREATED: 18 OCT 2026
# PATTERNS: Mirrors TaskMessage.to_queue_message / from_queue_message
# ============================================================================
"""
State Update Message

Every mutation under the legacy protocol is one of these, appended to a
single ordered queue. Exactly one active consumer applies them, in
submission order. Senders never assume visibility; they poll the store.

Payloads by operation:
    create           {"collection": <Collection record>}
    addreplica       {"shard", "core", "node_name", "base_url", "type", "state"}
    modifycollection {"props": {...}}
    state            {"core", "state"}
    delete           {}
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from core.contracts import ReplicaState, ReplicaType, StateUpdateOperation
from core.models.collection import Collection


class StateUpdateMessage(BaseModel):
    """One queued cluster-state mutation."""

    message_id: str = Field(default_factory=lambda: uuid.uuid4().hex, max_length=64)
    operation: StateUpdateOperation
    collection: str = Field(..., max_length=256)
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # =========================================================================
    # CONSTRUCTORS
    # =========================================================================

    @classmethod
    def create(cls, collection: Collection) -> "StateUpdateMessage":
        return cls(
            operation=StateUpdateOperation.CREATE,
            collection=collection.name,
            payload={"collection": collection.to_record()},
        )

    @classmethod
    def add_replica(
        cls,
        collection: str,
        shard: str,
        core: str,
        node_name: str,
        base_url: str,
        replica_type: ReplicaType,
        state: ReplicaState = ReplicaState.DOWN,
    ) -> "StateUpdateMessage":
        return cls(
            operation=StateUpdateOperation.ADD_REPLICA,
            collection=collection,
            payload={
                "shard": shard,
                "core": core,
                "node_name": node_name,
                "base_url": base_url,
                "type": replica_type.value,
                "state": state.value,
            },
        )

    @classmethod
    def modify_collection(cls, collection: str, props: Dict[str, Any]) -> "StateUpdateMessage":
        return cls(
            operation=StateUpdateOperation.MODIFY_COLLECTION,
            collection=collection,
            payload={"props": props},
        )

    @classmethod
    def replica_state(cls, collection: str, core: str, state: ReplicaState) -> "StateUpdateMessage":
        return cls(
            operation=StateUpdateOperation.STATE,
            collection=collection,
            payload={"core": core, "state": state.value},
        )

    @classmethod
    def delete(cls, collection: str) -> "StateUpdateMessage":
        return cls(operation=StateUpdateOperation.DELETE, collection=collection)

    # =========================================================================
    # QUEUE SERIALIZATION
    # =========================================================================

    def to_queue_message(self) -> Dict[str, Any]:
        """Convert to queue message format."""
        return self.model_dump(mode="json")

    @classmethod
    def from_queue_message(cls, data: Dict[str, Any]) -> "StateUpdateMessage":
        """Parse from queue message format."""
        return cls.model_validate(data)

    def payload_str(self, key: str) -> Optional[str]:
        value = self.payload.get(key)
        return None if value is None else str(value)


__all__ = ["StateUpdateMessage"]
