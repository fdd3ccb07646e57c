# ============================================================================
# COLLECTION REPOSITORY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Collection records in the state store
# PURPOSE: Metadata node, complete state record, counter and replica states
# CREATED: 18 OCT 2026
# ============================================================================
"""
Collection Repository

Per-collection subtree:

    /collections/<name>                         metadata (configName, properties)
    /collections/<name>/state.json              complete Collection record
    /collections/<name>/counter                 replica number sequence
    /collections/<name>/terms                   leader-election terms
    /collections/<name>/replica_states/<node>   per-replica status records

state.json is only ever written whole. write_state() is conditional on the
version the record was read at.
"""

import logging
from typing import Any, Dict, List, Optional

from core.config import get_defaults
from core.contracts import ReplicaState
from core.models import Collection
from .state_store import BadVersionError, DistributedStateStore, NodeExistsError, NoNodeError

logger = logging.getLogger(__name__)


class CollectionRepository:
    """Repository for collection subtrees."""

    def __init__(self, store: DistributedStateStore):
        self.store = store
        self.root = get_defaults().store.collections_path

    # =========================================================================
    # PATHS
    # =========================================================================

    def collection_path(self, name: str) -> str:
        return f"{self.root}/{name}"

    def state_path(self, name: str) -> str:
        return f"{self.root}/{name}/state.json"

    def counter_path(self, name: str) -> str:
        return f"{self.root}/{name}/counter"

    def terms_path(self, name: str) -> str:
        return f"{self.root}/{name}/terms"

    def replica_states_path(self, name: str) -> str:
        return f"{self.root}/{name}/replica_states"

    # =========================================================================
    # METADATA NODE
    # =========================================================================

    async def list_names(self) -> List[str]:
        try:
            return await self.store.list_children(self.root)
        except NoNodeError:
            return []

    async def exists(self, name: str) -> bool:
        """True if the metadata node exists (collection may still be in creation)."""
        return await self.store.has_data(self.collection_path(name))

    async def create_metadata_node(self, name: str, props: Dict[str, Any]) -> bool:
        """
        Create /collections/<name> if absent.

        Idempotent: a node left by a concurrent creator or an earlier crashed
        attempt is kept as is. A bare parent (data None, left behind when a
        child such as terms was written first) is filled in with props.

        Returns:
            True if this call wrote the node's data
        """
        path = self.collection_path(name)
        try:
            current = await self.store.get_data(path)
        except NoNodeError:
            current = None

        if current is None:
            try:
                await self.store.make_path(path, props)
            except NodeExistsError:
                logger.info(f"Collection metadata node {path} created concurrently")
                return False
            logger.info(f"Created collection metadata node {path}")
            return True

        if current.data is not None:
            logger.info(f"Collection metadata node {path} already exists")
            return False

        try:
            await self.store.set_data(path, props, version=current.version)
        except (BadVersionError, NoNodeError):
            logger.info(f"Collection metadata node {path} changed concurrently")
            return False
        logger.info(f"Filled in bare collection metadata node {path}")
        return True

    async def get_props(self, name: str) -> Dict[str, Any]:
        """
        Raises:
            NoNodeError: collection metadata node missing
        """
        current = await self.store.get_data(self.collection_path(name))
        return dict(current.data or {})

    async def remove_terms(self, name: str) -> None:
        """Remove stale leader-election terms left by an earlier collection."""
        await self.store.remove_recursively(self.terms_path(name))

    async def remove_collection(self, name: str) -> None:
        """Remove the whole /collections/<name> subtree."""
        await self.store.remove_recursively(self.collection_path(name))
        logger.info(f"Removed collection subtree {self.collection_path(name)}")

    # =========================================================================
    # STATE RECORD
    # =========================================================================

    async def get_state(self, name: str) -> Optional[Collection]:
        """Read state.json (None if the collection has no record)."""
        try:
            current = await self.store.get_data(self.state_path(name))
        except NoNodeError:
            return None
        if not current.data:
            return None
        return Collection.from_record(current.data, current.version)

    async def create_state(self, collection: Collection) -> Collection:
        """
        Write the first state record.

        Raises:
            NodeExistsError: a record already exists
        """
        await self.store.make_path(self.state_path(collection.name), collection.to_record())
        collection.znode_version = 0
        return collection

    async def write_state(self, collection: Collection) -> Collection:
        """
        Replace the state record if its version is unchanged since the read.

        Raises:
            BadVersionError: record changed since collection was read
            NoNodeError: record was removed
        """
        collection.znode_version = await self.store.set_data(
            self.state_path(collection.name),
            collection.to_record(),
            version=collection.znode_version,
        )
        return collection

    async def delete_state(self, name: str) -> None:
        await self.store.remove_recursively(self.state_path(name))

    # =========================================================================
    # REPLICA NUMBERING
    # =========================================================================

    async def next_replica_number(self, name: str) -> int:
        """Next value of the per-collection replica counter."""
        return await self.store.increment_counter(self.counter_path(name))

    # =========================================================================
    # PER-REPLICA STATE RECORDS
    # =========================================================================

    async def set_replica_state(
        self,
        name: str,
        replica_name: str,
        state: ReplicaState,
        leader: bool = False,
    ) -> None:
        """Create or overwrite one per-replica status record."""
        path = f"{self.replica_states_path(name)}/{replica_name}"
        data = {"state": state.value, "leader": leader}
        await self.store.make_path(path, data, fail_on_exists=False)
        await self.store.set_data(path, data)

    async def get_replica_states(self, name: str) -> Dict[str, ReplicaState]:
        """Replica record name -> reported state."""
        root = self.replica_states_path(name)
        try:
            children = await self.store.list_children(root)
        except NoNodeError:
            return {}

        states: Dict[str, ReplicaState] = {}
        for child in children:
            try:
                current = await self.store.get_data(f"{root}/{child}")
            except NoNodeError:
                continue
            states[child] = ReplicaState((current.data or {}).get("state", ReplicaState.DOWN.value))
        return states


__all__ = ["CollectionRepository"]
