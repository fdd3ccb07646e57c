# ============================================================================
# CLUSTER STATE VIEW
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Immutable cluster snapshots and polling waits
# PURPOSE: Read-only views of collections, aliases and live nodes
# CREATED: 18 OCT 2026
# ============================================================================
"""
Cluster State View

ClusterState is an immutable snapshot. It is never updated in place:
callers that expect to observe a mutation call reader.refresh() and use
the new snapshot.

OverlayClusterState composes a base snapshot with pending collections
(records being built by in-flight runs that are not yet visible in the
store). It exposes the same read methods as ClusterState so assignment
code accepts either.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Union

from core.errors import StateWaitTimeout
from core.logging import get_logger
from core.models import Aliases, Collection
from repositories import AliasRepository, CollectionRepository, LiveNodeRepository

logger = get_logger(__name__)


def _count_cores(collections: Mapping[str, Collection]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for collection in collections.values():
        for replica in collection.replicas():
            counts[replica.node_name] = counts.get(replica.node_name, 0) + 1
    return counts


# ============================================================================
# SNAPSHOTS
# ============================================================================

@dataclass(frozen=True)
class ClusterState:
    """Point-in-time view of the cluster."""
    collections: Mapping[str, Collection] = field(default_factory=dict)
    live_nodes: List[str] = field(default_factory=list)
    aliases: Aliases = field(default_factory=Aliases)

    def has_collection(self, name: str) -> bool:
        return name in self.collections

    def get_collection(self, name: str) -> Optional[Collection]:
        return self.collections.get(name)

    def collection_names(self) -> List[str]:
        return sorted(self.collections)

    def cores_per_node(self) -> Dict[str, int]:
        """Node name -> number of replicas hosted, across every collection."""
        return _count_cores(self.collections)


@dataclass(frozen=True)
class OverlayClusterState:
    """
    Base snapshot plus pending collections.

    A pending collection shadows the base record of the same name.
    """
    base: ClusterState
    pending: Mapping[str, Collection] = field(default_factory=dict)

    @property
    def live_nodes(self) -> List[str]:
        return self.base.live_nodes

    @property
    def aliases(self) -> Aliases:
        return self.base.aliases

    @property
    def collections(self) -> Dict[str, Collection]:
        merged = dict(self.base.collections)
        merged.update(self.pending)
        return merged

    def has_collection(self, name: str) -> bool:
        return name in self.pending or self.base.has_collection(name)

    def get_collection(self, name: str) -> Optional[Collection]:
        if name in self.pending:
            return self.pending[name]
        return self.base.get_collection(name)

    def collection_names(self) -> List[str]:
        return sorted(self.collections)

    def cores_per_node(self) -> Dict[str, int]:
        return _count_cores(self.collections)


ClusterView = Union[ClusterState, OverlayClusterState]


# ============================================================================
# READER
# ============================================================================

class ClusterStateReader:
    """
    Builds snapshots from the store and polls for expected changes.

    snapshot holds the last refreshed state. It is replaced, never mutated.
    """

    def __init__(
        self,
        collections: CollectionRepository,
        live_nodes: LiveNodeRepository,
        aliases: AliasRepository,
    ):
        self.collections = collections
        self.live_nodes = live_nodes
        self.aliases = aliases
        self.snapshot = ClusterState()

    async def refresh(self) -> ClusterState:
        """Re-read every collection record, the alias map and live nodes."""
        records: Dict[str, Collection] = {}
        for name in await self.collections.list_names():
            record = await self.collections.get_state(name)
            if record is not None:
                records[name] = record

        self.snapshot = ClusterState(
            collections=records,
            live_nodes=await self.live_nodes.list_live(),
            aliases=await self.aliases.get(),
        )
        return self.snapshot

    async def get_collection(self, name: str) -> Optional[Collection]:
        """Fresh read of one collection record."""
        return await self.collections.get_state(name)

    async def wait_for_collection(
        self,
        name: str,
        predicate: Callable[[Optional[Collection]], bool],
        timeout: float,
        interval: float,
    ) -> Optional[Collection]:
        """
        Poll one collection record until predicate holds.

        predicate receives None while the record does not exist. The
        snapshot is refreshed once the wait succeeds.

        Raises:
            StateWaitTimeout: predicate never held within timeout
        """
        start = time.monotonic()
        deadline = start + timeout
        while True:
            current = await self.collections.get_state(name)
            if predicate(current):
                await self.refresh()
                return current
            if time.monotonic() >= deadline:
                waited = time.monotonic() - start
                logger.warning(f"Timed out after {waited:.1f}s waiting on collection {name}")
                raise StateWaitTimeout(
                    f"Timed out after {waited:.1f}s waiting on collection {name}",
                    waited_seconds=waited,
                )
            await asyncio.sleep(interval)


__all__ = [
    "ClusterState",
    "OverlayClusterState",
    "ClusterView",
    "ClusterStateReader",
]
