# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - State store access layer
# PURPOSE: Typed access to the distributed state store
# CREATED: 18 OCT 2026
# ============================================================================
"""
Repositories Module

Provides typed access to the distributed state store.
Uses psycopg3 async with connection pooling.

Usage:
    from repositories import get_pool, DistributedStateStore, CollectionRepository

    pool = await get_pool()
    store = DistributedStateStore(pool, session_id="node-a")
    collections = CollectionRepository(store)
    record = await collections.get_state("products")
"""

from .database import init_pool, get_pool, close_pool
from .state_store import (
    DistributedStateStore,
    VersionedData,
    StateStoreError,
    NoNodeError,
    NodeExistsError,
    BadVersionError,
)
from .collection_repo import CollectionRepository
from .alias_repo import AliasRepository
from .configset_repo import ConfigSetRepository
from .live_node_repo import LiveNodeRepository, node_name_to_base_url
from .request_status_repo import RequestStatusRepository
from .cluster_props_repo import ClusterPropsRepository, PLACEMENT_POLICY

__all__ = [
    "init_pool",
    "get_pool",
    "close_pool",
    "DistributedStateStore",
    "VersionedData",
    "StateStoreError",
    "NoNodeError",
    "NodeExistsError",
    "BadVersionError",
    "CollectionRepository",
    "AliasRepository",
    "ConfigSetRepository",
    "LiveNodeRepository",
    "node_name_to_base_url",
    "RequestStatusRepository",
    "ClusterPropsRepository",
    "PLACEMENT_POLICY",
]
