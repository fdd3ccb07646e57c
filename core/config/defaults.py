# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for waits, cluster conventions, store layout
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the create-collection command.
These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Every wait exposes timeout AND interval so tests can shrink both
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TimeoutDefaults:
    """
    Bounded polling waits.

    Each wait is a cooperative busy-wait with a fixed interval.
    """
    # Legacy protocol: wait for the queued CREATE to become visible
    collection_visible_timeout: float = 30.0
    # Legacy protocol: wait for queued ADDREPLICA records to become visible
    replicas_visible_timeout: float = 30.0
    # Direct protocol: wait for every per-replica record to report ACTIVE
    replicas_active_timeout: float = 120.0
    # Companion collection colocation link (non-fatal)
    colocation_link_timeout: float = 5.0
    # Rollback: wait for the collection to disappear from cluster state
    collection_removed_timeout: float = 30.0
    # Shared polling interval
    poll_interval: float = 0.1

    # Remote core-admin batch
    core_admin_timeout: float = 180.0
    async_status_poll_interval: float = 1.0

    # Optimistic concurrency retries for read-modify-write
    cas_max_attempts: int = 50

    @classmethod
    def from_env(cls) -> "TimeoutDefaults":
        """Create from environment variables."""
        return cls(
            collection_visible_timeout=float(os.getenv("COLLECTION_VISIBLE_TIMEOUT_SECONDS", 30)),
            replicas_visible_timeout=float(os.getenv("REPLICAS_VISIBLE_TIMEOUT_SECONDS", 30)),
            replicas_active_timeout=float(
                os.getenv("WAIT_TO_SEE_REPLICAS_IN_STATE_TIMEOUT_SECONDS", 120)
            ),
            colocation_link_timeout=float(os.getenv("COLOCATION_LINK_TIMEOUT_SECONDS", 5)),
            poll_interval=float(os.getenv("STATE_POLL_INTERVAL_SECONDS", 0.1)),
            core_admin_timeout=float(os.getenv("CORE_ADMIN_TIMEOUT_SECONDS", 180)),
        )


@dataclass(frozen=True)
class ClusterDefaults:
    """
    Cluster-wide naming conventions and placement defaults.
    """
    default_configset: str = "_default"
    system_collection: str = ".system"
    autocreated_suffix: str = ".AUTOCREATED"

    # -1 on the wire means unbounded
    default_max_shards_per_node: int = 1
    unbounded_max_shards_per_node: int = -1

    default_placement_policy: str = "least_loaded"

    # Ephemeral live-node registration
    live_node_ttl_sec: int = 30

    # Sentinel for createNodeSet meaning "no nodes"
    create_node_set_empty: str = "EMPTY"

    @classmethod
    def from_env(cls) -> "ClusterDefaults":
        """Create from environment variables."""
        return cls(
            default_max_shards_per_node=int(os.getenv("DEFAULT_MAX_SHARDS_PER_NODE", 1)),
            default_placement_policy=os.getenv("DEFAULT_PLACEMENT_POLICY", "least_loaded"),
            live_node_ttl_sec=int(os.getenv("LIVE_NODE_TTL_SEC", 30)),
        )


@dataclass(frozen=True)
class StoreDefaults:
    """
    Distributed state store layout.
    """
    schema: str = "clusterstate"
    table: str = "state_nodes"

    collections_path: str = "/collections"
    live_nodes_path: str = "/live_nodes"
    configs_path: str = "/configs"
    aliases_path: str = "/aliases.json"
    cluster_props_path: str = "/clusterprops.json"
    requests_path: str = "/overseer/requests"

    @classmethod
    def from_env(cls) -> "StoreDefaults":
        """Create from environment variables."""
        return cls(
            schema=os.getenv("STATE_STORE_SCHEMA", "clusterstate"),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    timeouts: TimeoutDefaults = field(default_factory=TimeoutDefaults)
    cluster: ClusterDefaults = field(default_factory=ClusterDefaults)
    store: StoreDefaults = field(default_factory=StoreDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            timeouts=TimeoutDefaults.from_env(),
            cluster=ClusterDefaults.from_env(),
            store=StoreDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "TimeoutDefaults",
    "ClusterDefaults",
    "StoreDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
