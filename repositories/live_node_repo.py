# ============================================================================
# LIVE NODE REPOSITORY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Node directory
# PURPOSE: Ephemeral live-node registration and base address lookup
# CREATED: 18 OCT 2026
# ============================================================================
"""
Live Node Repository

Each worker registers an ephemeral node /live_nodes/<node_name> holding
its base URL and renews it on a heartbeat. A node whose registration
expires drops out of the live set.

Node names follow the "host:port_context" convention; when no base URL
was registered it is derived from the name.
"""

import logging
from typing import List, Optional

from core.config import get_defaults
from .state_store import DistributedStateStore, NoNodeError

logger = logging.getLogger(__name__)


def node_name_to_base_url(node_name: str, url_scheme: str = "http") -> str:
    """
    Derive a base URL from a node name.

    "10.0.0.5:8983_solr" -> "http://10.0.0.5:8983/solr"
    """
    host_port, _, context = node_name.partition("_")
    base = f"{url_scheme}://{host_port}"
    return f"{base}/{context}" if context else base


class LiveNodeRepository:
    """Node directory backed by ephemeral store nodes."""

    def __init__(self, store: DistributedStateStore):
        self.store = store
        self.root = get_defaults().store.live_nodes_path

    def _path(self, node_name: str) -> str:
        return f"{self.root}/{node_name}"

    async def register(self, node_name: str, base_url: Optional[str] = None) -> None:
        """Register (or refresh) this process as a live node."""
        data = {"base_url": base_url or node_name_to_base_url(node_name)}
        await self.store.make_path(self._path(node_name), data, ephemeral=True, fail_on_exists=False)
        await self.store.set_data(self._path(node_name), data)
        logger.info(f"Registered live node {node_name}")

    async def unregister(self, node_name: str) -> None:
        await self.store.remove_recursively(self._path(node_name))
        logger.info(f"Unregistered live node {node_name}")

    async def heartbeat(self) -> int:
        """Renew this session's registrations."""
        return await self.store.renew_ephemeral()

    async def list_live(self) -> List[str]:
        """Sorted names of currently live nodes."""
        try:
            return await self.store.list_children(self.root)
        except NoNodeError:
            return []

    async def is_live(self, node_name: str) -> bool:
        return await self.store.has_data(self._path(node_name))

    async def base_url(self, node_name: str) -> str:
        """Base URL for a node; derived from the name if none was registered."""
        try:
            current = await self.store.get_data(self._path(node_name))
        except NoNodeError:
            return node_name_to_base_url(node_name)
        return (current.data or {}).get("base_url") or node_name_to_base_url(node_name)


__all__ = ["LiveNodeRepository", "node_name_to_base_url"]
