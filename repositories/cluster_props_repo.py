# ============================================================================
# CLUSTER PROPERTIES REPOSITORY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Cluster-wide settings
# PURPOSE: Read and update /clusterprops.json
# CREATED: 18 OCT 2026
# ============================================================================
"""
Cluster Properties Repository

Flat key/value settings shared by the whole cluster, for example the
default placement policy ("placementPolicy") and the URL scheme.
"""

import logging
from typing import Any, Dict, Optional

from core.config import get_defaults
from .state_store import BadVersionError, DistributedStateStore, NodeExistsError, NoNodeError

logger = logging.getLogger(__name__)

PLACEMENT_POLICY = "placementPolicy"
URL_SCHEME = "urlScheme"


class ClusterPropsRepository:
    """Repository for cluster properties."""

    def __init__(self, store: DistributedStateStore):
        self.store = store
        self.path = get_defaults().store.cluster_props_path

    async def get_all(self) -> Dict[str, Any]:
        try:
            current = await self.store.get_data(self.path)
        except NoNodeError:
            return {}
        return dict(current.data or {})

    async def get(self, key: str, default: Optional[Any] = None) -> Any:
        return (await self.get_all()).get(key, default)

    async def set(self, key: str, value: Optional[Any]) -> None:
        """Set a property (None removes it)."""
        for _ in range(get_defaults().timeouts.cas_max_attempts):
            try:
                current = await self.store.get_data(self.path)
                props = dict(current.data or {})
                version = current.version
            except NoNodeError:
                props, version = {}, None

            if value is None:
                props.pop(key, None)
            else:
                props[key] = value

            try:
                if version is None:
                    await self.store.make_path(self.path, props)
                else:
                    await self.store.set_data(self.path, props, version=version)
                logger.info(f"Cluster property {key}={value}")
                return
            except (BadVersionError, NodeExistsError):
                continue

        raise BadVersionError(self.path, expected=-1)


__all__ = ["ClusterPropsRepository", "PLACEMENT_POLICY", "URL_SCHEME"]
