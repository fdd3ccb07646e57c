# ============================================================================
# ALIAS REPOSITORY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Alias map persistence
# PURPOSE: Read and conditionally update /aliases.json
# CREATED: 18 OCT 2026
# ============================================================================
"""
Alias Repository

The alias map is a single document. Every change is a read-modify-write
guarded by the node version, retried on conflict.
"""

import logging
from typing import Optional

from core.config import get_defaults
from core.models import Aliases
from .state_store import (
    BadVersionError,
    DistributedStateStore,
    NodeExistsError,
    NoNodeError,
)

logger = logging.getLogger(__name__)


class AliasRepository:
    """Repository for the cluster alias map."""

    def __init__(self, store: DistributedStateStore):
        self.store = store
        self.path = get_defaults().store.aliases_path

    async def get(self) -> Aliases:
        """Current alias map (empty when never written)."""
        try:
            current = await self.store.get_data(self.path)
        except NoNodeError:
            return Aliases()
        aliases = Aliases.model_validate(current.data or {})
        aliases.znode_version = current.version
        return aliases

    async def set_alias(self, alias: str, collection: Optional[str]) -> Aliases:
        """
        Point alias at collection, or remove it when collection is None.

        Returns:
            The alias map as written

        Raises:
            BadVersionError: lost every retry
        """
        max_attempts = get_defaults().timeouts.cas_max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            current = await self.get()
            updated = current.with_collection_alias(alias, collection)
            document = updated.model_dump(mode="json")
            try:
                if current.znode_version == -1:
                    await self.store.make_path(self.path, document)
                    updated.znode_version = 0
                else:
                    updated.znode_version = await self.store.set_data(
                        self.path, document, version=current.znode_version
                    )
                logger.info(f"Alias {alias} -> {collection}")
                return updated
            except (BadVersionError, NodeExistsError) as e:
                last_error = e
                logger.debug(f"Alias update conflict (attempt {attempt + 1}), retrying")

        raise BadVersionError(self.path, expected=-1) from last_error

    async def remove_alias(self, alias: str) -> Aliases:
        return await self.set_alias(alias, None)


__all__ = ["AliasRepository"]
