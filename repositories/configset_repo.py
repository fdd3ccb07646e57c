# ============================================================================
# CONFIGSET REPOSITORY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Configuration bundle storage
# PURPOSE: List, copy and delete named configuration bundles under /configs
# CREATED: 18 OCT 2026
# ============================================================================
"""
ConfigSet Repository

A configuration bundle is the subtree /configs/<name>. The bundle node
itself holds bundle-level metadata; each child node holds one file.
Validation of bundle contents happens elsewhere.
"""

import logging
from typing import Any, Dict, List

from core.config import get_defaults
from .state_store import DistributedStateStore, NoNodeError

logger = logging.getLogger(__name__)


class ConfigSetRepository:
    """Repository for configuration bundles."""

    def __init__(self, store: DistributedStateStore):
        self.store = store
        self.root = get_defaults().store.configs_path

    def _path(self, name: str) -> str:
        return f"{self.root}/{name}"

    async def exists(self, name: str) -> bool:
        return await self.store.has_data(self._path(name))

    async def list_names(self) -> List[str]:
        """Names of every stored bundle."""
        try:
            return await self.store.list_children(self.root)
        except NoNodeError:
            return []

    async def upload(self, name: str, files: Dict[str, Any]) -> None:
        """
        Store a bundle from a file-name -> content mapping.

        Existing files with the same name are overwritten.
        """
        await self.store.make_path(self._path(name), {}, fail_on_exists=False)
        for file_name, content in files.items():
            path = f"{self._path(name)}/{file_name}"
            await self.store.make_path(path, {"content": content}, fail_on_exists=False)
            await self.store.set_data(path, {"content": content})
        logger.info(f"Uploaded configset {name} ({len(files)} files)")

    async def copy(self, source: str, target: str) -> None:
        """
        Copy bundle source to target, subtree and all.

        Raises:
            NoNodeError: source does not exist
        """
        await self._copy_node(self._path(source), self._path(target))
        logger.info(f"Copied configset {source} -> {target}")

    async def _copy_node(self, source_path: str, target_path: str) -> None:
        current = await self.store.get_data(source_path)
        await self.store.make_path(target_path, current.data, fail_on_exists=False)
        for child in await self.store.list_children(source_path):
            await self._copy_node(f"{source_path}/{child}", f"{target_path}/{child}")

    async def delete(self, name: str) -> None:
        await self.store.remove_recursively(self._path(name))
        logger.info(f"Deleted configset {name}")


__all__ = ["ConfigSetRepository"]
