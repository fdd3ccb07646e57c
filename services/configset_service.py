# ============================================================================
# CONFIGSET SERVICE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Configuration bundle resolution
# PURPOSE: Pick, derive and clean up the bundle a new collection uses
# CREATED: 18 OCT 2026
# ============================================================================
"""
ConfigSet Service

Resolution rules for a new collection:

1. A requested name must exist.
2. No name, "_default" exists:
     the system collection uses "_default" directly;
     any other collection uses "<name>.AUTOCREATED", copied from
     "_default" unless a bundle with that name already exists.
3. No name, exactly one bundle exists: use it.
4. Otherwise ConfigurationNotFound.

Bundles copied by a run are deleted on rollback unless another collection
references them.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from core.config import get_defaults
from core.errors import ConfigurationNotFound
from core.logging import get_logger
from core.outcome import StepOutcome
from repositories import ConfigSetRepository

logger = get_logger(__name__)

DEFAULT_CONFIG_WARNING = (
    "Using _default configset. Data driven schema functionality is enabled by default, "
    "which is NOT RECOMMENDED for production use. To turn it off: "
    "curl http://{host:port}/solr/{collection}/config -d "
    "'{\"set-user-property\": {\"update.autoCreateFields\":\"false\"}}'"
)


@dataclass(frozen=True)
class ResolvedConfig:
    """Bundle chosen for a collection."""
    name: str
    created: bool = False
    from_default: bool = False


def autocreated_name(collection: str) -> str:
    return f"{collection}{get_defaults().cluster.autocreated_suffix}"


def uses_default_config(requested: Optional[str]) -> bool:
    """True when the default-config warning applies."""
    return requested is None or requested == get_defaults().cluster.default_configset


class ConfigSetService:
    """Resolves configuration bundles for new collections."""

    def __init__(self, configsets: ConfigSetRepository):
        self.configsets = configsets

    async def resolve(
        self,
        collection: str,
        requested: Optional[str] = None,
    ) -> StepOutcome[ResolvedConfig]:
        """
        Resolve (and if needed derive) the bundle for a collection.

        Copies _default when deriving "<name>.AUTOCREATED".
        """
        cluster = get_defaults().cluster

        if requested:
            if await self.configsets.exists(requested):
                return StepOutcome.success(ResolvedConfig(name=requested))
            return StepOutcome.failure(
                ConfigurationNotFound(
                    f"Can not find the specified config set: {requested}",
                    details={"config": requested},
                )
            )

        if await self.configsets.exists(cluster.default_configset):
            if collection == cluster.system_collection:
                return StepOutcome.success(
                    ResolvedConfig(name=cluster.default_configset, from_default=True)
                )

            target = autocreated_name(collection)
            if await self.configsets.exists(target):
                logger.info(f"Reusing existing configset {target}")
                return StepOutcome.success(ResolvedConfig(name=target, from_default=True))

            await self.configsets.copy(cluster.default_configset, target)
            logger.info(f"Derived configset {target} from {cluster.default_configset}")
            return StepOutcome.success(
                ResolvedConfig(name=target, created=True, from_default=True)
            )

        names = await self.configsets.list_names()
        if len(names) == 1:
            return StepOutcome.success(ResolvedConfig(name=names[0]))

        return StepOutcome.failure(
            ConfigurationNotFound(
                f"No config set found to associate with the collection {collection}",
                details={"available": names},
            )
        )

    async def delete_if_unused(self, name: str, referenced_by: Iterable[str]) -> bool:
        """
        Delete a derived bundle no collection references.

        Args:
            name: Bundle name
            referenced_by: Config names of the remaining collections

        Returns:
            True if deleted
        """
        if name in set(referenced_by):
            logger.info(f"Keeping configset {name}: still referenced")
            return False
        await self.configsets.delete(name)
        return True


__all__ = [
    "ConfigSetService",
    "ResolvedConfig",
    "DEFAULT_CONFIG_WARNING",
    "autocreated_name",
    "uses_default_config",
]
