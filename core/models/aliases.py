# ============================================================================
# ALIASES MODEL
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core model - Collection alias map
# PURPOSE: Immutable alias -> collections mapping stored at /aliases.json
# CREATED: 18 OCT 2026
# ============================================================================
"""
Aliases Model

The whole alias map is one document. Modifications produce a new copy
which the alias repository writes back conditionally.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Aliases(BaseModel):
    """
    Alias map.

    collection_aliases maps alias name -> list of collection names.
    """

    collection_aliases: Dict[str, List[str]] = Field(default_factory=dict)
    znode_version: int = Field(default=-1, exclude=True)

    def has_alias(self, name: str) -> bool:
        return name in self.collection_aliases

    def resolve_simple_alias(self, name: str) -> str:
        """
        Resolve an alias pointing at exactly one collection.

        Names that are not aliases resolve to themselves.
        """
        targets = self.collection_aliases.get(name)
        if not targets:
            return name
        if len(targets) > 1:
            raise ValueError(f"Alias {name} points to more than one collection: {targets}")
        return targets[0]

    def with_collection_alias(self, alias: str, collection: Optional[str]) -> "Aliases":
        """
        Copy with alias set to collection (or removed when collection is None).
        """
        updated = {k: list(v) for k, v in self.collection_aliases.items()}
        if collection is None:
            updated.pop(alias, None)
        else:
            updated[alias] = [collection]
        copy = Aliases(collection_aliases=updated)
        copy.znode_version = self.znode_version
        return copy


__all__ = ["Aliases"]
