# ============================================================================
# CREATE COLLECTION REQUEST
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core model - Command input
# PURPOSE: Typed view of the flat key/value create-collection parameters
# CREATED: 18 OCT 2026
# ============================================================================
"""
Create Collection Request

The command arrives as a flat property set (HTTP query parameters or a
JSON object of strings). from_params() converts it to a validated model;
malformed values become PreconditionViolation before anything is touched.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from core.contracts import RouterName
from core.errors import PreconditionViolation

PROPERTY_PREFIX = "property."

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def _parse_bool(key: str, value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise PreconditionViolation(f"Invalid boolean for {key}: {value}")


def _parse_int(key: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PreconditionViolation(f"Invalid integer for {key}: {value}")


def _parse_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value]
    else:
        items = [part.strip() for part in str(value).split(",")]
    return [item for item in items if item]


class CreateCollectionRequest(BaseModel):
    """
    Validated create-collection command.

    Replica counts are non-negative; the positive-total check lives in the
    topology planner so it reports the same message for every caller.
    """

    name: str = Field(..., min_length=1, max_length=256)
    alias: Optional[str] = Field(default=None, max_length=256)
    router_name: RouterName = RouterName.COMPOSITE_ID

    # Implicit routing: explicit names. Hash routing: count.
    shards: Optional[List[str]] = None
    num_shards: Optional[int] = None

    nrt_replicas: Optional[int] = Field(default=None, ge=0)
    tlog_replicas: int = Field(default=0, ge=0)
    pull_replicas: int = Field(default=0, ge=0)
    replication_factor: Optional[int] = Field(default=None, ge=0)

    max_shards_per_node: int = Field(default=1, description="-1 means unbounded")

    config: Optional[str] = None
    with_collection: Optional[str] = None
    wait_for_final_state: bool = False
    per_replica_state: bool = False
    async_id: Optional[str] = Field(default=None, max_length=128)

    # Node restriction
    create_node_set: Optional[List[str]] = None
    create_node_set_shuffle: bool = True
    placement_policy: Optional[str] = None

    properties: Dict[str, str] = Field(default_factory=dict)

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def effective_alias(self) -> str:
        """Alias to register; defaults to the collection name."""
        return self.alias or self.name

    @property
    def effective_nrt_replicas(self) -> int:
        """
        NRT count with legacy fallbacks.

        nrtReplicas, else replicationFactor, else 1 (0 when TLOG replicas
        were requested).
        """
        if self.nrt_replicas is not None:
            return self.nrt_replicas
        if self.replication_factor is not None:
            return self.replication_factor
        return 0 if self.tlog_replicas > 0 else 1

    @property
    def total_replicas_per_shard(self) -> int:
        return self.effective_nrt_replicas + self.tlog_replicas + self.pull_replicas

    # =========================================================================
    # PARSING
    # =========================================================================

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "CreateCollectionRequest":
        """
        Build from a flat key/value property set.

        Raises:
            PreconditionViolation: missing name, bad numbers, unknown router
        """
        name = params.get("name")
        if not name:
            raise PreconditionViolation("Missing required parameter: name")

        router_value = params.get("router.name", RouterName.COMPOSITE_ID.value)
        try:
            router = RouterName.parse(router_value)
        except ValueError as e:
            raise PreconditionViolation(str(e))

        properties = {
            key[len(PROPERTY_PREFIX):]: str(value)
            for key, value in params.items()
            if key.startswith(PROPERTY_PREFIX)
        }

        max_shards = _parse_int("maxShardsPerNode", params.get("maxShardsPerNode"))

        try:
            return cls(
                name=name,
                alias=params.get("alias") or None,
                router_name=router,
                shards=_parse_list(params.get("shards")),
                num_shards=_parse_int("numShards", params.get("numShards")),
                nrt_replicas=_parse_int("nrtReplicas", params.get("nrtReplicas")),
                tlog_replicas=_parse_int("tlogReplicas", params.get("tlogReplicas")) or 0,
                pull_replicas=_parse_int("pullReplicas", params.get("pullReplicas")) or 0,
                replication_factor=_parse_int(
                    "replicationFactor", params.get("replicationFactor")
                ),
                max_shards_per_node=1 if max_shards is None else max_shards,
                config=params.get("collection.configName") or params.get("config") or None,
                with_collection=params.get("withCollection") or None,
                wait_for_final_state=_parse_bool(
                    "waitForFinalState", params.get("waitForFinalState"), False
                ),
                per_replica_state=_parse_bool(
                    "perReplicaState", params.get("perReplicaState"), False
                ),
                async_id=params.get("async") or None,
                create_node_set=_parse_list(params.get("createNodeSet")),
                create_node_set_shuffle=_parse_bool(
                    "createNodeSet.shuffle", params.get("createNodeSet.shuffle"), True
                ),
                placement_policy=params.get("placementPolicy") or None,
                properties=properties,
            )
        except ValidationError as e:
            raise PreconditionViolation(
                f"Invalid create collection request: {e.errors()[0].get('msg')}",
                details={"errors": [err.get("msg") for err in e.errors()]},
            )


__all__ = ["CreateCollectionRequest", "PROPERTY_PREFIX"]
