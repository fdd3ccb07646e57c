# ============================================================================
# RESPONSE MODELS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core model - Command and remote-call outcomes
# PURPOSE: Core-admin acknowledgements, create result, async request status
# CREATED: 18 OCT 2026
# ============================================================================
"""
Response Models

CoreAdminResponse  - outcome of one remote "create local unit" call
CreateCollectionResult - success payload of the create command
RequestStatus      - stored outcome of an async-correlated request
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import RequestState


class CoreAdminResponse(BaseModel):
    """One remote core-admin call, success or failure."""

    node_name: str
    core: str
    success: bool
    status_code: Optional[int] = None
    body: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    async_id: Optional[str] = None


class CreateCollectionResult(BaseModel):
    """
    Successful create.

    success maps node name -> acknowledgements for the cores it created.
    Failures never produce this object.
    """

    collection: str
    config_name: str
    shards: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Shard name -> core names created for it"
    )
    success: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    alias: Optional[str] = None
    request_id: Optional[str] = None


class RequestStatus(BaseModel):
    """
    Aggregated outcome stored for an async request id.

    Stored at: /overseer/requests/<request_id>
    """

    request_id: str
    state: RequestState = RequestState.RUNNING
    success: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    failure: Dict[str, List[str]] = Field(default_factory=dict)
    message: Optional[str] = None
    tracked: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Node name -> core-admin async ids issued to it"
    )
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = ["CoreAdminResponse", "CreateCollectionResult", "RequestStatus"]
