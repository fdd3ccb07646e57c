# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for the collections admin API
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Schemas

Response envelopes for the collections admin API. Requests arrive as flat
property sets and are parsed by CreateCollectionRequest.from_params.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import RequestState
from core.errors import CollectionAdminError
from core.models import CreateCollectionResult, RequestStatus


class ResponseHeader(BaseModel):
    """Status header carried by every admin response."""
    status: int = 0
    qtime_ms: int = Field(default=0, description="Time spent handling the request")


class CreateCollectionResponse(BaseModel):
    """Successful create."""
    response_header: ResponseHeader = Field(default_factory=ResponseHeader)
    collection: str
    config_name: str
    shards: Dict[str, List[str]] = Field(default_factory=dict)
    success: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    alias: Optional[str] = None
    request_id: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "response_header": {"status": 0, "qtime_ms": 812},
                    "collection": "products",
                    "config_name": "products_conf",
                    "shards": {"shard1": ["products_shard1_replica_n1"]},
                    "success": {
                        "node1:8983_solr": [
                            {"core": "products_shard1_replica_n1", "response": {}}
                        ]
                    },
                    "warnings": [],
                }
            ]
        }
    }

    @classmethod
    def from_result(cls, result: CreateCollectionResult, qtime_ms: int = 0) -> "CreateCollectionResponse":
        return cls(
            response_header=ResponseHeader(qtime_ms=qtime_ms),
            **result.model_dump(),
        )


class ErrorResponse(BaseModel):
    """Failed request: exactly one error object."""
    response_header: ResponseHeader
    error: Dict[str, Any]

    @classmethod
    def from_error(cls, error: CollectionAdminError, qtime_ms: int = 0) -> "ErrorResponse":
        return cls(
            response_header=ResponseHeader(status=int(error.code), qtime_ms=qtime_ms),
            error=error.to_dict(),
        )


class DeleteCollectionResponse(BaseModel):
    response_header: ResponseHeader = Field(default_factory=ResponseHeader)
    collection: str


class CollectionListResponse(BaseModel):
    collections: List[str]
    aliases: Dict[str, str] = Field(default_factory=dict)


class RequestStatusResponse(BaseModel):
    """Stored outcome of an async request (state notfound when unknown)."""
    request_id: str
    state: RequestState
    success: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    failure: Dict[str, List[str]] = Field(default_factory=dict)
    message: Optional[str] = None

    @classmethod
    def from_status(cls, request_id: str, status: Optional[RequestStatus]) -> "RequestStatusResponse":
        if status is None:
            return cls(
                request_id=request_id,
                state=RequestState.NOT_FOUND,
                message=f"Did not find [{request_id}] in any tasks queue",
            )
        return cls(
            request_id=request_id,
            state=status.state,
            success=status.success,
            failure=status.failure,
            message=status.message,
        )


class LiveNodesResponse(BaseModel):
    live_nodes: List[str]


__all__ = [
    "ResponseHeader",
    "CreateCollectionResponse",
    "ErrorResponse",
    "DeleteCollectionResponse",
    "CollectionListResponse",
    "RequestStatusResponse",
    "LiveNodesResponse",
]
