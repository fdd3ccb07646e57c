# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for the collections admin API
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for collection administration.

Create accepts the command as a flat property set, either as query
parameters (GET /admin/collections?action=CREATE&name=...) or as a JSON
object (POST /admin/collections). Failures render one error object with
the HTTP status taken from the error code.
"""

import logging
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Request
from fastapi.responses import JSONResponse

from core.errors import CollectionAdminError, PreconditionViolation
from core.models import CreateCollectionRequest
from orchestrator import CommandContext, CreateCollectionCommand, DeleteCollectionCommand
from .schemas import (
    CollectionListResponse,
    CreateCollectionResponse,
    DeleteCollectionResponse,
    ErrorResponse,
    LiveNodesResponse,
    RequestStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# Set by the main app at startup

_context: Optional[CommandContext] = None


def set_services(context: Optional[CommandContext]) -> None:
    """Set the command context for dependency injection."""
    global _context
    _context = context


def get_context() -> CommandContext:
    if _context is None:
        raise HTTPException(500, "Services not initialized")
    return _context


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _error_response(error: CollectionAdminError, started: float) -> JSONResponse:
    return JSONResponse(
        status_code=int(error.code),
        content=ErrorResponse.from_error(error, _elapsed_ms(started)).model_dump(mode="json"),
    )


# ============================================================================
# CREATE
# ============================================================================

async def _create(params: Dict[str, Any]):
    started = time.monotonic()
    ctx = get_context()

    try:
        request = CreateCollectionRequest.from_params(params)
    except PreconditionViolation as e:
        return _error_response(e, started)

    result, error = await CreateCollectionCommand(ctx).execute(request)
    if error is not None:
        logger.warning(f"Create collection {request.name} failed: {error.message}")
        return _error_response(error, started)

    return CreateCollectionResponse.from_result(result, _elapsed_ms(started))


@router.post(
    "/admin/collections",
    response_model=CreateCollectionResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Collections"],
)
async def create_collection(params: Dict[str, Any] = Body(...)):
    """
    Create a collection.

    The body is the flat property set, e.g.
    {"name": "products", "numShards": "2", "nrtReplicas": "1", "config": "conf"}.
    """
    return await _create(params)


@router.get("/admin/collections", tags=["Collections"])
async def collections_action(request: Request):
    """
    Action-style entry point.

    action=CREATE creates a collection from the query parameters,
    action=LIST (the default) lists collections and aliases.
    """
    params = dict(request.query_params)
    action = params.pop("action", "LIST").upper()

    if action == "CREATE":
        return await _create(params)
    if action == "LIST":
        return await list_collections()

    started = time.monotonic()
    return _error_response(PreconditionViolation(f"Unknown action: {action}"), started)


# ============================================================================
# READ
# ============================================================================

async def list_collections() -> CollectionListResponse:
    ctx = get_context()
    names = await ctx.collections.list_names()
    aliases = await ctx.aliases.get()
    return CollectionListResponse(
        collections=names,
        aliases={alias: ",".join(targets) for alias, targets in aliases.collection_aliases.items()},
    )


@router.get(
    "/admin/collections/requests/{request_id}",
    response_model=RequestStatusResponse,
    tags=["Collections"],
)
async def get_request_status(request_id: str):
    """Poll the stored outcome of a request submitted with async=<id>."""
    ctx = get_context()
    status = await ctx.request_status.get(request_id)
    return RequestStatusResponse.from_status(request_id, status)


@router.delete(
    "/admin/collections/requests/{request_id}",
    tags=["Collections"],
)
async def delete_request_status(request_id: str):
    """Forget a stored async outcome so the id can be reused."""
    ctx = get_context()
    await ctx.request_status.delete(request_id)
    return {"request_id": request_id, "status": "deleted"}


@router.get("/admin/live_nodes", response_model=LiveNodesResponse, tags=["Cluster"])
async def get_live_nodes():
    ctx = get_context()
    return LiveNodesResponse(live_nodes=await ctx.live_nodes.list_live())


# ============================================================================
# DELETE
# ============================================================================

@router.delete(
    "/admin/collections/{name}",
    response_model=DeleteCollectionResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Collections"],
)
async def delete_collection(name: str):
    """Unload every core of the collection and remove its state."""
    started = time.monotonic()
    ctx = get_context()

    if not await ctx.collections.exists(name):
        raise HTTPException(404, f"Collection not found: {name}")

    outcome = await DeleteCollectionCommand(ctx).execute(name)
    if not outcome.ok:
        return _error_response(outcome.error, started)
    return DeleteCollectionResponse(collection=name)


__all__ = ["router", "set_services", "get_context"]
