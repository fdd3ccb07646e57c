# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for collection administration
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the collections admin API.
"""

from .routes import router, set_services
from .schemas import (
    CreateCollectionResponse,
    ErrorResponse,
    RequestStatusResponse,
)

__all__ = [
    "router",
    "set_services",
    "CreateCollectionResponse",
    "ErrorResponse",
    "RequestStatusResponse",
]
