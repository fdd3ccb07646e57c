# ============================================================================
# REQUEST STATUS REPOSITORY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Async request outcomes
# PURPOSE: Persist aggregated outcomes under /overseer/requests/<id>
# CREATED: 18 OCT 2026
# ============================================================================
"""
Request Status Repository

Callers that pass an async id poll the stored RequestStatus later instead
of holding the HTTP request open.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from core.config import get_defaults
from core.models import RequestStatus
from .state_store import DistributedStateStore, NoNodeError

logger = logging.getLogger(__name__)


class RequestStatusRepository:
    """Repository for RequestStatus documents."""

    def __init__(self, store: DistributedStateStore):
        self.store = store
        self.root = get_defaults().store.requests_path

    def _path(self, request_id: str) -> str:
        return f"{self.root}/{request_id}"

    async def exists(self, request_id: str) -> bool:
        return await self.store.has_data(self._path(request_id))

    async def save(self, status: RequestStatus) -> RequestStatus:
        """Create or overwrite the stored status."""
        status.updated_at = datetime.now(timezone.utc)
        document = status.model_dump(mode="json")
        path = self._path(status.request_id)
        await self.store.make_path(path, document, fail_on_exists=False)
        await self.store.set_data(path, document)
        logger.debug(f"Saved request status {status.request_id} state={status.state.value}")
        return status

    async def get(self, request_id: str) -> Optional[RequestStatus]:
        try:
            current = await self.store.get_data(self._path(request_id))
        except NoNodeError:
            return None
        return RequestStatus.model_validate(current.data)

    async def delete(self, request_id: str) -> None:
        await self.store.remove_recursively(self._path(request_id))


__all__ = ["RequestStatusRepository"]
