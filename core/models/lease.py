# ============================================================================
# ASSIGNMENT SESSION LEASE MODEL
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Lease over in-flight cluster capacity
# PURPOSE: Track replicas reserved by one orchestration run until release
# CREATED: 18 OCT 2026
# ============================================================================
"""
Assignment Session Lease Model

While a collection is being created its placements are not yet (fully)
visible in cluster state. Each run holds a lease recording the cores it
has reserved per node, so concurrent runs count them as load.

Key properties:
- Acquired by the assignment strategy, released by the orchestrator
- Released exactly once on every exit path
- Leases past their TTL are ignored so a crashed run cannot pin capacity
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentLease(BaseModel):
    """
    Capacity reservation held by one orchestration run.
    """

    lease_id: str = Field(default_factory=lambda: uuid.uuid4().hex, max_length=64)
    holder: str = Field(..., max_length=256, description="Collection being created")
    acquired_at: datetime = Field(default_factory=_utcnow)
    lease_ttl_sec: int = Field(
        default=600,
        ge=10,
        description="Reservation ignored after this many seconds"
    )
    reserved: Dict[str, int] = Field(
        default_factory=dict,
        description="Node name -> cores reserved by this run"
    )
    released_at: Optional[datetime] = None

    @property
    def is_released(self) -> bool:
        return self.released_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Check if the lease has expired.

        Args:
            now: Current time (defaults to utcnow)
        """
        if now is None:
            now = _utcnow()
        return now > self.acquired_at + timedelta(seconds=self.lease_ttl_sec)

    def reserve(self, node_name: str, count: int = 1) -> None:
        self.reserved[node_name] = self.reserved.get(node_name, 0) + count


__all__ = ["AssignmentLease"]
