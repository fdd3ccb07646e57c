# ============================================================================
# REPLICA STATE MONITOR
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Waits on replica state reports
# PURPOSE: Bounded polling until replicas report ACTIVE
# CREATED: 18 OCT 2026
# ============================================================================
"""
Replica State Monitor

Direct protocol:
    every replica has its own status record under
    /collections/<name>/replica_states/<replica_name>.
Legacy protocol:
    states are folded into the Collection record by the state updater.

A replica reporting FAILED ends the wait early.
"""

import asyncio
import time
from typing import Dict, List, Optional

from core.contracts import ReplicaState
from core.errors import ProvisioningFailure, StateWaitTimeout
from core.logging import get_logger
from core.models import Collection
from core.outcome import StepOutcome
from repositories import CollectionRepository
from services.cluster_state import ClusterStateReader

logger = get_logger(__name__)


class ReplicaStateMonitor:
    """Polls replica states for one collection."""

    def __init__(self, collections: CollectionRepository, reader: ClusterStateReader):
        self.collections = collections
        self.reader = reader

    async def wait_all_active(
        self,
        collection: str,
        replica_names: List[str],
        timeout: float,
        interval: float,
    ) -> StepOutcome[Dict[str, ReplicaState]]:
        """
        Wait until every named per-replica record reports ACTIVE.

        Returns:
            StepOutcome with the final states, or ProvisioningFailure
        """
        start = time.monotonic()
        deadline = start + timeout
        states: Dict[str, ReplicaState] = {}

        while True:
            states = await self.collections.get_replica_states(collection)

            failed = [name for name in replica_names if states.get(name) == ReplicaState.FAILED]
            if failed:
                return StepOutcome.failure(
                    ProvisioningFailure(
                        f"Replicas of {collection} failed: {', '.join(sorted(failed))}",
                        failures={name: ReplicaState.FAILED.value for name in failed},
                    )
                )

            if all(states.get(name) == ReplicaState.ACTIVE for name in replica_names):
                logger.info(f"All {len(replica_names)} replicas of {collection} are active")
                return StepOutcome.success(states)

            if time.monotonic() >= deadline:
                break
            await asyncio.sleep(interval)

        pending = {
            name: (states.get(name) or ReplicaState.DOWN).value
            for name in replica_names
            if states.get(name) != ReplicaState.ACTIVE
        }
        waited = time.monotonic() - start
        logger.warning(
            f"Replicas of {collection} not active after {waited:.1f}s: {sorted(pending)}"
        )
        return StepOutcome.failure(
            ProvisioningFailure(
                f"Could not find new collection {collection} with all replicas active "
                f"after {waited:.0f} seconds",
                failures=pending,
            )
        )

    async def wait_record_all_active(
        self,
        collection: str,
        timeout: float,
        interval: float,
    ) -> StepOutcome[Collection]:
        """Wait until every replica in the Collection record is ACTIVE."""
        def all_active(record: Optional[Collection]) -> bool:
            if record is None:
                return False
            if any(r.state == ReplicaState.FAILED for r in record.replicas()):
                return True
            return record.all_replicas_in_state(ReplicaState.ACTIVE)

        try:
            record = await self.reader.wait_for_collection(collection, all_active, timeout, interval)
        except StateWaitTimeout as e:
            return StepOutcome.failure(
                ProvisioningFailure(
                    f"Could not find new collection {collection} with all replicas active "
                    f"after {e.waited_seconds:.0f} seconds"
                )
            )

        failed = [r.core for r in record.replicas() if r.state == ReplicaState.FAILED]
        if failed:
            return StepOutcome.failure(
                ProvisioningFailure(
                    f"Replicas of {collection} failed: {', '.join(sorted(failed))}",
                    failures={core: ReplicaState.FAILED.value for core in failed},
                )
            )
        return StepOutcome.success(record)


__all__ = ["ReplicaStateMonitor"]
