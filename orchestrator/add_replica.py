# ============================================================================
# ADD REPLICA COMMAND
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Orchestrator - Single replica provisioning
# PURPOSE: Add one replica of an existing collection to a node
# CREATED: 18 OCT 2026
# ============================================================================
"""
Add Replica Command

Registers one replica in cluster state, creates its core on the target
node and waits until it reports ACTIVE. Used to place a companion
(withCollection) replica next to a new collection's replica.
"""

from typing import Optional

from core.contracts import ReplicaState, ReplicaType
from core.errors import PreconditionViolation, ProvisioningFailure, StateWaitTimeout
from core.logging import get_logger, log_context
from core.models import Replica, build_core_name
from core.outcome import StepOutcome
from orchestrator.context import CommandContext
from services import CoreCreateRequest

logger = get_logger(__name__)


class AddReplicaCommand:
    """Adds one replica to an existing collection."""

    def __init__(self, ctx: CommandContext):
        self.ctx = ctx

    async def execute(
        self,
        collection: str,
        node_name: str,
        shard: Optional[str] = None,
        replica_type: ReplicaType = ReplicaType.NRT,
        wait_for_active: bool = True,
    ) -> StepOutcome[Replica]:
        """
        Add a replica of collection on node_name.

        Args:
            collection: Existing collection
            node_name: Target live node
            shard: Shard to replicate (defaults to the first shard)
            replica_type: Replica type
            wait_for_active: Wait until the replica reports ACTIVE

        Returns:
            StepOutcome with the recorded Replica
        """
        ctx = self.ctx
        timeouts = ctx.timeouts

        record = await ctx.collections.get_state(collection)
        if record is None:
            return StepOutcome.failure(
                PreconditionViolation(f"Collection not found: {collection}")
            )
        if shard is None:
            if not record.shards:
                return StepOutcome.failure(
                    PreconditionViolation(f"Collection {collection} has no shards")
                )
            shard = next(iter(record.shards))
        elif shard not in record.shards:
            return StepOutcome.failure(
                PreconditionViolation(f"Collection {collection} has no shard {shard}")
            )

        number = await ctx.collections.next_replica_number(collection)
        core = build_core_name(collection, shard, replica_type, number)
        base_url = await ctx.live_nodes.base_url(node_name)

        with log_context(collection=collection, shard=shard, core=core, node_name=node_name):
            writer = ctx.writers.for_collection(record)
            published = await writer.publish_replica(
                collection, shard, core, node_name, base_url, replica_type
            )
            if not published.ok:
                return StepOutcome.failure(published.error)

            replica = published.value
            if replica is None:
                try:
                    visible = await ctx.reader.wait_for_collection(
                        collection,
                        lambda c: c is not None and c.replica_by_core(core) is not None,
                        timeout=timeouts.replicas_visible_timeout,
                        interval=timeouts.poll_interval,
                    )
                except StateWaitTimeout as e:
                    return StepOutcome.failure(
                        ProvisioningFailure(f"Replica {core} never became visible: {e.message}")
                    )
                replica = visible.replica_by_core(core)

            result = await ctx.tracker.submit_all(
                [
                    CoreCreateRequest(
                        node_name=node_name,
                        base_url=base_url,
                        core=core,
                        collection=collection,
                        shard=shard,
                        replica_type=replica_type,
                        config_name=record.config_name,
                        replica_name=replica.name,
                        properties=record.properties,
                    )
                ]
            )
            if not result.ok:
                return StepOutcome.failure(
                    ProvisioningFailure(
                        f"Could not create core {core} on {node_name}",
                        failures=result.failure_summary(),
                    )
                )

            if wait_for_active:
                waited = await self._wait_active(collection, replica, record.per_replica_state)
                if not waited.ok:
                    return StepOutcome.failure(waited.error)

            await ctx.reader.refresh()
            logger.info(f"Added replica {replica.name} ({core}) to {collection}")
            return StepOutcome.success(replica)

    async def _wait_active(
        self,
        collection: str,
        replica: Replica,
        per_replica_state: bool,
    ) -> StepOutcome[None]:
        timeouts = self.ctx.timeouts
        if per_replica_state:
            outcome = await self.ctx.monitor.wait_all_active(
                collection,
                [replica.name],
                timeout=timeouts.replicas_active_timeout,
                interval=timeouts.poll_interval,
            )
            return StepOutcome.success() if outcome.ok else StepOutcome.failure(outcome.error)

        try:
            await self.ctx.reader.wait_for_collection(
                collection,
                lambda c: (
                    c is not None
                    and c.replica_by_core(replica.core) is not None
                    and c.replica_by_core(replica.core).state == ReplicaState.ACTIVE
                ),
                timeout=timeouts.replicas_active_timeout,
                interval=timeouts.poll_interval,
            )
        except StateWaitTimeout as e:
            return StepOutcome.failure(
                ProvisioningFailure(f"Replica {replica.core} never became active: {e.message}")
            )
        return StepOutcome.success()


__all__ = ["AddReplicaCommand"]
