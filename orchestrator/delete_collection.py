# ============================================================================
# DELETE COLLECTION COMMAND
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Orchestrator - Collection removal and create rollback
# PURPOSE: Remove every artifact of a collection
# CREATED: 18 OCT 2026
# ============================================================================
"""
Delete Collection Command

Removes a collection in this order:

1. UNLOAD every core (best effort; unreachable nodes are logged)
2. Remove the collection from cluster state (queued delete, or direct
   removal of the state record and per-replica records)
3. Remove /collections/<name> recursively
4. Delete a derived .AUTOCREATED configset no other collection uses

Used directly and as the rollback path of CreateCollectionCommand, which
passes the cores it dispatched because, under the queued protocol, they
may not all be visible in the record yet.
"""

from typing import List, Optional, Tuple

from core.errors import ServerError, StateWaitTimeout
from core.logging import get_logger, log_checkpoint, log_context
from core.outcome import StepOutcome
from orchestrator.context import CommandContext

logger = get_logger(__name__)


class DeleteCollectionCommand:
    """Deletes a collection and everything it owns."""

    def __init__(self, ctx: CommandContext):
        self.ctx = ctx

    async def execute(
        self,
        name: str,
        created_config: Optional[str] = None,
        per_replica_state: Optional[bool] = None,
        extra_cores: Optional[List[Tuple[str, str, str]]] = None,
    ) -> StepOutcome[None]:
        """
        Delete collection name.

        Args:
            name: Collection name
            created_config: Derived configset to remove if unused
            per_replica_state: Protocol to use when no state record exists
            extra_cores: (node_name, base_url, core) dispatched but maybe
                not recorded

        Returns:
            StepOutcome (ServerError if a store operation failed)
        """
        ctx = self.ctx
        with log_context(collection=name, operation="delete_collection"):
            try:
                record = await ctx.collections.get_state(name)

                targets = {}
                if record is not None:
                    for replica in record.replicas():
                        targets[replica.core] = (replica.node_name, replica.base_url, replica.core)
                for node_name, base_url, core in extra_cores or []:
                    targets.setdefault(core, (node_name, base_url, core))
                await ctx.tracker.unload_all(list(targets.values()))

                if record is not None:
                    per_replica_state = record.per_replica_state
                writer = ctx.writers.for_protocol(bool(per_replica_state))
                outcome = await writer.remove(name)
                if not outcome.ok:
                    logger.error(f"Could not remove {name} from cluster state: {outcome.error.message}")
                elif record is not None and not writer.per_replica_state:
                    await self._wait_removed(name)

                await ctx.collections.remove_collection(name)

                if created_config:
                    snapshot = await ctx.reader.refresh()
                    remaining = [
                        c.config_name for c in snapshot.collections.values() if c.name != name
                    ]
                    await ctx.configsets.delete_if_unused(created_config, remaining)
                else:
                    await ctx.reader.refresh()

            except Exception as e:
                logger.exception(f"Failed to delete collection {name}: {e}")
                return StepOutcome.failure(
                    ServerError(f"Failed to delete collection {name}: {e}")
                )

            log_checkpoint("collection_deleted", {"collection": name})
            logger.info(f"Deleted collection {name}")
            return StepOutcome.success()

    async def _wait_removed(self, name: str) -> None:
        """Queued delete: wait for the record to disappear (tolerated on timeout)."""
        try:
            await self.ctx.reader.wait_for_collection(
                name,
                lambda record: record is None,
                timeout=self.ctx.timeouts.collection_removed_timeout,
                interval=self.ctx.timeouts.poll_interval,
            )
        except StateWaitTimeout:
            logger.warning(f"Collection {name} still in cluster state; removing its subtree anyway")


__all__ = ["DeleteCollectionCommand"]
