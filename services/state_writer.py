# ============================================================================
# CLUSTER STATE WRITER
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Service - Queued and direct cluster-state write protocols
# PURPOSE: Publish collection topology through one of two protocols
# CREATED: 18 OCT 2026
# ============================================================================
"""
Cluster State Writer

Two mutually exclusive protocols, chosen once per collection by its
per_replica_state flag:

QueuedStateWriter (legacy, per_replica_state=False)
    Every mutation becomes a StateUpdateMessage on the ordered queue. The
    single active state updater applies it later. Nothing is visible when
    a publish call returns; callers poll the store.

DirectStateWriter (per_replica_state=True)
    Read the versioned Collection record, apply a pure mutator, write the
    whole record back conditional on the version read. A version conflict
    re-reads and re-applies, up to cas_max_attempts.

Both expose the same methods and return StepOutcome values:
    publish_initial(collection)
    publish_replica(collection, shard, core, node_name, base_url, type)
    modify(collection, props)
    report_state(collection, replica_name, core, state)
    remove(collection)
    finalize(collection)
"""

from typing import Any, Callable, Dict, Optional, Union

from core.config import get_defaults
from core.contracts import ReplicaState, ReplicaType
from core.errors import PreconditionViolation, ServerError
from core.logging import get_logger
from core.models import Collection, Replica, StateUpdateMessage, build_core_node_name
from core.outcome import StepOutcome
from messaging import StateUpdatePublisher
from repositories import BadVersionError, CollectionRepository, NodeExistsError, NoNodeError
from services import mutators

logger = get_logger(__name__)


# ============================================================================
# QUEUED (LEGACY) PROTOCOL
# ============================================================================

class QueuedStateWriter:
    """Writes by enqueueing StateUpdateMessage instances."""

    per_replica_state = False

    def __init__(self, publisher: StateUpdatePublisher):
        self.publisher = publisher

    async def _enqueue(self, message: StateUpdateMessage) -> StepOutcome[None]:
        if await self.publisher.publish(message):
            return StepOutcome.success()
        return StepOutcome.failure(
            ServerError(
                f"Could not queue {message.operation.value} for collection {message.collection}"
            )
        )

    async def publish_initial(self, collection: Collection) -> StepOutcome[Collection]:
        outcome = await self._enqueue(StateUpdateMessage.create(collection))
        if not outcome.ok:
            return StepOutcome.failure(outcome.error)
        return StepOutcome.success(collection)

    async def publish_replica(
        self,
        collection: str,
        shard: str,
        core: str,
        node_name: str,
        base_url: str,
        replica_type: ReplicaType,
    ) -> StepOutcome[Optional[Replica]]:
        """Queue an addreplica. The replica record name is assigned when applied."""
        outcome = await self._enqueue(
            StateUpdateMessage.add_replica(
                collection, shard, core, node_name, base_url, replica_type
            )
        )
        if not outcome.ok:
            return StepOutcome.failure(outcome.error)
        return StepOutcome.success(None)

    async def modify(self, collection: str, props: Dict[str, Any]) -> StepOutcome[None]:
        return await self._enqueue(StateUpdateMessage.modify_collection(collection, props))

    async def report_state(
        self,
        collection: str,
        replica_name: Optional[str],
        core: str,
        state: ReplicaState,
    ) -> StepOutcome[None]:
        return await self._enqueue(StateUpdateMessage.replica_state(collection, core, state))

    async def remove(self, collection: str) -> StepOutcome[None]:
        return await self._enqueue(StateUpdateMessage.delete(collection))

    async def finalize(self, collection: str) -> StepOutcome[None]:
        """Nothing to flush: replica states arrive through the queue."""
        return StepOutcome.success()


# ============================================================================
# DIRECT (CONDITIONAL) PROTOCOL
# ============================================================================

class DirectStateWriter:
    """Writes complete Collection records with optimistic concurrency."""

    per_replica_state = True

    def __init__(self, collections: CollectionRepository, max_attempts: Optional[int] = None):
        self.collections = collections
        self.max_attempts = max_attempts or get_defaults().timeouts.cas_max_attempts

    async def update(
        self,
        name: str,
        mutate: Callable[[Collection], Collection],
    ) -> StepOutcome[Collection]:
        """
        Read-modify-write of one Collection record, retried on conflict.

        mutate must be pure: it may run once per attempt.
        """
        for attempt in range(1, self.max_attempts + 1):
            current = await self.collections.get_state(name)
            if current is None:
                return StepOutcome.failure(
                    ServerError(f"Collection {name} has no state record to update")
                )

            updated = mutate(current)
            updated.znode_version = current.znode_version
            try:
                written = await self.collections.write_state(updated)
                return StepOutcome.success(written)
            except BadVersionError:
                logger.debug(
                    f"Version conflict on {name} (attempt {attempt}/{self.max_attempts}), retrying"
                )
            except NoNodeError:
                return StepOutcome.failure(
                    ServerError(f"Collection {name} state record disappeared during update")
                )

        return StepOutcome.failure(
            ServerError(
                f"Gave up updating collection {name} after {self.max_attempts} version conflicts"
            )
        )

    async def publish_initial(self, collection: Collection) -> StepOutcome[Collection]:
        """Atomically store the complete initial record."""
        try:
            written = await self.collections.create_state(collection)
        except NodeExistsError:
            return StepOutcome.failure(
                PreconditionViolation(f"collection already exists: {collection.name}")
            )
        logger.info(f"Wrote initial state for {collection.name} ({len(collection.shards)} shards)")
        return StepOutcome.success(written)

    async def publish_replica(
        self,
        collection: str,
        shard: str,
        core: str,
        node_name: str,
        base_url: str,
        replica_type: ReplicaType,
    ) -> StepOutcome[Optional[Replica]]:
        """Add the replica to the record and create its DOWN status record."""
        replica_name = build_core_node_name(await self.collections.next_replica_number(collection))

        outcome = await self.update(
            collection,
            lambda current: mutators.add_replica(
                current,
                shard=shard,
                core=core,
                node_name=node_name,
                base_url=base_url,
                replica_type=replica_type,
                replica_name=replica_name,
            ),
        )
        if not outcome.ok:
            return StepOutcome.failure(outcome.error)

        replica = outcome.value.replica_by_core(core)
        await self.collections.set_replica_state(collection, replica.name, ReplicaState.DOWN)
        return StepOutcome.success(replica)

    async def modify(self, collection: str, props: Dict[str, Any]) -> StepOutcome[None]:
        outcome = await self.update(
            collection, lambda current: mutators.modify_collection(current, props)
        )
        return StepOutcome.success() if outcome.ok else StepOutcome.failure(outcome.error)

    async def report_state(
        self,
        collection: str,
        replica_name: Optional[str],
        core: str,
        state: ReplicaState,
    ) -> StepOutcome[None]:
        """Nodes report into their own status record, never the shared one."""
        if replica_name is None:
            record = await self.collections.get_state(collection)
            replica = record.replica_by_core(core) if record else None
            if replica is None:
                return StepOutcome.failure(
                    ServerError(f"Unknown core {core} in collection {collection}")
                )
            replica_name = replica.name
        await self.collections.set_replica_state(collection, replica_name, state)
        return StepOutcome.success()

    async def remove(self, collection: str) -> StepOutcome[None]:
        await self.collections.delete_state(collection)
        await self.collections.store.remove_recursively(
            self.collections.replica_states_path(collection)
        )
        logger.info(f"Removed state record for {collection}")
        return StepOutcome.success()

    async def finalize(self, collection: str) -> StepOutcome[None]:
        """Fold per-replica status records into the shared record."""
        states = await self.collections.get_replica_states(collection)
        if not states:
            return StepOutcome.success()
        outcome = await self.update(
            collection, lambda current: mutators.apply_replica_states(current, states)
        )
        return StepOutcome.success() if outcome.ok else StepOutcome.failure(outcome.error)


StateWriter = Union[QueuedStateWriter, DirectStateWriter]


class StateWriters:
    """Both protocols, selected per collection."""

    def __init__(self, queued: QueuedStateWriter, direct: DirectStateWriter):
        self.queued = queued
        self.direct = direct

    def for_protocol(self, per_replica_state: bool) -> StateWriter:
        return self.direct if per_replica_state else self.queued

    def for_collection(self, collection: Collection) -> StateWriter:
        return self.for_protocol(collection.per_replica_state)


__all__ = [
    "QueuedStateWriter",
    "DirectStateWriter",
    "StateWriter",
    "StateWriters",
]
