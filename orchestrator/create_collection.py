# ============================================================================
# CREATE COLLECTION COMMAND
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Orchestrator - Top-level create command
# PURPOSE: Plan, place, record and provision a new collection; roll back on failure
# CREATED: 18 OCT 2026
# ============================================================================
"""
Create Collection Command

    result, error = await CreateCollectionCommand(ctx).execute(request)

Exactly one of result and error is set.

Sequence:
     0. Preconditions (no mutation): name/alias collisions, replica counts,
        shard plan, companion collection, configset resolution
     1. Plan shard names and hash ranges
     2. Create /collections/<name> (idempotent), clearing stale terms
     3. Publish the initial record (direct write, or queued create + wait)
     4. Assign replicas to nodes under the session lease
     5. No placements: succeed with an empty topology
     6. Provision companion replicas where a target node lacks one
     7. Register every replica in cluster state
     8. Create cores in parallel (queued protocol: once records are visible)
     9. Direct protocol: wait for every replica to report ACTIVE
    10. Any failure in 3-9 or 12: full rollback, one aggregated error
    11. Record the colocation link on the companion (timeout tolerated)
    12. Register the alias when it differs from the name
    13. The session lease is released on every exit path

The whole sequence holds the collection-name lock, so a second create of
the same name waits, then fails its name check.

Each step returns a StepOutcome. The sequence checks it and branches to
_fail(), which rolls back whatever the run has created so far.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from core.contracts import RequestState
from core.errors import (
    CollectionAdminError,
    PreconditionViolation,
    ProvisioningFailure,
    ServerError,
    StateWaitTimeout,
)
from core.logging import get_logger, log_checkpoint, log_context
from core.models import (
    AssignmentLease,
    AssignRequest,
    Collection,
    CreateCollectionRequest,
    CreateCollectionResult,
    ReplicaPosition,
    RequestStatus,
    build_core_name,
)
from core.outcome import StepOutcome
from orchestrator.add_replica import AddReplicaCommand
from orchestrator.context import CommandContext
from orchestrator.delete_collection import DeleteCollectionCommand
from services import (
    ClusterState,
    CoreCreateRequest,
    OverlayClusterState,
    ProvisioningResult,
    check_replica_type_counts,
    mutators,
    plan_shard_ranges,
    plan_shards,
    resolve_candidate_nodes,
)
from services.configset_service import DEFAULT_CONFIG_WARNING, uses_default_config
from services.state_writer import StateWriter

logger = get_logger(__name__)


@dataclass
class _PendingReplica:
    """A placed replica between registration and core creation."""
    position: ReplicaPosition
    core: str
    base_url: str
    replica_name: Optional[str] = None


@dataclass
class CreateRun:
    """Artifacts created so far by one run; drives rollback."""
    request: CreateCollectionRequest
    config_name: Optional[str] = None
    created_config: Optional[str] = None
    metadata_node: bool = False
    state_published: bool = False
    linked_companion: Optional[str] = None
    # (node_name, base_url, core) of every registered replica
    dispatched: List[Tuple[str, str, str]] = field(default_factory=list)
    shard_cores: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def needs_rollback(self) -> bool:
        return self.metadata_node or self.state_published or self.created_config is not None


class CreateCollectionCommand:
    """Creates a sharded, replicated collection."""

    def __init__(self, ctx: CommandContext):
        self.ctx = ctx

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def execute(
        self,
        request: CreateCollectionRequest,
    ) -> Tuple[Optional[CreateCollectionResult], Optional[CollectionAdminError]]:
        """
        Create the collection described by request.

        Returns:
            (result, None) on success, (None, error) on failure
        """
        run = CreateRun(request=request)
        with log_context(
            collection=request.name,
            request_id=request.async_id,
            operation="create_collection",
        ):
            # Same-name creates run one at a time; a later one fails its
            # name check instead of racing the first one's artifacts
            async with self.ctx.locks.collection_lock(request.name, blocking=True):
                async with self.ctx.sessions.scope(request.name) as lease:
                    try:
                        result, error = await self._run(run, lease)
                    except Exception as e:
                        logger.exception(f"Unexpected failure creating {request.name}: {e}")
                        result, error = await self._fail(
                            run, ServerError(f"Failed to create collection {request.name}: {e}")
                        )

            await self._record_async_outcome(run, result, error)
            return result, error

    # =========================================================================
    # SEQUENCE
    # =========================================================================

    async def _run(
        self,
        run: CreateRun,
        lease: AssignmentLease,
    ) -> Tuple[Optional[CreateCollectionResult], Optional[CollectionAdminError]]:
        request = run.request
        ctx = self.ctx
        name = request.name

        checked = await self._check_preconditions(request)
        if not checked.ok:
            return None, checked.error
        shard_names = checked.value

        resolved = await ctx.configsets.resolve(name, request.config)
        if not resolved.ok:
            return None, resolved.error
        run.config_name = resolved.value.name
        if resolved.value.created:
            run.created_config = resolved.value.name

        # Metadata node
        await ctx.collections.remove_terms(name)
        run.metadata_node = await ctx.collections.create_metadata_node(
            name, {"configName": run.config_name, "properties": request.properties}
        )
        log_checkpoint(
            "collection_node_created", {"config": run.config_name, "created": run.metadata_node}
        )

        # Initial topology
        initial = mutators.build_collection(
            name=name,
            router=request.router_name,
            shard_ranges=plan_shard_ranges(request.router_name, shard_names),
            config_name=run.config_name,
            per_replica_state=request.per_replica_state,
            max_shards_per_node=request.max_shards_per_node,
            nrt_replicas=request.effective_nrt_replicas,
            tlog_replicas=request.tlog_replicas,
            pull_replicas=request.pull_replicas,
            with_collection=request.with_collection,
            properties=request.properties,
        )
        writer = ctx.writers.for_protocol(request.per_replica_state)
        published = await self._publish_initial(run, writer, initial)
        if not published.ok:
            if isinstance(published.error, PreconditionViolation):
                # The record belongs to another creator; only our configset is ours
                run.metadata_node = False
            return await self._fail(run, published.error)

        # Placement
        snapshot = await ctx.reader.refresh()
        nodes = resolve_candidate_nodes(
            snapshot.live_nodes,
            request.create_node_set,
            shuffle=request.create_node_set_shuffle,
        )
        max_per_node = request.max_shards_per_node
        assign_request = AssignRequest(
            collection=name,
            shard_names=shard_names,
            nrt_replicas=request.effective_nrt_replicas,
            tlog_replicas=request.tlog_replicas,
            pull_replicas=request.pull_replicas,
            nodes=nodes,
            max_shards_per_node=None if max_per_node == -1 else max_per_node,
        )
        view = OverlayClusterState(base=snapshot, pending={name: published.value})
        assigned = await ctx.assigner.assign(
            assign_request, view, lease, policy=request.placement_policy
        )
        if not assigned.ok:
            return await self._fail(run, assigned.error)
        positions = assigned.value
        log_checkpoint("placements_computed", {"replicas": len(positions)})

        provisioning = ProvisioningResult()
        if not positions:
            logger.warning(f"It is unusual to create a collection ({name}) without cores")
        else:
            companion = await self._provision_companions(request, positions, snapshot)
            if not companion.ok:
                return await self._fail(run, companion.error)

            registered = await self._register_replicas(run, writer, positions)
            if not registered.ok:
                return await self._fail(run, registered.error)
            pending = registered.value

            if not writer.per_replica_state:
                visible = await self._await_registered(name, pending)
                if not visible.ok:
                    return await self._fail(run, visible.error)

            provisioning = await ctx.tracker.submit_all(
                self._core_requests(run, pending),
                async_prefix=request.async_id,
            )
            log_checkpoint(
                "cores_dispatched",
                {"success": len(provisioning.success), "failure": len(provisioning.failure)},
            )
            if not provisioning.ok:
                return await self._fail(
                    run,
                    ProvisioningFailure(
                        f"Underlying core creation failed while creating collection: {name}",
                        failures=provisioning.failure_summary(),
                    ),
                )

            settled = await self._await_active(request, writer, pending)
            if not settled.ok:
                return await self._fail(run, settled.error)

        if request.with_collection:
            await self._link_companion(run)

        alias = request.effective_alias
        if alias != name:
            try:
                await ctx.aliases.set_alias(alias, name)
            except Exception as e:
                logger.exception(f"Could not create alias {alias}: {e}")
                return await self._fail(
                    run, ServerError(f"Could not create alias {alias} for {name}: {e}")
                )

        await ctx.reader.refresh()
        result = self._build_result(run, published.value, provisioning)
        log_checkpoint("collection_created", {"shards": len(shard_names)})
        logger.info(f"Created collection {name} with {len(positions)} replicas")
        return result, None

    # =========================================================================
    # STEPS
    # =========================================================================

    async def _check_preconditions(
        self,
        request: CreateCollectionRequest,
    ) -> StepOutcome[List[str]]:
        """Checks with no side effects. Returns the planned shard names."""
        ctx = self.ctx
        name = request.name
        snapshot = await ctx.reader.refresh()

        if snapshot.has_collection(name) or snapshot.aliases.has_alias(name):
            return StepOutcome.failure(PreconditionViolation(f"collection already exists: {name}"))

        alias = request.effective_alias
        if alias != name and (
            snapshot.aliases.has_alias(alias) or snapshot.has_collection(alias)
        ):
            return StepOutcome.failure(
                PreconditionViolation(f"collection alias already exists: {alias}")
            )

        if request.async_id and await ctx.request_status.exists(request.async_id):
            return StepOutcome.failure(
                PreconditionViolation(
                    f"Task with the same requestid already exists: {request.async_id}"
                )
            )

        if request.max_shards_per_node == 0 or request.max_shards_per_node < -1:
            return StepOutcome.failure(
                PreconditionViolation(
                    f"maxShardsPerNode must be positive or -1, got {request.max_shards_per_node}"
                )
            )

        counts_error = check_replica_type_counts(
            request.effective_nrt_replicas, request.tlog_replicas, request.pull_replicas
        )
        if counts_error is not None:
            return StepOutcome.failure(counts_error)

        planned = plan_shards(request.router_name, request.shards, request.num_shards)
        if not planned.ok:
            return planned

        if request.with_collection:
            companion = snapshot.get_collection(request.with_collection)
            if companion is None:
                return StepOutcome.failure(
                    PreconditionViolation(
                        f"The 'withCollection' does not exist: {request.with_collection}"
                    )
                )
            if len(companion.shards) > 1:
                return StepOutcome.failure(
                    PreconditionViolation(
                        f"The `withCollection` must have only one shard, found: "
                        f"{len(companion.shards)}"
                    )
                )

        return planned

    async def _publish_initial(
        self,
        run: CreateRun,
        writer: StateWriter,
        initial: Collection,
    ) -> StepOutcome[Collection]:
        published = await writer.publish_initial(initial)
        if not published.ok:
            return published
        run.state_published = True

        if writer.per_replica_state:
            return published

        timeouts = self.ctx.timeouts
        try:
            visible = await self.ctx.reader.wait_for_collection(
                initial.name,
                lambda record: record is not None,
                timeout=timeouts.collection_visible_timeout,
                interval=timeouts.poll_interval,
            )
        except StateWaitTimeout as e:
            return StepOutcome.failure(
                ServerError(
                    f"Could not fully create collection: {initial.name}",
                    details={"waited_seconds": e.waited_seconds},
                )
            )
        return StepOutcome.success(visible)

    async def _provision_companions(
        self,
        request: CreateCollectionRequest,
        positions: List[ReplicaPosition],
        snapshot: ClusterState,
    ) -> StepOutcome[None]:
        """
        Place one companion replica on every target node lacking one.

        snapshot is the view placement was computed from; it is replaced by
        a fresh read after each replica this step adds.
        """
        if not request.with_collection:
            return StepOutcome.success()

        add_replica = AddReplicaCommand(self.ctx)
        for node in sorted({p.node for p in positions}):
            companion = snapshot.get_collection(request.with_collection)
            if companion is not None and companion.replicas_on_node(node):
                continue
            logger.info(f"Adding companion replica of {request.with_collection} on {node}")
            added = await add_replica.execute(request.with_collection, node)
            if not added.ok:
                return StepOutcome.failure(added.error)
            snapshot = await self.ctx.reader.refresh()
        return StepOutcome.success()

    async def _register_replicas(
        self,
        run: CreateRun,
        writer: StateWriter,
        positions: List[ReplicaPosition],
    ) -> StepOutcome[List[_PendingReplica]]:
        """Record every replica before any core is created."""
        ctx = self.ctx
        name = run.request.name
        pending: List[_PendingReplica] = []

        for position in positions:
            number = await ctx.collections.next_replica_number(name)
            core = build_core_name(name, position.shard, position.type, number)
            base_url = await ctx.live_nodes.base_url(position.node)

            with log_context(shard=position.shard, core=core, node_name=position.node):
                published = await writer.publish_replica(
                    name, position.shard, core, position.node, base_url, position.type
                )
                if not published.ok:
                    return StepOutcome.failure(published.error)

            run.dispatched.append((position.node, base_url, core))
            run.shard_cores.setdefault(position.shard, []).append(core)
            replica = published.value
            pending.append(
                _PendingReplica(
                    position=position,
                    core=core,
                    base_url=base_url,
                    replica_name=replica.name if replica is not None else None,
                )
            )

        return StepOutcome.success(pending)

    async def _await_registered(
        self,
        name: str,
        pending: List[_PendingReplica],
    ) -> StepOutcome[None]:
        """Queued protocol: wait for every replica record, then take its name."""
        cores = [p.core for p in pending]
        timeouts = self.ctx.timeouts
        try:
            record = await self.ctx.reader.wait_for_collection(
                name,
                lambda c: c is not None and all(c.replica_by_core(core) for core in cores),
                timeout=timeouts.replicas_visible_timeout,
                interval=timeouts.poll_interval,
            )
        except StateWaitTimeout as e:
            return StepOutcome.failure(
                ServerError(
                    f"Timed out waiting to see all replicas of {name} in cluster state",
                    details={"waited_seconds": e.waited_seconds},
                )
            )

        for item in pending:
            item.replica_name = record.replica_by_core(item.core).name
        return StepOutcome.success()

    def _core_requests(
        self,
        run: CreateRun,
        pending: List[_PendingReplica],
    ) -> List[CoreCreateRequest]:
        request = run.request
        return [
            CoreCreateRequest(
                node_name=item.position.node,
                base_url=item.base_url,
                core=item.core,
                collection=request.name,
                shard=item.position.shard,
                replica_type=item.position.type,
                config_name=run.config_name,
                replica_name=item.replica_name,
                properties=request.properties,
            )
            for item in pending
        ]

    async def _await_active(
        self,
        request: CreateCollectionRequest,
        writer: StateWriter,
        pending: List[_PendingReplica],
    ) -> StepOutcome[None]:
        """Direct protocol always waits; queued only with waitForFinalState."""
        timeouts = self.ctx.timeouts

        if writer.per_replica_state:
            waited = await self.ctx.monitor.wait_all_active(
                request.name,
                [item.replica_name for item in pending],
                timeout=timeouts.replicas_active_timeout,
                interval=timeouts.poll_interval,
            )
            if not waited.ok:
                return StepOutcome.failure(waited.error)
            return await writer.finalize(request.name)

        if request.wait_for_final_state:
            waited = await self.ctx.monitor.wait_record_all_active(
                request.name,
                timeout=timeouts.replicas_active_timeout,
                interval=timeouts.poll_interval,
            )
            if not waited.ok:
                return StepOutcome.failure(waited.error)

        return StepOutcome.success()

    async def _link_companion(self, run: CreateRun) -> None:
        """Record colocated_with on the companion; a timeout is only logged."""
        request = run.request
        ctx = self.ctx
        companion_name = request.with_collection
        companion = await ctx.collections.get_state(companion_name)
        if companion is None:
            logger.warning(f"Companion collection {companion_name} disappeared before linking")
            return

        linked = await ctx.writers.for_collection(companion).modify(
            companion_name, {"colocated_with": request.name}
        )
        if not linked.ok:
            logger.warning(f"Could not link {companion_name} to {request.name}: {linked.error.message}")
            return
        run.linked_companion = companion_name

        try:
            await ctx.reader.wait_for_collection(
                companion_name,
                lambda c: c is not None and c.colocated_with == request.name,
                timeout=ctx.timeouts.colocation_link_timeout,
                interval=ctx.timeouts.poll_interval,
            )
        except StateWaitTimeout:
            logger.warning(
                f"Timed out waiting to see the colocated_with property set on "
                f"collection {companion_name}"
            )

    # =========================================================================
    # RESULT, FAILURE, ROLLBACK
    # =========================================================================

    def _build_result(
        self,
        run: CreateRun,
        record: Collection,
        provisioning: ProvisioningResult,
    ) -> CreateCollectionResult:
        request = run.request
        shards = {shard: list(run.shard_cores.get(shard, [])) for shard in record.shards}

        warnings: List[str] = []
        if uses_default_config(request.config):
            warnings.append(DEFAULT_CONFIG_WARNING)

        return CreateCollectionResult(
            collection=request.name,
            config_name=run.config_name,
            shards=shards,
            success=provisioning.success,
            warnings=warnings,
            alias=request.effective_alias if request.effective_alias != request.name else None,
            request_id=request.async_id,
        )

    async def _fail(
        self,
        run: CreateRun,
        error: CollectionAdminError,
    ) -> Tuple[None, CollectionAdminError]:
        """Roll back everything the run created, then report error."""
        logger.error(f"Creating collection {run.request.name} failed: {error.message}")
        if run.needs_rollback:
            rolled_back = await self.rollback(run)
            if not rolled_back.ok:
                error.details["rollback"] = rolled_back.error.message
        return None, error

    async def rollback(self, run: CreateRun) -> StepOutcome[None]:
        """
        Delete every artifact of a failed run.

        A run that never wrote the collection's metadata node or state
        record only removes the configset it derived.
        """
        if run.linked_companion:
            await self._unlink_companion(run)

        if not (run.metadata_node or run.state_published):
            outcome = await self._discard_config(run)
        else:
            outcome = await DeleteCollectionCommand(self.ctx).execute(
                run.request.name,
                created_config=run.created_config,
                per_replica_state=run.request.per_replica_state,
                extra_cores=run.dispatched,
            )
        log_checkpoint("collection_rolled_back", {"ok": outcome.ok})
        return outcome

    async def _unlink_companion(self, run: CreateRun) -> None:
        """Clear colocated_with on the companion if it still names this run's collection."""
        ctx = self.ctx
        name = run.request.name
        companion = await ctx.collections.get_state(run.linked_companion)
        if companion is None or companion.colocated_with != name:
            return
        cleared = await ctx.writers.for_collection(companion).modify(
            run.linked_companion, {"colocated_with": None}
        )
        if not cleared.ok:
            logger.warning(
                f"Could not clear colocated_with on {run.linked_companion}: {cleared.error.message}"
            )

    async def _discard_config(self, run: CreateRun) -> StepOutcome[None]:
        if not run.created_config:
            return StepOutcome.success()
        try:
            snapshot = await self.ctx.reader.refresh()
            await self.ctx.configsets.delete_if_unused(
                run.created_config, [c.config_name for c in snapshot.collections.values()]
            )
        except Exception as e:
            logger.exception(f"Could not remove configset {run.created_config}: {e}")
            return StepOutcome.failure(
                ServerError(f"Could not remove configset {run.created_config}: {e}")
            )
        return StepOutcome.success()

    async def _record_async_outcome(
        self,
        run: CreateRun,
        result: Optional[CreateCollectionResult],
        error: Optional[CollectionAdminError],
    ) -> None:
        """Store the final outcome under the caller's async id."""
        request_id = run.request.async_id
        if not request_id:
            return
        if isinstance(error, PreconditionViolation) and not run.needs_rollback:
            # Duplicate ids must not overwrite the stored outcome of the original
            if await self.ctx.request_status.exists(request_id):
                return

        failure: Dict[str, List[str]] = {}
        if error is not None:
            per_node = error.details.get("failures") or {}
            failure = {node: [str(msg)] for node, msg in per_node.items()} or {
                "error": [error.message]
            }

        try:
            previous = await self.ctx.request_status.get(request_id)
            await self.ctx.request_status.save(
                RequestStatus(
                    request_id=request_id,
                    state=RequestState.COMPLETED if error is None else RequestState.FAILED,
                    success=result.success if result else {},
                    failure=failure,
                    message=error.message if error else f"Created collection {run.request.name}",
                    tracked=previous.tracked if previous else {},
                )
            )
        except Exception as e:
            logger.error(f"Could not store outcome of request {request_id}: {e}")


__all__ = ["CreateCollectionCommand", "CreateRun"]
