# ============================================================================
# CREATE COLLECTION TESTS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Tests - End-to-end create command over in-memory doubles
# PURPOSE: Verify the full create sequence, its errors and its rollback
# CREATED: 18 OCT 2026
# ============================================================================
"""
Create Collection Tests

Every test drives CreateCollectionCommand against the conftest Cluster:
the real repositories, writers, assigner, tracker and state updater over a
dict-backed store, a fake core-admin client and an inline queue.

Covers:
1. Success under both write protocols
2. Preconditions leave the store untouched
3. Capacity, remote and activation failures roll back completely
4. Companion (withCollection) replicas and the colocation link
5. Aliases, configset derivation and the default-config warning
6. Async request ids and session lease release
7. Same-name creates racing each other

Run with:
    pytest tests/test_create_collection.py -v
"""

import asyncio

from unittest.mock import AsyncMock

from core.contracts import ErrorCode, ReplicaState, RequestState, RouterName
from core.errors import (
    CapacityExceeded,
    ConfigurationNotFound,
    PreconditionViolation,
    ProvisioningFailure,
    ServerError,
)
from core.models import CreateCollectionRequest
from orchestrator import CreateCollectionCommand
from services import mutators
from services.cluster_state import ClusterState
from services.configset_service import DEFAULT_CONFIG_WARNING

from conftest import Cluster

NODE1 = "node1:8983_solr"
NODE2 = "node2:8983_solr"
NODE3 = "node3:8983_solr"


def _create(cluster: Cluster, **fields):
    fields.setdefault("config", "conf1")
    request = CreateCollectionRequest(**fields)
    return asyncio.run(CreateCollectionCommand(cluster.ctx).execute(request))


def _record(cluster: Cluster, name: str):
    return asyncio.run(cluster.ctx.collections.get_state(name))


def _bare_cluster() -> Cluster:
    """Live nodes and bundles, but no node ever reports its cores ACTIVE."""
    cluster = Cluster()

    async def setup():
        await cluster.add_live_nodes(NODE1, NODE2, NODE3)
        await cluster.upload_config("conf1")
        await cluster.upload_config("_default")

    asyncio.run(setup())
    return cluster


# ============================================================================
# SUCCESS
# ============================================================================

class TestCreateSuccess:

    def test_two_shards_queued_protocol(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", num_shards=2)

        assert error is None
        assert result.collection == "foo"
        assert result.config_name == "conf1"
        assert result.warnings == []
        assert result.shards == {
            "shard1": ["foo_shard1_replica_n1"],
            "shard2": ["foo_shard2_replica_n2"],
        }
        assert sorted(result.success) == [NODE1, NODE2]

        record = _record(ready_cluster, "foo")
        assert record.shards["shard1"].range == "80000000-ffffffff"
        assert record.shards["shard2"].range == "0-7fffffff"
        assert {r.node_name for r in record.replicas()} == {NODE1, NODE2}
        assert all(r.state == ReplicaState.ACTIVE for r in record.replicas())
        assert ready_cluster.queue.operations() == [
            "create", "addreplica", "addreplica", "state", "state",
        ]

    def test_metadata_node_carries_config(self, ready_cluster):
        _create(ready_cluster, name="foo", num_shards=1, properties={"owner": "search"})

        props = asyncio.run(ready_cluster.ctx.collections.get_props("foo"))
        assert props == {"configName": "conf1", "properties": {"owner": "search"}}

    def test_core_requests_carry_replica_names(self, ready_cluster):
        _create(ready_cluster, name="foo", num_shards=2)

        requests = ready_cluster.core_admin.created
        record = _record(ready_cluster, "foo")
        for request in requests:
            assert record.replica_by_core(request.core).name == request.replica_name
            assert request.config_name == "conf1"

    def test_direct_protocol(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", num_shards=2, per_replica_state=True)

        assert error is None
        assert ready_cluster.queue.published == []

        record = _record(ready_cluster, "foo")
        assert record.per_replica_state is True
        assert all(r.state == ReplicaState.ACTIVE for r in record.replicas())
        for shard in record.shards.values():
            assert sum(1 for r in shard.replicas.values() if r.leader) == 1

        states = asyncio.run(ready_cluster.ctx.collections.get_replica_states("foo"))
        assert set(states.values()) == {ReplicaState.ACTIVE}

    def test_implicit_router(self, ready_cluster):
        result, error = _create(
            ready_cluster,
            name="logs",
            router_name=RouterName.IMPLICIT,
            shards=["2024", "2025"],
        )

        assert error is None
        record = _record(ready_cluster, "logs")
        assert list(record.shards) == ["2024", "2025"]
        assert all(s.range is None for s in record.shards.values())

    def test_unbounded_per_node_stacks_on_one_node(self, ready_cluster):
        result, error = _create(
            ready_cluster,
            name="foo",
            num_shards=2,
            nrt_replicas=2,
            max_shards_per_node=-1,
            create_node_set=[NODE1],
        )

        assert error is None
        assert set(result.success) == {NODE1}
        assert len(ready_cluster.core_admin.created) == 4

    def test_empty_node_set_creates_topology_only(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", num_shards=2, create_node_set=["EMPTY"])

        assert error is None
        assert result.shards == {"shard1": [], "shard2": []}
        assert result.success == {}
        assert ready_cluster.core_admin.created == []
        assert list(_record(ready_cluster, "foo").replicas()) == []

    def test_wait_for_final_state(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", num_shards=1, wait_for_final_state=True)

        assert error is None
        assert _record(ready_cluster, "foo").all_replicas_in_state(ReplicaState.ACTIVE)

    def test_leftover_metadata_node_is_reused(self, ready_cluster):
        asyncio.run(
            ready_cluster.store.make_path("/collections/foo", {"configName": "stale"})
        )

        result, error = _create(ready_cluster, name="foo", num_shards=1)

        assert error is None
        props = asyncio.run(ready_cluster.ctx.collections.get_props("foo"))
        assert props == {"configName": "stale"}

    def test_stale_terms_removed(self, ready_cluster):
        asyncio.run(ready_cluster.store.make_path("/collections/foo/terms/shard1", {"core_node1": 3}))

        _, error = _create(ready_cluster, name="foo", num_shards=1)

        assert error is None
        assert ready_cluster.store.paths_under("/collections/foo/terms") == []
        props = asyncio.run(ready_cluster.ctx.collections.get_props("foo"))
        assert props == {"configName": "conf1", "properties": {}}

    def test_bare_parent_node_gets_metadata(self, ready_cluster):
        asyncio.run(ready_cluster.store.make_path("/collections/foo/counter", {"value": 7}))
        assert ready_cluster.store.nodes["/collections/foo"]["data"] is None

        _, error = _create(ready_cluster, name="foo", num_shards=1, properties={"owner": "search"})

        assert error is None
        props = asyncio.run(ready_cluster.ctx.collections.get_props("foo"))
        assert props == {"configName": "conf1", "properties": {"owner": "search"}}

    def test_lease_released(self, ready_cluster):
        _create(ready_cluster, name="foo", num_shards=1)
        _create(ready_cluster, name="foo", num_shards=1)
        assert ready_cluster.ctx.sessions.active_leases == []


# ============================================================================
# PRECONDITIONS
# ============================================================================

class TestPreconditions:

    def test_name_collision_leaves_store_unchanged(self, ready_cluster):
        _create(ready_cluster, name="foo", num_shards=1)
        before = ready_cluster.store.dump()
        created = len(ready_cluster.core_admin.created)

        result, error = _create(ready_cluster, name="foo", num_shards=3)

        assert result is None
        assert isinstance(error, PreconditionViolation)
        assert error.message == "collection already exists: foo"
        assert error.code == ErrorCode.BAD_REQUEST
        assert ready_cluster.store.dump() == before
        assert len(ready_cluster.core_admin.created) == created

    def test_name_taken_by_alias(self, ready_cluster):
        asyncio.run(ready_cluster.ctx.aliases.set_alias("products", "other"))

        _, error = _create(ready_cluster, name="products", num_shards=1)

        assert error.message == "collection already exists: products"

    def test_alias_collision(self, ready_cluster):
        asyncio.run(ready_cluster.ctx.aliases.set_alias("products", "other"))

        _, error = _create(ready_cluster, name="bar", alias="products", num_shards=1)

        assert isinstance(error, PreconditionViolation)
        assert error.message == "collection alias already exists: products"
        assert ready_cluster.store.paths_under("/collections/bar") == []

    def test_missing_num_shards(self, ready_cluster):
        _, error = _create(ready_cluster, name="foo")
        assert isinstance(error, PreconditionViolation)
        assert "numShards is a required param" in error.message

    def test_pull_only_replicas(self, ready_cluster):
        _, error = _create(ready_cluster, name="foo", num_shards=1, nrt_replicas=0, pull_replicas=2)
        assert "nrtReplicas + tlogReplicas must be greater than 0" in error.message

    def test_zero_max_shards_per_node(self, ready_cluster):
        _, error = _create(ready_cluster, name="foo", num_shards=1, max_shards_per_node=0)
        assert isinstance(error, PreconditionViolation)

    def test_missing_companion(self, ready_cluster):
        _, error = _create(ready_cluster, name="foo", num_shards=1, with_collection="nope")
        assert error.message == "The 'withCollection' does not exist: nope"

    def test_multi_shard_companion(self, ready_cluster):
        _create(ready_cluster, name="comp", num_shards=2)
        _, error = _create(ready_cluster, name="foo", num_shards=1, with_collection="comp")
        assert "must have only one shard, found: 2" in error.message

    def test_missing_config(self, ready_cluster):
        _, error = _create(ready_cluster, name="foo", num_shards=1, config="nope")

        assert isinstance(error, ConfigurationNotFound)
        assert ready_cluster.store.paths_under("/collections/foo") == []


# ============================================================================
# FAILURE AND ROLLBACK
# ============================================================================

class TestRollback:

    def test_capacity_exceeded(self, ready_cluster):
        result, error = _create(
            ready_cluster,
            name="bar",
            router_name=RouterName.IMPLICIT,
            shards=["s1", "s2", "s3"],
            nrt_replicas=2,
            create_node_set=[NODE1, NODE2],
        )

        assert result is None
        assert isinstance(error, CapacityExceeded)
        assert error.max_allowed == 2
        assert error.requested == 6
        assert ready_cluster.core_admin.created == []
        assert ready_cluster.store.paths_under("/collections/bar") == []
        assert _record(ready_cluster, "bar") is None

    def test_capacity_exceeded_direct(self, ready_cluster):
        _, error = _create(
            ready_cluster,
            name="bar",
            num_shards=3,
            nrt_replicas=2,
            create_node_set=[NODE1, NODE2],
            per_replica_state=True,
        )

        assert isinstance(error, CapacityExceeded)
        assert ready_cluster.store.paths_under("/collections/bar") == []

    def test_remote_failure_rolls_back_everything(self, ready_cluster):
        ready_cluster.core_admin.fail_nodes = {NODE2}

        result, error = _create(ready_cluster, name="foo", num_shards=2)

        assert result is None
        assert isinstance(error, ProvisioningFailure)
        assert error.message == "Underlying core creation failed while creating collection: foo"
        assert error.failures == {
            NODE2: "foo_shard2_replica_n2: Error CREATEing SolrCore: disk full"
        }
        assert sorted(ready_cluster.core_admin.unloaded) == [
            (NODE1, "foo_shard1_replica_n1"),
            (NODE2, "foo_shard2_replica_n2"),
        ]
        assert ready_cluster.store.paths_under("/collections/foo") == []
        assert ready_cluster.ctx.sessions.active_leases == []

    def test_replicas_never_active_direct(self):
        cluster = _bare_cluster()

        result, error = _create(cluster, name="foo", num_shards=2, per_replica_state=True)

        assert result is None
        assert isinstance(error, ProvisioningFailure)
        assert error.message.startswith("Could not find new collection foo")
        assert len(cluster.core_admin.unloaded) == 2
        assert cluster.store.paths_under("/collections/foo") == []

    def test_replicas_never_active_with_wait_for_final_state(self):
        cluster = _bare_cluster()

        _, error = _create(cluster, name="foo", num_shards=1, wait_for_final_state=True)

        assert isinstance(error, ProvisioningFailure)
        assert cluster.store.paths_under("/collections/foo") == []

    def test_queued_create_never_visible(self, ready_cluster):
        ready_cluster.queue.paused = True

        result, error = _create(ready_cluster, name="foo", num_shards=1)

        assert result is None
        assert isinstance(error, ServerError)
        assert error.message == "Could not fully create collection: foo"
        assert ready_cluster.store.paths_under("/collections/foo") == []
        assert ready_cluster.queue.operations() == ["create", "delete"]

        asyncio.run(ready_cluster.queue.resume())
        assert _record(ready_cluster, "foo") is None

    def test_alias_failure_rolls_back(self, ready_cluster):
        ready_cluster.ctx.aliases.set_alias = AsyncMock(side_effect=RuntimeError("store down"))

        result, error = _create(ready_cluster, name="foo", alias="products", num_shards=1)

        assert result is None
        assert isinstance(error, ServerError)
        assert error.message == "Could not create alias products for foo: store down"
        assert len(ready_cluster.core_admin.unloaded) == 1
        assert ready_cluster.store.paths_under("/collections/foo") == []

    def test_alias_failure_clears_companion_link(self, ready_cluster):
        _create(ready_cluster, name="comp", num_shards=1)
        ready_cluster.ctx.aliases.set_alias = AsyncMock(side_effect=RuntimeError("store down"))

        _, error = _create(
            ready_cluster, name="foo", num_shards=1, with_collection="comp", alias="products"
        )

        assert isinstance(error, ServerError)
        assert ready_cluster.store.paths_under("/collections/foo") == []
        comp = _record(ready_cluster, "comp")
        assert comp is not None
        assert comp.colocated_with is None

    def test_derived_config_removed_on_rollback(self, ready_cluster):
        _, error = _create(
            ready_cluster,
            name="bar",
            config=None,
            num_shards=3,
            nrt_replicas=2,
            create_node_set=[NODE1, NODE2],
        )

        assert isinstance(error, CapacityExceeded)
        assert ready_cluster.store.paths_under("/configs/bar.AUTOCREATED") == []
        assert ready_cluster.store.paths_under("/configs/_default")


# ============================================================================
# COMPANION, ALIAS, CONFIG
# ============================================================================

class TestCompanionCollection:

    def test_companion_replica_added_and_linked(self, ready_cluster):
        _, error = _create(ready_cluster, name="comp", num_shards=1)
        assert error is None
        assert [r.node_name for r in _record(ready_cluster, "comp").replicas()] == [NODE1]

        result, error = _create(ready_cluster, name="foo", num_shards=1, with_collection="comp")

        assert error is None
        foo = _record(ready_cluster, "foo")
        comp = _record(ready_cluster, "comp")
        foo_nodes = {r.node_name for r in foo.replicas()}
        comp_nodes = {r.node_name for r in comp.replicas()}
        assert foo_nodes == {NODE2}
        assert foo_nodes <= comp_nodes
        assert foo.with_collection == "comp"
        assert comp.colocated_with == "foo"
        assert comp.replicas_on_node(NODE2)[0].state == ReplicaState.ACTIVE

    def test_existing_companion_replica_reused_after_snapshot_replaced(self, ready_cluster):
        _create(ready_cluster, name="comp", num_shards=1, create_node_set=[NODE1])
        ctx = ready_cluster.ctx
        assign = ctx.assigner.assign

        async def assign_then_reset_reader(*args, **kwargs):
            outcome = await assign(*args, **kwargs)
            # Another command refreshing the shared reader mid-run
            ctx.reader.snapshot = ClusterState()
            return outcome

        ctx.assigner.assign = assign_then_reset_reader

        _, error = _create(
            ready_cluster, name="foo", num_shards=1, create_node_set=[NODE1], with_collection="comp"
        )

        assert error is None
        comp = _record(ready_cluster, "comp")
        assert len(comp.replicas_on_node(NODE1)) == 1
        assert comp.colocated_with == "foo"


class TestAliasAndConfig:

    def test_alias_registered(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo_v1", alias="foo", num_shards=1)

        assert error is None
        assert result.alias == "foo"
        aliases = asyncio.run(ready_cluster.ctx.aliases.get())
        assert aliases.collection_aliases == {"foo": ["foo_v1"]}

    def test_alias_equal_to_name_is_not_stored(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", alias="foo", num_shards=1)

        assert error is None
        assert result.alias is None
        assert "/aliases.json" not in ready_cluster.store.nodes

    def test_default_config_warning(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", config=None, num_shards=1)

        assert error is None
        assert result.config_name == "foo.AUTOCREATED"
        assert result.warnings == [DEFAULT_CONFIG_WARNING]
        assert ready_cluster.store.paths_under("/configs/foo.AUTOCREATED")


# ============================================================================
# ASYNC REQUEST IDS
# ============================================================================

class TestAsyncRequests:

    def test_outcome_stored(self, ready_cluster):
        result, error = _create(ready_cluster, name="foo", num_shards=2, async_id="req-1")

        assert error is None
        assert result.request_id == "req-1"
        status = asyncio.run(ready_cluster.ctx.request_status.get("req-1"))
        assert status.state == RequestState.COMPLETED
        assert sorted(status.success) == [NODE1, NODE2]
        assert sum(len(ids) for ids in status.tracked.values()) == 2
        assert all(r.async_id.startswith("req-1") for r in ready_cluster.core_admin.created)

    def test_failure_stored(self, ready_cluster):
        ready_cluster.core_admin.fail_nodes = {NODE1}

        _, error = _create(ready_cluster, name="foo", num_shards=1, async_id="req-2")

        status = asyncio.run(ready_cluster.ctx.request_status.get("req-2"))
        assert status.state == RequestState.FAILED
        assert list(status.failure) == [NODE1]
        assert status.message == error.message

    def test_duplicate_id_rejected(self, ready_cluster):
        _create(ready_cluster, name="foo", num_shards=1, async_id="req-1")

        _, error = _create(ready_cluster, name="bar", num_shards=1, async_id="req-1")

        assert isinstance(error, PreconditionViolation)
        assert error.message == "Task with the same requestid already exists: req-1"
        status = asyncio.run(ready_cluster.ctx.request_status.get("req-1"))
        assert status.state == RequestState.COMPLETED
        assert status.message == "Created collection foo"
        assert _record(ready_cluster, "bar") is None


# ============================================================================
# CONCURRENT CREATES
# ============================================================================

def _yield_on_reads(cluster: Cluster) -> None:
    """Make every store read suspend once, so concurrent runs interleave."""
    fetch = cluster.store._fetch

    async def yielding_fetch(path):
        await asyncio.sleep(0)
        return await fetch(path)

    cluster.store._fetch = yielding_fetch


def _create_twice(cluster: Cluster, **fields):
    fields.setdefault("config", "conf1")

    async def both():
        return await asyncio.gather(
            CreateCollectionCommand(cluster.ctx).execute(CreateCollectionRequest(**fields)),
            CreateCollectionCommand(cluster.ctx).execute(CreateCollectionRequest(**fields)),
        )

    return asyncio.run(both())


class TestConcurrentCreates:

    def test_second_direct_create_fails_and_keeps_first(self, ready_cluster):
        _yield_on_reads(ready_cluster)

        first, second = _create_twice(
            ready_cluster, name="foo", num_shards=2, per_replica_state=True
        )

        assert first[1] is None
        assert first[0].collection == "foo"
        assert second[0] is None
        assert isinstance(second[1], PreconditionViolation)
        assert second[1].message == "collection already exists: foo"

        record = _record(ready_cluster, "foo")
        assert record is not None
        assert len(list(record.replicas())) == 2
        assert all(r.state == ReplicaState.ACTIVE for r in record.replicas())
        assert ready_cluster.core_admin.unloaded == []
        assert ready_cluster.locks.acquired == ["foo", "foo"]

    def test_second_queued_create_fails_and_keeps_first(self, ready_cluster):
        _yield_on_reads(ready_cluster)

        first, second = _create_twice(ready_cluster, name="foo", num_shards=2)

        assert first[1] is None
        assert isinstance(second[1], PreconditionViolation)
        record = _record(ready_cluster, "foo")
        assert len(list(record.replicas())) == 2
        assert ready_cluster.core_admin.unloaded == []
        assert ready_cluster.queue.operations().count("create") == 1

    def test_lost_record_race_only_discards_own_configset(self, ready_cluster):
        ctx = ready_cluster.ctx
        remove_terms = ctx.collections.remove_terms

        async def remove_terms_then_lose_race(name):
            await remove_terms(name)
            # Another creator writes foo between the name check and our writes
            await ctx.collections.create_metadata_node(
                name, {"configName": "conf1", "properties": {}}
            )
            await ctx.collections.create_state(
                mutators.build_collection(
                    name, RouterName.COMPOSITE_ID, {"shard1": "80000000-7fffffff"}, "conf1"
                )
            )

        ctx.collections.remove_terms = remove_terms_then_lose_race

        _, error = _create(
            ready_cluster, name="foo", config=None, num_shards=1, per_replica_state=True
        )

        assert isinstance(error, PreconditionViolation)
        assert error.message == "collection already exists: foo"
        record = _record(ready_cluster, "foo")
        assert record is not None
        assert record.config_name == "conf1"
        props = asyncio.run(ctx.collections.get_props("foo"))
        assert props["configName"] == "conf1"
        assert ready_cluster.store.paths_under("/configs/foo.AUTOCREATED") == []
        assert ready_cluster.core_admin.unloaded == []
