# ============================================================================
# STATE WRITER TESTS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Tests - Pure mutators and both write protocols
# PURPOSE: Verify record mutations, conditional retries and queue publishing
# CREATED: 18 OCT 2026
# ============================================================================
"""
State Writer Tests

Covers:
1. Pure mutators (inputs never modified, leader selection, replays)
2. DirectStateWriter: initial write, version-conflict retry, per-replica
   status records folded by finalize
3. QueuedStateWriter: message shapes and publish failures

Run with:
    pytest tests/test_state_writer.py -v
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.contracts import ReplicaState, ReplicaType, RouterName, StateUpdateOperation
from core.errors import PreconditionViolation, ServerError
from core.models import StateUpdateMessage
from repositories import CollectionRepository
from services import mutators
from services.state_writer import DirectStateWriter, QueuedStateWriter, StateWriters

from conftest import InMemoryStateStore


def _foo(per_replica_state: bool = False):
    return mutators.build_collection(
        "foo",
        RouterName.COMPOSITE_ID,
        {"shard1": "80000000-ffffffff", "shard2": "0-7fffffff"},
        "conf1",
        per_replica_state=per_replica_state,
    )


def _with_replica(collection, shard="shard1", core="foo_shard1_replica_n1", **kwargs):
    return mutators.add_replica(
        collection,
        shard=shard,
        core=core,
        node_name=kwargs.pop("node_name", "node1:8983_solr"),
        base_url="http://node1:8983/solr",
        **kwargs,
    )


# ============================================================================
# MUTATORS
# ============================================================================

class TestMutators:

    def test_build_collection_has_all_shards_and_no_replicas(self):
        record = _foo()
        assert list(record.shards) == ["shard1", "shard2"]
        assert record.shards["shard1"].range == "80000000-ffffffff"
        assert list(record.replicas()) == []

    def test_add_replica_does_not_modify_input(self):
        record = _foo()
        updated = _with_replica(record)
        assert list(record.replicas()) == []
        replica = updated.replica_by_core("foo_shard1_replica_n1")
        assert replica.name == "core_node1"
        assert replica.state == ReplicaState.DOWN
        assert replica.leader is False

    def test_add_replica_numbers_above_existing(self):
        updated = _with_replica(_with_replica(_foo()), shard="shard2", core="foo_shard2_replica_n2")
        assert updated.replica_by_core("foo_shard2_replica_n2").name == "core_node2"

    def test_add_replica_is_idempotent_per_core(self):
        once = _with_replica(_foo())
        twice = _with_replica(once)
        assert len(list(twice.replicas())) == 1

    def test_add_replica_unknown_shard(self):
        with pytest.raises(KeyError):
            _with_replica(_foo(), shard="shard9")

    def test_first_active_leader_capable_replica_leads(self):
        record = _with_replica(_foo())
        record = _with_replica(record, core="foo_shard1_replica_n2")
        record = mutators.set_replica_state(record, "foo_shard1_replica_n2", ReplicaState.ACTIVE)
        record = mutators.set_replica_state(record, "foo_shard1_replica_n1", ReplicaState.ACTIVE)
        assert record.replica_by_core("foo_shard1_replica_n2").leader is True
        assert record.replica_by_core("foo_shard1_replica_n1").leader is False

    def test_pull_replica_never_leads(self):
        record = _with_replica(_foo(), replica_type=ReplicaType.PULL)
        record = mutators.set_replica_state(record, "foo_shard1_replica_n1", ReplicaState.ACTIVE)
        assert record.replica_by_core("foo_shard1_replica_n1").leader is False

    def test_going_down_drops_leadership(self):
        record = _with_replica(_foo())
        record = mutators.set_replica_state(record, "foo_shard1_replica_n1", ReplicaState.ACTIVE)
        record = mutators.set_replica_state(record, "foo_shard1_replica_n1", ReplicaState.DOWN)
        assert record.replica_by_core("foo_shard1_replica_n1").leader is False

    def test_modify_collection_ignores_unknown_keys(self):
        record = mutators.modify_collection(
            _foo(), {"colocated_with": "bar", "config_name": "other", "properties": {"a": 1}}
        )
        assert record.colocated_with == "bar"
        assert record.config_name == "conf1"
        assert record.properties == {"a": "1"}

    def test_apply_replica_states_by_record_name(self):
        record = _with_replica(_foo())
        updated = mutators.apply_replica_states(
            record, {"core_node1": ReplicaState.ACTIVE, "core_node9": ReplicaState.ACTIVE}
        )
        assert updated.replica_by_core("foo_shard1_replica_n1").state == ReplicaState.ACTIVE


class TestApplyMessage:

    def test_create_keeps_existing_record(self):
        existing = _with_replica(_foo())
        assert mutators.apply_message(existing, StateUpdateMessage.create(_foo())) is existing

    def test_create_from_nothing(self):
        created = mutators.apply_message(None, StateUpdateMessage.create(_foo()))
        assert created.name == "foo"
        assert list(created.shards) == ["shard1", "shard2"]

    def test_delete(self):
        assert mutators.apply_message(_foo(), StateUpdateMessage.delete("foo")) is None

    def test_updates_to_missing_collection_are_dropped(self):
        message = StateUpdateMessage.replica_state("foo", "foo_shard1_replica_n1", ReplicaState.ACTIVE)
        assert mutators.apply_message(None, message) is None

    def test_add_replica_and_state(self):
        record = mutators.apply_message(
            _foo(),
            StateUpdateMessage.add_replica(
                "foo", "shard2", "foo_shard2_replica_n1", "node2:8983_solr",
                "http://node2:8983/solr", ReplicaType.TLOG,
            ),
        )
        record = mutators.apply_message(
            record,
            StateUpdateMessage.replica_state("foo", "foo_shard2_replica_n1", ReplicaState.ACTIVE),
        )
        replica = record.replica_by_core("foo_shard2_replica_n1")
        assert replica.type == ReplicaType.TLOG
        assert replica.state == ReplicaState.ACTIVE
        assert replica.leader is True

    def test_modify(self):
        record = mutators.apply_message(
            _foo(), StateUpdateMessage.modify_collection("foo", {"with_collection": "bar"})
        )
        assert record.with_collection == "bar"


# ============================================================================
# DIRECT PROTOCOL
# ============================================================================

class TestDirectStateWriter:

    def _writer(self):
        store = InMemoryStateStore()
        repo = CollectionRepository(store)
        return store, repo, DirectStateWriter(repo)

    def test_initial_write_then_duplicate(self):
        _, repo, writer = self._writer()

        async def run():
            first = await writer.publish_initial(_foo(per_replica_state=True))
            second = await writer.publish_initial(_foo(per_replica_state=True))
            return first, second, await repo.get_state("foo")

        first, second, stored = asyncio.run(run())
        assert first.ok
        assert isinstance(second.error, PreconditionViolation)
        assert stored.znode_version == 0
        assert stored.per_replica_state is True

    def test_update_retries_on_version_conflict(self):
        store, repo, writer = self._writer()
        original_write = repo.write_state
        attempts = []

        async def racing_write(collection):
            attempts.append(collection.znode_version)
            if len(attempts) == 1:
                # Another writer gets in first
                current = await store.get_data(repo.state_path("foo"))
                await store.set_data(repo.state_path("foo"), current.data)
            return await original_write(collection)

        repo.write_state = racing_write

        async def run():
            await writer.publish_initial(_foo(per_replica_state=True))
            return await writer.modify("foo", {"colocated_with": "bar"})

        outcome = asyncio.run(run())
        assert outcome.ok
        assert attempts == [0, 1]
        stored = asyncio.run(repo.get_state("foo"))
        assert stored.colocated_with == "bar"
        assert stored.znode_version == 2

    def test_update_gives_up(self):
        store = InMemoryStateStore()
        repo = CollectionRepository(store)
        writer = DirectStateWriter(repo, max_attempts=2)

        async def always_stale(collection):
            current = await store.get_data(repo.state_path("foo"))
            await store.set_data(repo.state_path("foo"), current.data)
            return await CollectionRepository.write_state(repo, collection)

        repo.write_state = always_stale

        async def run():
            await writer.publish_initial(_foo(per_replica_state=True))
            return await writer.modify("foo", {"colocated_with": "bar"})

        outcome = asyncio.run(run())
        assert isinstance(outcome.error, ServerError)
        assert "after 2 version conflicts" in outcome.error.message

    def test_update_of_missing_record(self):
        _, _, writer = self._writer()
        outcome = asyncio.run(writer.modify("nope", {"colocated_with": "bar"}))
        assert isinstance(outcome.error, ServerError)

    def test_publish_replica_creates_status_record(self):
        _, repo, writer = self._writer()

        async def run():
            await writer.publish_initial(_foo(per_replica_state=True))
            outcome = await writer.publish_replica(
                "foo", "shard1", "foo_shard1_replica_n1", "node1:8983_solr",
                "http://node1:8983/solr", ReplicaType.NRT,
            )
            return outcome, await repo.get_replica_states("foo")

        outcome, states = asyncio.run(run())
        assert outcome.value.name == "core_node1"
        assert states == {"core_node1": ReplicaState.DOWN}

    def test_report_then_finalize_folds_states(self):
        _, repo, writer = self._writer()

        async def run():
            await writer.publish_initial(_foo(per_replica_state=True))
            await writer.publish_replica(
                "foo", "shard1", "foo_shard1_replica_n1", "node1:8983_solr",
                "http://node1:8983/solr", ReplicaType.NRT,
            )
            await writer.report_state("foo", None, "foo_shard1_replica_n1", ReplicaState.ACTIVE)
            before = await repo.get_state("foo")
            await writer.finalize("foo")
            return before, await repo.get_state("foo")

        before, after = asyncio.run(run())
        assert before.replica_by_core("foo_shard1_replica_n1").state == ReplicaState.DOWN
        replica = after.replica_by_core("foo_shard1_replica_n1")
        assert replica.state == ReplicaState.ACTIVE
        assert replica.leader is True

    def test_report_unknown_core(self):
        _, _, writer = self._writer()

        async def run():
            await writer.publish_initial(_foo(per_replica_state=True))
            return await writer.report_state("foo", None, "ghost", ReplicaState.ACTIVE)

        assert isinstance(asyncio.run(run()).error, ServerError)

    def test_remove_clears_record_and_status_records(self):
        store, repo, writer = self._writer()

        async def run():
            await writer.publish_initial(_foo(per_replica_state=True))
            await repo.set_replica_state("foo", "core_node1", ReplicaState.DOWN)
            await writer.remove("foo")
            return await repo.get_state("foo")

        assert asyncio.run(run()) is None
        assert store.paths_under("/collections/foo/replica_states") == []


# ============================================================================
# QUEUED PROTOCOL
# ============================================================================

class TestQueuedStateWriter:

    def _publisher(self, accept: bool = True):
        publisher = MagicMock()
        publisher.publish = AsyncMock(return_value=accept)
        return publisher

    def test_messages_by_operation(self):
        publisher = self._publisher()
        writer = QueuedStateWriter(publisher)

        async def run():
            await writer.publish_initial(_foo())
            await writer.publish_replica(
                "foo", "shard1", "foo_shard1_replica_n1", "node1:8983_solr",
                "http://node1:8983/solr", ReplicaType.NRT,
            )
            await writer.modify("foo", {"colocated_with": "bar"})
            await writer.report_state("foo", None, "foo_shard1_replica_n1", ReplicaState.ACTIVE)
            await writer.remove("foo")

        asyncio.run(run())
        sent = [call.args[0] for call in publisher.publish.await_args_list]
        assert [m.operation for m in sent] == [
            StateUpdateOperation.CREATE,
            StateUpdateOperation.ADD_REPLICA,
            StateUpdateOperation.MODIFY_COLLECTION,
            StateUpdateOperation.STATE,
            StateUpdateOperation.DELETE,
        ]
        assert all(m.collection == "foo" for m in sent)

    def test_publish_replica_returns_no_record(self):
        writer = QueuedStateWriter(self._publisher())
        outcome = asyncio.run(
            writer.publish_replica(
                "foo", "shard1", "c", "node1:8983_solr", "http://node1:8983/solr", ReplicaType.NRT
            )
        )
        assert outcome.ok
        assert outcome.value is None

    def test_rejected_publish_is_server_error(self):
        writer = QueuedStateWriter(self._publisher(accept=False))
        outcome = asyncio.run(writer.publish_initial(_foo()))
        assert isinstance(outcome.error, ServerError)
        assert outcome.error.message == "Could not queue create for collection foo"

    def test_finalize_is_a_no_op(self):
        publisher = self._publisher()
        outcome = asyncio.run(QueuedStateWriter(publisher).finalize("foo"))
        assert outcome.ok
        publisher.publish.assert_not_awaited()


class TestStateWriters:

    def test_selects_by_flag(self):
        queued = QueuedStateWriter(MagicMock())
        direct = DirectStateWriter(MagicMock(), max_attempts=3)
        writers = StateWriters(queued, direct)
        assert writers.for_collection(_foo()) is queued
        assert writers.for_collection(_foo(per_replica_state=True)) is direct
