# ============================================================================
# STATE UPDATER TESTS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Tests - Legacy queue consumer and processor
# PURPOSE: Verify queued mutations are applied in order and settled correctly
# CREATED: 18 OCT 2026
# ============================================================================
"""
State Updater Tests

Covers:
1. StateUpdateProcessor: create / addreplica / state / delete, replays
2. StateUpdateConsumer.process_message settlement:
   complete, dead-letter (bad JSON, unappliable), abandon (store failure)
3. Standby behaviour without the updater lock

Run with:
    pytest tests/test_state_updater.py -v
"""

import asyncio
import json

from unittest.mock import AsyncMock, MagicMock

from core.contracts import ReplicaState, ReplicaType, RouterName
from core.models import StateUpdateMessage
from messaging import MessagingConfig
from repositories import CollectionRepository
from services import mutators
from worker.consumer import StateUpdateConsumer
from worker.state_updater import StateUpdateProcessor

from conftest import InMemoryStateStore


def _foo():
    return mutators.build_collection(
        "foo", RouterName.COMPOSITE_ID, {"shard1": "80000000-7fffffff"}, "conf1"
    )


def _add(core="foo_shard1_replica_n1", shard="shard1"):
    return StateUpdateMessage.add_replica(
        "foo", shard, core, "node1:8983_solr", "http://node1:8983/solr", ReplicaType.NRT
    )


def _processor():
    store = InMemoryStateStore()
    repo = CollectionRepository(store)
    return repo, StateUpdateProcessor(repo)


# ============================================================================
# PROCESSOR
# ============================================================================

class TestStateUpdateProcessor:

    def test_sequence_builds_record(self):
        repo, processor = _processor()

        async def run():
            await processor.apply(StateUpdateMessage.create(_foo()))
            await processor.apply(_add())
            await processor.apply(
                StateUpdateMessage.replica_state("foo", "foo_shard1_replica_n1", ReplicaState.ACTIVE)
            )
            return await repo.get_state("foo")

        record = asyncio.run(run())
        replica = record.replica_by_core("foo_shard1_replica_n1")
        assert replica.name == "core_node1"
        assert replica.state == ReplicaState.ACTIVE
        assert replica.leader is True
        assert processor.applied == 3

    def test_replayed_messages_are_harmless(self):
        repo, processor = _processor()
        create = StateUpdateMessage.create(_foo())
        add = _add()

        async def run():
            for message in (create, add, create, add):
                await processor.apply(message)
            return await repo.get_state("foo")

        record = asyncio.run(run())
        assert len(list(record.replicas())) == 1

    def test_delete_then_late_updates(self):
        repo, processor = _processor()

        async def run():
            await processor.apply(StateUpdateMessage.create(_foo()))
            await processor.apply(StateUpdateMessage.delete("foo"))
            late = await processor.apply(_add())
            return late, await repo.get_state("foo")

        late, record = asyncio.run(run())
        assert late is None
        assert record is None

    def test_delete_of_missing_collection(self):
        _, processor = _processor()
        assert asyncio.run(processor.apply(StateUpdateMessage.delete("nope"))) is None


# ============================================================================
# CONSUMER
# ============================================================================

def _received(body):
    message = MagicMock()
    message.__str__ = MagicMock(return_value=body)
    return message


def _consumer(processor):
    consumer = StateUpdateConsumer(
        MessagingConfig(connection_string="Endpoint=sb://test/", state_update_queue="state-updates"),
        processor,
    )
    receiver = MagicMock()
    receiver.complete_message = AsyncMock()
    receiver.abandon_message = AsyncMock()
    receiver.dead_letter_message = AsyncMock()
    consumer._receiver = receiver
    return consumer, receiver


class TestStateUpdateConsumer:

    def test_applied_message_is_completed(self):
        repo, processor = _processor()
        consumer, receiver = _consumer(processor)
        message = _received(json.dumps(StateUpdateMessage.create(_foo()).to_queue_message()))

        asyncio.run(consumer.process_message(message))

        receiver.complete_message.assert_awaited_once_with(message)
        assert consumer.messages_applied == 1
        assert asyncio.run(repo.get_state("foo")) is not None

    def test_bad_json_is_dead_lettered(self):
        _, processor = _processor()
        consumer, receiver = _consumer(processor)
        message = _received("{not json")

        asyncio.run(consumer.process_message(message))

        receiver.dead_letter_message.assert_awaited_once()
        assert receiver.dead_letter_message.await_args.kwargs["reason"] == "invalid_message"
        assert consumer.messages_failed == 1

    def test_invalid_shape_is_dead_lettered(self):
        _, processor = _processor()
        consumer, receiver = _consumer(processor)

        asyncio.run(consumer.process_message(_received(json.dumps({"operation": "explode"}))))

        assert receiver.dead_letter_message.await_args.kwargs["reason"] == "invalid_message"

    def test_unknown_shard_is_unappliable(self):
        _, processor = _processor()
        consumer, receiver = _consumer(processor)

        async def run():
            await processor.apply(StateUpdateMessage.create(_foo()))
            await consumer.process_message(
                _received(json.dumps(_add(shard="shard9").to_queue_message()))
            )

        asyncio.run(run())
        assert receiver.dead_letter_message.await_args.kwargs["reason"] == "unappliable_update"

    def test_store_failure_is_abandoned(self):
        processor = MagicMock()
        processor.apply = AsyncMock(side_effect=ConnectionError("database unavailable"))
        consumer, receiver = _consumer(processor)
        message = _received(json.dumps(_add().to_queue_message()))

        asyncio.run(consumer.process_message(message))

        receiver.abandon_message.assert_awaited_once_with(message)
        receiver.complete_message.assert_not_awaited()
        assert consumer.messages_failed == 1

    def test_standby_stops_without_lock(self):
        lock_service = MagicMock()
        lock_service.try_acquire_updater_lock = AsyncMock(return_value=False)
        lock_service.release_updater_lock = AsyncMock()
        consumer = StateUpdateConsumer(
            MessagingConfig(state_update_queue="state-updates"),
            MagicMock(),
            lock_service=lock_service,
            standby_interval=0.01,
        )

        async def run():
            task = asyncio.create_task(consumer.run())
            await asyncio.sleep(0.05)
            await consumer.stop()
            await task

        asyncio.run(run())
        assert lock_service.try_acquire_updater_lock.await_count >= 1
        assert consumer.messages_received == 0
