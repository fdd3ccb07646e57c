# ============================================================================
# CLUSTER STATE VIEW TESTS
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Tests - Snapshots, overlay view and polling reader
# PURPOSE: Verify what placement code sees while a collection is in flight
# CREATED: 18 OCT 2026
# ============================================================================
"""
Cluster State View Tests

Run with:
    pytest tests/test_cluster_state.py -v
"""

import asyncio

import pytest

from core.contracts import ReplicaType, RouterName
from core.errors import StateWaitTimeout
from services import mutators
from services.cluster_state import ClusterState, OverlayClusterState

from conftest import Cluster


def _collection(name, node=None):
    record = mutators.build_collection(
        name, RouterName.COMPOSITE_ID, {"shard1": "80000000-7fffffff"}, "conf1"
    )
    if node:
        record = mutators.add_replica(
            record, "shard1", f"{name}_shard1_replica_n1", node, f"http://{node}/solr",
            ReplicaType.NRT,
        )
    return record


class TestOverlay:

    def test_pending_shadows_base(self):
        base = ClusterState(collections={"foo": _collection("foo", "A")}, live_nodes=["A", "B"])
        view = OverlayClusterState(base=base, pending={"foo": _collection("foo")})

        assert view.has_collection("foo")
        assert list(view.get_collection("foo").replicas()) == []
        assert view.cores_per_node() == {}

    def test_pending_counts_as_load(self):
        base = ClusterState(collections={"bar": _collection("bar", "A")}, live_nodes=["A", "B"])
        view = OverlayClusterState(base=base, pending={"foo": _collection("foo", "B")})

        assert view.collection_names() == ["bar", "foo"]
        assert view.cores_per_node() == {"A": 1, "B": 1}
        assert view.live_nodes == ["A", "B"]
        assert base.collection_names() == ["bar"]


class TestReader:

    def test_refresh_skips_collections_without_record(self):
        cluster = Cluster()

        async def run():
            await cluster.add_live_nodes("B", "A")
            await cluster.ctx.collections.create_metadata_node("half", {"configName": "conf1"})
            await cluster.ctx.collections.create_state(_collection("foo", "A"))
            return await cluster.ctx.reader.refresh()

        snapshot = asyncio.run(run())

        assert snapshot.collection_names() == ["foo"]
        assert snapshot.live_nodes == ["A", "B"]
        assert cluster.ctx.reader.snapshot is snapshot

    def test_wait_for_collection_timeout(self):
        cluster = Cluster()

        with pytest.raises(StateWaitTimeout):
            asyncio.run(
                cluster.ctx.reader.wait_for_collection(
                    "foo", lambda record: record is not None, timeout=0.05, interval=0.01
                )
            )

    def test_wait_for_collection_refreshes_snapshot(self):
        cluster = Cluster()

        async def run():
            await cluster.ctx.collections.create_state(_collection("foo"))
            return await cluster.ctx.reader.wait_for_collection(
                "foo", lambda record: record is not None, timeout=1.0, interval=0.01
            )

        record = asyncio.run(run())

        assert record.name == "foo"
        assert cluster.ctx.reader.snapshot.has_collection("foo")
