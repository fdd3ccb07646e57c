# ============================================================================
# TEST FIXTURES
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Tests - Shared in-memory doubles
# PURPOSE: State store, core-admin client and state-update queue without I/O
# CREATED: 18 OCT 2026
# ============================================================================
"""
Shared Test Fixtures

In-memory doubles:
- InMemoryStateStore: DistributedStateStore with dict-backed primitives,
  so counters, conditional writes and waits run the real code
- FakeCoreAdminClient: records core CREATE/UNLOAD calls, fails on demand
- InProcessLockService: per-collection asyncio locks in place of advisory locks
- InlineStateUpdateQueue: applies each queued mutation immediately through
  the real StateUpdateProcessor (or holds them while paused)
"""

import asyncio
import copy
import json
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

import pytest

from core.config import TimeoutDefaults
from core.contracts import ReplicaState
from core.models import CoreAdminResponse, StateUpdateMessage
from orchestrator import CommandContext
from repositories import (
    CollectionRepository,
    ConfigSetRepository,
    DistributedStateStore,
    NoNodeError,
)
from repositories.state_store import VersionedData, _normalize, ancestors_of, parent_of
from services import CoreCreateRequest
from worker.state_updater import StateUpdateProcessor


# ============================================================================
# STATE STORE
# ============================================================================

class InMemoryStateStore(DistributedStateStore):
    """Dict-backed store. Only the SQL primitives are replaced."""

    def __init__(self, session_id: str = "test-session"):
        super().__init__(pool=None, session_id=session_id)
        self.nodes: Dict[str, Dict[str, Any]] = {}

    async def ensure_schema(self) -> None:
        return None

    @staticmethod
    def _jsonb(data: Any) -> Any:
        return json.loads(json.dumps(data))

    async def _fetch(self, path: str) -> Optional[VersionedData]:
        node = self.nodes.get(path)
        if node is None:
            return None
        return VersionedData(data=copy.deepcopy(node["data"]), version=node["version"])

    async def _insert(self, path: str, data: Any, ephemeral: bool, create_parents: bool) -> bool:
        if create_parents:
            for ancestor in ancestors_of(path):
                self.nodes.setdefault(
                    ancestor,
                    {"data": None, "version": 0, "parent": parent_of(ancestor), "owner": None},
                )
        if path in self.nodes:
            return False
        self.nodes[path] = {
            "data": self._jsonb(data),
            "version": 0,
            "parent": parent_of(path),
            "owner": self.session_id if ephemeral else None,
        }
        return True

    async def _update(self, path: str, data: Any, version: int) -> Optional[int]:
        node = self.nodes.get(path)
        if node is None:
            return None
        if version != -1 and node["version"] != version:
            return None
        node["data"] = self._jsonb(data)
        node["version"] += 1
        return node["version"]

    async def _delete_tree(self, path: str, include_self: bool) -> int:
        prefix = path.rstrip("/") + "/"
        doomed = [
            p for p in self.nodes
            if p.startswith(prefix) or (include_self and p == path)
        ]
        for p in doomed:
            del self.nodes[p]
        return len(doomed)

    async def list_children(self, path: str) -> List[str]:
        path = _normalize(path)
        if path != "/" and path not in self.nodes:
            raise NoNodeError(path)
        return sorted(p.rsplit("/", 1)[-1] for p, n in self.nodes.items() if n["parent"] == path)

    async def renew_ephemeral(self, ttl_sec: Optional[int] = None) -> int:
        return sum(1 for n in self.nodes.values() if n["owner"] == self.session_id)

    def dump(self) -> Dict[str, Any]:
        """Deep copy of every node, for before/after comparisons."""
        return copy.deepcopy(self.nodes)

    def paths_under(self, prefix: str) -> List[str]:
        return sorted(p for p in self.nodes if p == prefix or p.startswith(prefix + "/"))


# ============================================================================
# CORE ADMIN CLIENT
# ============================================================================

class FakeCoreAdminClient:
    """Stands in for CoreAdminClient; every call succeeds unless told otherwise."""

    def __init__(
        self,
        fail_nodes: Optional[Set[str]] = None,
        fail_cores: Optional[Set[str]] = None,
    ):
        self.fail_nodes = set(fail_nodes or ())
        self.fail_cores = set(fail_cores or ())
        self.created: List[CoreCreateRequest] = []
        self.unloaded: List[Tuple[str, str]] = []
        self.on_create: Optional[Callable[[CoreCreateRequest], Awaitable[None]]] = None
        self.delay: float = 0.0

    async def create_core(self, request: CoreCreateRequest) -> CoreAdminResponse:
        self.created.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if request.node_name in self.fail_nodes or request.core in self.fail_cores:
            return CoreAdminResponse(
                node_name=request.node_name,
                core=request.core,
                success=False,
                status_code=500,
                error="Error CREATEing SolrCore: disk full",
                async_id=request.async_id,
            )
        if self.on_create is not None:
            await self.on_create(request)
        return CoreAdminResponse(
            node_name=request.node_name,
            core=request.core,
            success=True,
            status_code=200,
            body={"responseHeader": {"status": 0}, "core": request.core},
            async_id=request.async_id,
        )

    async def unload_core(
        self,
        node_name: str,
        base_url: str,
        core: str,
        delete_index: bool = True,
    ) -> CoreAdminResponse:
        self.unloaded.append((node_name, core))
        return CoreAdminResponse(node_name=node_name, core=core, success=True, status_code=200)

    async def request_status(self, node_name: str, base_url: str, core: str, async_id: str):
        return "completed", CoreAdminResponse(
            node_name=node_name,
            core=core,
            success=True,
            status_code=200,
            body={"STATUS": "completed"},
            async_id=async_id,
        )

    async def close(self) -> None:
        return None

    @property
    def created_cores(self) -> List[str]:
        return [r.core for r in self.created]


# ============================================================================
# COLLECTION LOCKS
# ============================================================================

class InProcessLockService:
    """Stands in for LockService: one asyncio.Lock per collection name."""

    def __init__(self):
        self.locks: Dict[str, asyncio.Lock] = {}
        self.acquired: List[str] = []

    @asynccontextmanager
    async def collection_lock(self, collection: str, blocking: bool = False):
        lock = self.locks.setdefault(collection, asyncio.Lock())
        if not blocking and lock.locked():
            yield False
            return
        async with lock:
            self.acquired.append(collection)
            yield True


# ============================================================================
# STATE UPDATE QUEUE
# ============================================================================

class InlineStateUpdateQueue:
    """
    Publisher double: applies every message at once, in order.

    While paused, messages are held until resume() is awaited.
    """

    def __init__(self, processor: StateUpdateProcessor):
        self.processor = processor
        self.published: List[StateUpdateMessage] = []
        self.held: List[StateUpdateMessage] = []
        self.paused = False
        self.accept = True

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def publish(self, update: StateUpdateMessage) -> bool:
        if not self.accept:
            return False
        # Round-trip through the wire format
        update = StateUpdateMessage.from_queue_message(
            json.loads(json.dumps(update.to_queue_message()))
        )
        self.published.append(update)
        if self.paused:
            self.held.append(update)
        else:
            await self.processor.apply(update)
        return True

    async def resume(self) -> None:
        self.paused = False
        held, self.held = self.held, []
        for update in held:
            await self.processor.apply(update)

    def operations(self) -> List[str]:
        return [m.operation.value for m in self.published]


# ============================================================================
# HARNESS
# ============================================================================

FAST_TIMEOUTS = replace(
    TimeoutDefaults(),
    collection_visible_timeout=0.2,
    replicas_visible_timeout=0.2,
    replicas_active_timeout=0.2,
    colocation_link_timeout=0.1,
    collection_removed_timeout=0.2,
    poll_interval=0.01,
    core_admin_timeout=2.0,
    async_status_poll_interval=0.01,
)


class Cluster:
    """A wired CommandContext over in-memory doubles."""

    def __init__(self, timeouts: TimeoutDefaults = FAST_TIMEOUTS):
        self.store = InMemoryStateStore()
        self.processor = StateUpdateProcessor(CollectionRepository(self.store))
        self.queue = InlineStateUpdateQueue(self.processor)
        self.core_admin = FakeCoreAdminClient()
        self.locks = InProcessLockService()
        self.ctx = CommandContext.build(
            self.store, self.queue, self.core_admin, self.locks, timeouts=timeouts
        )

    async def add_live_nodes(self, *names: str) -> None:
        for name in names:
            await self.ctx.live_nodes.register(name)

    async def upload_config(self, name: str, files: Optional[Dict[str, str]] = None) -> None:
        await ConfigSetRepository(self.store).upload(
            name, files or {"solrconfig.xml": "<config/>", "managed-schema": "<schema/>"}
        )

    def activate_replicas_on_create(self) -> None:
        """Make every created core report ACTIVE, as a healthy node would."""
        ctx = self.ctx

        async def report_active(request: CoreCreateRequest) -> None:
            record = await ctx.collections.get_state(request.collection)
            writer = ctx.writers.for_collection(record)
            await writer.report_state(
                request.collection, request.replica_name, request.core, ReplicaState.ACTIVE
            )

        self.core_admin.on_create = report_active


@pytest.fixture
def cluster() -> Cluster:
    return Cluster()


@pytest.fixture
def ready_cluster() -> Cluster:
    """Three live nodes, a 'conf1' bundle and the _default bundle."""
    c = Cluster()

    async def setup():
        await c.add_live_nodes("node1:8983_solr", "node2:8983_solr", "node3:8983_solr")
        await c.upload_config("conf1")
        await c.upload_config("_default")

    asyncio.run(setup())
    c.activate_replicas_on_create()
    return c
