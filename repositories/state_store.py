# ============================================================================
# DISTRIBUTED STATE STORE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Hierarchical versioned node store
# PURPOSE: Conditional writes, ephemeral nodes and polling waits over PostgreSQL
# CREATED: 18 OCT 2026
# ============================================================================
"""
Distributed State Store

A hierarchical tree of JSON nodes kept in one PostgreSQL table. Every node
has a version that increases by one on each write, so callers can do
optimistic read-modify-write:

    current = await store.get_data(path)
    updated = mutate(current.data)
    await store.set_data(path, updated, version=current.version)

A version mismatch raises BadVersionError and the caller re-reads.

Ephemeral nodes carry an owner session and an expiry. Expired ephemeral
nodes are invisible to every read and are replaced on create.

Table:
    path            TEXT PRIMARY KEY
    parent          TEXT
    data            JSONB
    version         INTEGER     (0 on create)
    ephemeral_owner TEXT        (NULL for persistent nodes)
    expires_at      TIMESTAMPTZ (NULL for persistent nodes)

The primitives (_fetch, _insert, _update, _delete_tree, list_children) are
the only methods that touch SQL. Counters and waits are built on them.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.config import get_defaults
from core.errors import StateWaitTimeout
from .database import TABLE_STATE_NODES, SCHEMA_IDENTIFIER

logger = logging.getLogger(__name__)


# ============================================================================
# ERRORS
# ============================================================================

class StateStoreError(Exception):
    """Base class for store failures."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(message or path)
        self.path = path


class NoNodeError(StateStoreError):
    """Node does not exist."""


class NodeExistsError(StateStoreError):
    """Node already exists."""


class BadVersionError(StateStoreError):
    """Conditional write lost a race: stored version differs from expected."""

    def __init__(self, path: str, expected: int, actual: Optional[int] = None):
        super().__init__(path, f"Version conflict at {path}: expected {expected}, found {actual}")
        self.expected = expected
        self.actual = actual


# ============================================================================
# VALUES
# ============================================================================

@dataclass(frozen=True)
class VersionedData:
    """A node's data together with the version it was read at."""
    data: Any
    version: int


def parent_of(path: str) -> str:
    """Parent path; the root's parent is the empty string."""
    if path in ("", "/"):
        return ""
    parent = path.rsplit("/", 1)[0]
    return parent or "/"


def ancestors_of(path: str) -> List[str]:
    """Ancestor paths from the top down, excluding root and path itself."""
    parts = [p for p in path.split("/") if p]
    return ["/" + "/".join(parts[:i]) for i in range(1, len(parts))]


def _normalize(path: str) -> str:
    if not path.startswith("/"):
        raise ValueError(f"Path must be absolute: {path}")
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/")
    return path


# ============================================================================
# STORE
# ============================================================================

class DistributedStateStore:
    """
    Hierarchical versioned store on PostgreSQL.

    All paths are absolute ("/collections/products/state.json").
    """

    def __init__(self, pool: Optional[AsyncConnectionPool], session_id: Optional[str] = None):
        self.pool = pool
        self.session_id = session_id

    # =========================================================================
    # SCHEMA
    # =========================================================================

    async def ensure_schema(self) -> None:
        """Create the schema and node table if missing."""
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(SCHEMA_IDENTIFIER)
            )
            await conn.execute(
                sql.SQL("""
                CREATE TABLE IF NOT EXISTS {} (
                    path TEXT PRIMARY KEY,
                    parent TEXT NOT NULL,
                    data JSONB,
                    version INTEGER NOT NULL DEFAULT 0,
                    ephemeral_owner TEXT,
                    expires_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """).format(TABLE_STATE_NODES)
            )
            await conn.execute(
                sql.SQL("CREATE INDEX IF NOT EXISTS state_nodes_parent_idx ON {} (parent)").format(
                    TABLE_STATE_NODES
                )
            )
        logger.info("State store schema ready")

    # =========================================================================
    # PRIMITIVES
    # =========================================================================

    async def _fetch(self, path: str) -> Optional[VersionedData]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT data, version FROM {}
                WHERE path = %s
                  AND (expires_at IS NULL OR expires_at > now())
                """).format(TABLE_STATE_NODES),
                (path,),
            )
            row = await result.fetchone()
            if row is None:
                return None
            return VersionedData(data=row["data"], version=row["version"])

    async def _insert(
        self,
        path: str,
        data: Any,
        ephemeral: bool,
        create_parents: bool,
    ) -> bool:
        """
        Insert a node (and missing parents). Returns False if it already exists.
        """
        expires_at = None
        owner = None
        if ephemeral:
            owner = self.session_id or "anonymous"
            expires_at = datetime.now(timezone.utc) + timedelta(
                seconds=get_defaults().cluster.live_node_ttl_sec
            )

        async with self.pool.connection() as conn:
            async with conn.transaction():
                if create_parents:
                    for ancestor in ancestors_of(path):
                        await conn.execute(
                            sql.SQL("""
                            INSERT INTO {} (path, parent, data)
                            VALUES (%s, %s, NULL)
                            ON CONFLICT (path) DO NOTHING
                            """).format(TABLE_STATE_NODES),
                            (ancestor, parent_of(ancestor)),
                        )

                # An expired ephemeral node no longer exists
                await conn.execute(
                    sql.SQL("""
                    DELETE FROM {}
                    WHERE path = %s AND expires_at IS NOT NULL AND expires_at <= now()
                    """).format(TABLE_STATE_NODES),
                    (path,),
                )

                result = await conn.execute(
                    sql.SQL("""
                    INSERT INTO {} (path, parent, data, version, ephemeral_owner, expires_at)
                    VALUES (%s, %s, %s, 0, %s, %s)
                    ON CONFLICT (path) DO NOTHING
                    """).format(TABLE_STATE_NODES),
                    (path, parent_of(path), Json(data), owner, expires_at),
                )
                return result.rowcount > 0

    async def _update(self, path: str, data: Any, version: int) -> Optional[int]:
        """
        Write data if the stored version matches (or unconditionally for -1).

        Returns the new version, or None when nothing matched.
        """
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            if version == -1:
                result = await conn.execute(
                    sql.SQL("""
                    UPDATE {} SET data = %s, version = version + 1, updated_at = now()
                    WHERE path = %s
                      AND (expires_at IS NULL OR expires_at > now())
                    RETURNING version
                    """).format(TABLE_STATE_NODES),
                    (Json(data), path),
                )
            else:
                result = await conn.execute(
                    sql.SQL("""
                    UPDATE {} SET data = %s, version = version + 1, updated_at = now()
                    WHERE path = %s
                      AND version = %s
                      AND (expires_at IS NULL OR expires_at > now())
                    RETURNING version
                    """).format(TABLE_STATE_NODES),
                    (Json(data), path, version),
                )
            row = await result.fetchone()
            return None if row is None else row["version"]

    async def _delete_tree(self, path: str, include_self: bool) -> int:
        """Delete a node's subtree. Returns number of rows removed."""
        prefix = path.rstrip("/") + "/"
        async with self.pool.connection() as conn:
            if include_self:
                result = await conn.execute(
                    sql.SQL("""
                    DELETE FROM {} WHERE path = %s OR starts_with(path, %s)
                    """).format(TABLE_STATE_NODES),
                    (path, prefix),
                )
            else:
                result = await conn.execute(
                    sql.SQL("""
                    DELETE FROM {} WHERE starts_with(path, %s)
                    """).format(TABLE_STATE_NODES),
                    (prefix,),
                )
            return result.rowcount

    async def list_children(self, path: str) -> List[str]:
        """
        Child names (last path segment) of a node, sorted.

        Raises:
            NoNodeError: parent does not exist
        """
        path = _normalize(path)
        if path != "/" and not await self.has_data(path):
            raise NoNodeError(path)
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT path FROM {}
                WHERE parent = %s
                  AND (expires_at IS NULL OR expires_at > now())
                ORDER BY path
                """).format(TABLE_STATE_NODES),
                (path,),
            )
            rows = await result.fetchall()
            return [row["path"].rsplit("/", 1)[-1] for row in rows]

    async def renew_ephemeral(self, ttl_sec: Optional[int] = None) -> int:
        """
        Push out the expiry of every ephemeral node owned by this session.

        Returns:
            Number of nodes renewed
        """
        if ttl_sec is None:
            ttl_sec = get_defaults().cluster.live_node_ttl_sec
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_sec)
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET expires_at = %s
                WHERE ephemeral_owner = %s
                """).format(TABLE_STATE_NODES),
                (expires_at, self.session_id),
            )
            return result.rowcount

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def get_data(self, path: str) -> VersionedData:
        """
        Read a node.

        Raises:
            NoNodeError: node does not exist
        """
        path = _normalize(path)
        found = await self._fetch(path)
        if found is None:
            raise NoNodeError(path)
        return found

    async def has_data(self, path: str) -> bool:
        return await self._fetch(_normalize(path)) is not None

    async def make_path(
        self,
        path: str,
        data: Any = None,
        ephemeral: bool = False,
        fail_on_exists: bool = True,
    ) -> None:
        """
        Create a node and any missing parents.

        Args:
            path: Absolute node path
            data: JSON-serializable node data
            ephemeral: Tie the node to this session's lifetime
            fail_on_exists: Raise if the node already exists

        Raises:
            NodeExistsError: node exists and fail_on_exists is set
        """
        path = _normalize(path)
        created = await self._insert(path, data, ephemeral, create_parents=True)
        if not created and fail_on_exists:
            raise NodeExistsError(path)
        if created:
            logger.debug(f"Created node {path} (ephemeral={ephemeral})")

    async def set_data(self, path: str, data: Any, version: int = -1) -> int:
        """
        Conditionally replace a node's data.

        Args:
            path: Absolute node path
            data: Complete new data
            version: Expected version, -1 for unconditional

        Returns:
            New version

        Raises:
            NoNodeError: node does not exist
            BadVersionError: stored version differs from version
        """
        path = _normalize(path)
        new_version = await self._update(path, data, version)
        if new_version is not None:
            return new_version

        current = await self._fetch(path)
        if current is None:
            raise NoNodeError(path)
        raise BadVersionError(path, expected=version, actual=current.version)

    async def remove_recursively(
        self,
        path: str,
        ignore_missing: bool = True,
        include_self: bool = True,
    ) -> None:
        """
        Remove a node and everything below it.

        Raises:
            NoNodeError: nothing removed and ignore_missing is False
        """
        path = _normalize(path)
        removed = await self._delete_tree(path, include_self)
        if removed == 0 and not ignore_missing:
            raise NoNodeError(path)
        if removed:
            logger.debug(f"Removed {removed} node(s) under {path}")

    async def increment_counter(self, path: str, max_attempts: Optional[int] = None) -> int:
        """
        Atomically increment an integer counter node, creating it at 1.

        Returns:
            The new counter value

        Raises:
            BadVersionError: lost every retry
        """
        if max_attempts is None:
            max_attempts = get_defaults().timeouts.cas_max_attempts

        last_error: Optional[BadVersionError] = None
        for _ in range(max_attempts):
            try:
                current = await self.get_data(path)
            except NoNodeError:
                try:
                    await self.make_path(path, {"value": 1})
                    return 1
                except NodeExistsError:
                    continue

            value = int((current.data or {}).get("value", 0)) + 1
            try:
                await self.set_data(path, {"value": value}, version=current.version)
                return value
            except BadVersionError as e:
                last_error = e

        raise last_error or BadVersionError(path, expected=-1)

    async def wait_for(
        self,
        path: str,
        predicate: Callable[[Optional[VersionedData]], bool],
        timeout: float,
        interval: float,
    ) -> Optional[VersionedData]:
        """
        Poll a node until predicate(current) holds.

        predicate receives None while the node does not exist.

        Returns:
            The value that satisfied the predicate

        Raises:
            StateWaitTimeout: predicate never held within timeout
        """
        path = _normalize(path)
        start = time.monotonic()
        deadline = start + timeout
        while True:
            current = await self._fetch(path)
            if predicate(current):
                return current
            if time.monotonic() >= deadline:
                waited = time.monotonic() - start
                raise StateWaitTimeout(
                    f"Timed out after {waited:.1f}s waiting on {path}",
                    waited_seconds=waited,
                )
            await asyncio.sleep(interval)


__all__ = [
    "DistributedStateStore",
    "VersionedData",
    "StateStoreError",
    "NoNodeError",
    "NodeExistsError",
    "BadVersionError",
    "parent_of",
    "ancestors_of",
]
