# ============================================================================
# DISTRIBUTED LOCKING SERVICE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Infrastructure - Concurrency control
# PURPOSE: PostgreSQL advisory locks for the cluster-state updater
# CREATED: 18 OCT 2026
# ============================================================================
"""
Distributed Locking Service

Uses PostgreSQL advisory locks for coordination:
- Session-level lock so only one state updater drains the queue
- Transaction-level locks so one create runs per collection name

Advisory locks are:
- Fast (in-memory, no disk I/O)
- Auto-release on disconnect (crash-safe)
- Support non-blocking try_lock semantics

Usage:
    from infrastructure.locking import LockService

    lock_service = LockService(pool)

    if not await lock_service.try_acquire_updater_lock():
        raise RuntimeError("Another state updater is running")

    async with lock_service.collection_lock("products", blocking=True):
        await create(request)
"""

import hashlib
import logging
from contextlib import asynccontextmanager

from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)


def _acquired(row) -> bool:
    # Handle both dict_row and tuple row factories
    if not row:
        return False
    return bool(row["acquired"] if hasattr(row, "keys") else row[0])


class LockService:
    """
    PostgreSQL-based distributed locking.

    Provides two types of locks:
    1. Updater lock (session-level): a single consumer applies state updates
    2. Collection locks (transaction-level): per-collection coordination
    """

    # Lock namespace prefixes (hashed to int8 for pg_advisory_lock)
    UPDATER_LOCK = "clusterstate:updater"
    COLLECTION_LOCK_PREFIX = "clusterstate:collection:"

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool
        self._updater_conn = None  # Held connection for the updater lock

    @staticmethod
    def _hash_to_lock_id(key: str) -> int:
        """
        Convert string key to int64 for PostgreSQL advisory lock.

        Args:
            key: String key to hash

        Returns:
            Signed int64 suitable for pg_advisory_lock
        """
        h = hashlib.sha256(key.encode()).digest()[:8]
        return int.from_bytes(h, byteorder="big", signed=True)

    # =========================================================================
    # UPDATER LOCK (Session-level)
    # =========================================================================

    async def try_acquire_updater_lock(self) -> bool:
        """
        Try to acquire the global state-updater lock.

        The lock is held on a dedicated connection for the lifetime of the
        consumer and auto-releases if that connection closes.

        Returns:
            True if lock acquired, False if another updater holds it
        """
        lock_id = self._hash_to_lock_id(self.UPDATER_LOCK)
        self._updater_conn = await self.pool.getconn()

        try:
            result = await self._updater_conn.execute(
                "SELECT pg_try_advisory_lock(%s) as acquired",
                (lock_id,),
            )
            acquired = _acquired(await result.fetchone())

            if acquired:
                logger.info(f"Acquired state updater lock (lock_id={lock_id})")
            else:
                logger.warning(
                    "Failed to acquire state updater lock - "
                    "another instance may be running"
                )
                await self.pool.putconn(self._updater_conn)
                self._updater_conn = None

            return acquired

        except Exception as e:
            logger.error(f"Error acquiring state updater lock: {e}")
            if self._updater_conn:
                await self.pool.putconn(self._updater_conn)
                self._updater_conn = None
            return False

    async def release_updater_lock(self) -> None:
        """Release the updater lock (called during graceful shutdown)."""
        if not self._updater_conn:
            return

        lock_id = self._hash_to_lock_id(self.UPDATER_LOCK)
        try:
            await self._updater_conn.execute(
                "SELECT pg_advisory_unlock(%s)",
                (lock_id,),
            )
            logger.info(f"Released state updater lock (lock_id={lock_id})")
        except Exception as e:
            logger.warning(f"Error releasing state updater lock: {e}")
        finally:
            await self.pool.putconn(self._updater_conn)
            self._updater_conn = None

    @property
    def has_updater_lock(self) -> bool:
        return self._updater_conn is not None

    # =========================================================================
    # COLLECTION LOCK (Transaction-level)
    # =========================================================================

    @asynccontextmanager
    async def collection_lock(self, collection: str, blocking: bool = False):
        """
        Context manager for collection-level locking.

        Args:
            collection: Collection to lock
            blocking: Wait for the lock instead of returning immediately

        Yields:
            bool: True if lock acquired
        """
        lock_id = self._hash_to_lock_id(f"{self.COLLECTION_LOCK_PREFIX}{collection}")

        async with self.pool.connection() as conn:
            if blocking:
                await conn.execute("SELECT pg_advisory_xact_lock(%s)", (lock_id,))
                acquired = True
            else:
                result = await conn.execute(
                    "SELECT pg_try_advisory_xact_lock(%s) as acquired",
                    (lock_id,),
                )
                acquired = _acquired(await result.fetchone())
                if not acquired:
                    logger.debug(f"Collection {collection} locked by another process")

            yield acquired


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["LockService"]
