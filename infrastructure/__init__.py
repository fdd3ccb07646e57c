# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Infrastructure - Cross-process coordination
# PURPOSE: Advisory locks shared by API and state updater processes
# CREATED: 18 OCT 2026
# ============================================================================
"""
Infrastructure module.

Provides:
- LockService: PostgreSQL advisory locks (single state updater,
  one create per collection name at a time)

Usage:
    from infrastructure import LockService

    lock_service = LockService(pool)
    acquired = await lock_service.try_acquire_updater_lock()
"""

from infrastructure.locking import LockService

__all__ = [
    'LockService',
]
