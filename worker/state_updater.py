# ============================================================================
# STATE UPDATE PROCESSOR
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Worker - Applies queued cluster-state mutations
# PURPOSE: Turn one StateUpdateMessage into a state record write
# CREATED: 18 OCT 2026
# ============================================================================
"""
State Update Processor

The legacy protocol funnels every mutation of a collection record through
one ordered queue. The consumer hands each message here; the processor
reads the current record, applies the mutation with the shared pure
mutators and writes the result back.

Replays are harmless: CREATE keeps an existing record, ADD_REPLICA is a
no-op for a known core, and DELETE of a missing record does nothing.
"""

from typing import Optional

from core.config import get_defaults
from core.logging import get_logger, log_context
from core.models import Collection, StateUpdateMessage
from repositories import BadVersionError, CollectionRepository, NodeExistsError
from services import mutators

logger = get_logger(__name__)


class StateUpdateProcessor:
    """Applies StateUpdateMessage instances to the state store."""

    def __init__(self, collections: CollectionRepository, max_attempts: Optional[int] = None):
        self.collections = collections
        self.max_attempts = max_attempts or get_defaults().timeouts.cas_max_attempts
        self.applied = 0

    async def apply(self, message: StateUpdateMessage) -> Optional[Collection]:
        """
        Apply one message.

        Returns:
            The record after the mutation (None if the collection is gone)

        Raises:
            BadVersionError: the record kept changing underneath us
            ValueError: malformed message
        """
        with log_context(collection=message.collection, operation=message.operation.value):
            for attempt in range(1, self.max_attempts + 1):
                current = await self.collections.get_state(message.collection)
                updated = mutators.apply_message(current, message)

                try:
                    result = await self._write(message.collection, current, updated)
                except (BadVersionError, NodeExistsError) as e:
                    logger.debug(f"Concurrent write on attempt {attempt}: {e}")
                    if attempt == self.max_attempts:
                        raise
                    continue

                self.applied += 1
                logger.debug(f"Applied state update {message.message_id}")
                return result

    async def _write(
        self,
        name: str,
        current: Optional[Collection],
        updated: Optional[Collection],
    ) -> Optional[Collection]:
        if updated is None:
            if current is not None:
                await self.collections.delete_state(name)
            return None

        if current is None:
            return await self.collections.create_state(updated)

        if updated is current:
            return current

        return await self.collections.write_state(updated)


__all__ = ["StateUpdateProcessor"]
