# ============================================================================
# STEP OUTCOME
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Explicit step results
# PURPOSE: Value-or-error result returned by each orchestration step
# CREATED: 18 OCT 2026
# ============================================================================
"""
Step Outcome

Orchestration steps return a StepOutcome instead of raising, so the
command's top-level sequence is straight-line code that checks each result
and branches to rollback explicitly.

    outcome = await self._assign(...)
    if not outcome.ok:
        return await self._fail(run, outcome.error)
    positions = outcome.value
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from core.errors import CollectionAdminError

T = TypeVar("T")


@dataclass(frozen=True)
class StepOutcome(Generic[T]):
    """Result of one step: a value, or an error."""
    value: Optional[T] = None
    error: Optional[CollectionAdminError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "StepOutcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CollectionAdminError) -> "StepOutcome[T]":
        return cls(error=error)


__all__ = ["StepOutcome"]
