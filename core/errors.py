# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Foundation - Client-visible error kinds
# PURPOSE: One exception class per failure kind of the create command
# CREATED: 18 OCT 2026
# ============================================================================
"""
Error Taxonomy

Every failed request surfaces exactly one of these. Lower-level exceptions
are translated at the orchestrator boundary and never leak raw.

    PreconditionViolation  - name/alias collision, malformed counts (no mutation)
    ConfigurationNotFound  - no usable configuration bundle (no mutation)
    CapacityExceeded       - placement impossible (after empty-topology rollback)
    ProvisioningFailure    - remote create failed / replicas never active (after full rollback)
    ServerError            - anything unexpected (rollback still attempted)
    StateWaitTimeout       - internal; fatal or tolerated depending on the wait
"""

from typing import Any, Dict, Optional

from core.contracts import ErrorCode


class CollectionAdminError(Exception):
    """
    Base class for collection admin failures.

    Attributes:
        message: Human-readable description
        code: ErrorCode mapped to the HTTP status by the API layer
        details: Structured detail for the caller (no second round trip)
    """

    code: ErrorCode = ErrorCode.SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Render for a JSON response body."""
        body: Dict[str, Any] = {
            "code": int(self.code),
            "kind": type(self).__name__,
            "msg": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class PreconditionViolation(CollectionAdminError):
    """Request rejected before any mutation."""
    code = ErrorCode.BAD_REQUEST


class ConfigurationNotFound(CollectionAdminError):
    """No configuration bundle could be resolved for the collection."""
    code = ErrorCode.BAD_REQUEST


class CapacityExceeded(CollectionAdminError):
    """Assignment impossible under maxShardsPerNode."""
    code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str, max_allowed: int, requested: int):
        super().__init__(
            message,
            details={"max_allowed": max_allowed, "requested": requested},
        )
        self.max_allowed = max_allowed
        self.requested = requested


class ProvisioningFailure(CollectionAdminError):
    """Remote core creation failed or replicas never became active."""
    code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(message, details={"failures": failures} if failures else None)
        self.failures = failures or {}


class ServerError(CollectionAdminError):
    """Unexpected lower-level failure, wrapped."""
    code = ErrorCode.SERVER_ERROR


class StateWaitTimeout(CollectionAdminError):
    """A bounded wait on eventually-consistent state elapsed."""
    code = ErrorCode.SERVER_ERROR

    def __init__(self, message: str, waited_seconds: float):
        super().__init__(message, details={"waited_seconds": waited_seconds})
        self.waited_seconds = waited_seconds


__all__ = [
    "CollectionAdminError",
    "PreconditionViolation",
    "ConfigurationNotFound",
    "CapacityExceeded",
    "ProvisioningFailure",
    "ServerError",
    "StateWaitTimeout",
]
