"""Application-wide exception classes."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ApplicationError(Exception):
    """Base exception for all application errors."""

    kind = "error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(ApplicationError):
    """Raised when configuration is invalid."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for database-related errors."""
    pass


class ConcurrencyConflictError(DatabaseError):
    """Raised when an optimistic version check loses to another writer."""

    kind = "conflict"


class ServiceError(ApplicationError):
    """Base exception for service-level errors."""
    pass


class NotFoundError(ServiceError):
    """Raised when an event, timeline or record does not exist."""

    kind = "not_found"


class InvalidStateError(ServiceError):
    """Raised when an action is not supported in the current state."""

    kind = "invalid_state"


class ConflictError(ServiceError):
    """Raised when an action collides with something already done."""

    kind = "conflict"


class BoundsViolationError(ServiceError):
    """Raised when a requested value exceeds what the current state allows."""

    kind = "bounds_violation"

    def __init__(self, message: str = "", limit: Optional[Any] = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.limit = limit


class LotteryError(ServiceError):
    """Base exception for raffle operations."""
    pass


class RaffleAlreadyExecutedError(ConflictError, LotteryError):
    """Raised when a raffle is requested for an event that already has one."""
    pass


class NothingToRaffleError(InvalidStateError, LotteryError):
    """Raised when there are no entrants to raffle."""
    pass


class ValidationError(ApplicationError):
    """Raised when data validation fails."""

    kind = "validation"


class InvalidPhaseError(ValidationError):
    """Raised when a phase name is not part of the timeline enumeration."""
    pass


class AuthenticationError(ApplicationError):
    """Raised when authentication fails."""

    kind = "unauthenticated"
