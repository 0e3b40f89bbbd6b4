"""Core application components."""

# Import in correct order to avoid circular dependencies
from core.logger import setup_logger, get_logger
from core.constants import (
    PHASE_ORDER,
    PHASE_TRANSITIONS,
    PhaseName,
    PhaseStatus,
    EventStatus,
    ContestantStatus,
    RaffleOutcome,
    TimelineDefaults,
    CommercialDefaults,
    RaffleDefaults,
    FeatureDefaults,
    ViewerDefaults,
    TelegramLimits,
)
from core.exceptions import (
    ApplicationError,
    ConfigurationError,
    DatabaseError,
    ConcurrencyConflictError,
    ServiceError,
    NotFoundError,
    InvalidStateError,
    ConflictError,
    BoundsViolationError,
    LotteryError,
    RaffleAlreadyExecutedError,
    NothingToRaffleError,
    ValidationError,
    InvalidPhaseError,
    AuthenticationError,
)

__all__ = [
    # Initializer
    'ApplicationInitializer',
    # Logging
    'setup_logger',
    'get_logger',
    # Constants
    'PHASE_ORDER',
    'PHASE_TRANSITIONS',
    'PhaseName',
    'PhaseStatus',
    'EventStatus',
    'ContestantStatus',
    'RaffleOutcome',
    'TimelineDefaults',
    'CommercialDefaults',
    'RaffleDefaults',
    'FeatureDefaults',
    'ViewerDefaults',
    'TelegramLimits',
    # Exceptions
    'ApplicationError',
    'ConfigurationError',
    'DatabaseError',
    'ConcurrencyConflictError',
    'ServiceError',
    'NotFoundError',
    'InvalidStateError',
    'ConflictError',
    'BoundsViolationError',
    'LotteryError',
    'RaffleAlreadyExecutedError',
    'NothingToRaffleError',
    'ValidationError',
    'InvalidPhaseError',
    'AuthenticationError',
]

# Import ApplicationInitializer last to avoid circular imports
from core.app_initializer import ApplicationInitializer
