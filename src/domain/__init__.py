"""
Domain layer - Pure business logic with zero framework imports.

This package contains the core business logic for the company-incorporation
registration workflow: the registration state machine, the additional-fee
engine, the expiry notifier and shared-access resolution. It defines its own
port interfaces for infrastructure abstraction, ensuring true hexagonal
architecture decoupling.
"""

from .access import can_read
from .exceptions import (
    AccessDenied,
    CollaboratorUnavailable,
    FileDeletionFailed,
    NotificationFailed,
    RegistrationError,
    RegistrationNotFound,
    TransitionConflict,
    ValidationFailure,
)
from .expiry import ExpiryNotifier, ExpiryOutcome, SweepReport
from .fees import compute_additional_fees
from .models import FeeBreakdown, FeeRateConfig, Registration, Requester, StateChange
from .ports import (
    ExpiryStatus,
    FeeRateProvider,
    FileStorage,
    NotificationKind,
    NotificationSender,
    RegistrationRepository,
    ReviewState,
    ShareStatus,
    Step,
)
from .registration import RegistrationService
from .state_machine import RegistrationStateMachine

__all__ = [
    "AccessDenied",
    "CollaboratorUnavailable",
    "ExpiryNotifier",
    "ExpiryOutcome",
    "ExpiryStatus",
    "FeeBreakdown",
    "FeeRateConfig",
    "FeeRateProvider",
    "FileDeletionFailed",
    "FileStorage",
    "NotificationFailed",
    "NotificationKind",
    "NotificationSender",
    "Registration",
    "RegistrationError",
    "RegistrationNotFound",
    "RegistrationRepository",
    "RegistrationService",
    "RegistrationStateMachine",
    "Requester",
    "ReviewState",
    "ShareStatus",
    "StateChange",
    "Step",
    "SweepReport",
    "TransitionConflict",
    "ValidationFailure",
    "can_read",
    "compute_additional_fees",
]
