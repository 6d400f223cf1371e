"""
Domain exceptions - Semantic error types for registrations.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class RegistrationNotFound(RegistrationError):
    """No registration exists with the given id."""

    def __init__(self, registration_id: str) -> None:
        super().__init__(f"Registration not found: {registration_id}")
        self.registration_id = registration_id


class TransitionConflict(RegistrationError):
    """Patch would regress the step or contradicts the approval state."""

    pass


class AccessDenied(RegistrationError):
    """Requester is neither the owner nor an approved share."""

    pass


class ValidationFailure(RegistrationError):
    """Malformed value for a known patch field. The field is dropped."""

    def __init__(self, field_name: str, reason: str) -> None:
        super().__init__(f"{field_name}: {reason}")
        self.field_name = field_name
        self.reason = reason


class CollaboratorUnavailable(RegistrationError):
    """Registration store could not be reached."""

    pass


class NotificationFailed(RegistrationError):
    """Notification transport rejected or failed to deliver a message."""

    pass


class FileDeletionFailed(RegistrationError):
    """File storage could not delete a stored document."""

    pass
