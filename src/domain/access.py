"""
Shared-access resolution.

Decides whether a requester may read a registration: the owner always
can; anyone else needs an approved entry in the shared list. Pending and
rejected share requests never confer read rights.
"""

from .models import ApprovalShareList, LegacyShareList, Registration, Requester
from .ports import ShareStatus


def _normalize(email: str) -> str:
    return email.strip().lower()


def has_approved_share(registration: Registration, email: str | None) -> bool:
    """True if ``email`` holds approved shared access (case-insensitive)."""
    if not email:
        return False
    wanted = _normalize(email)
    shared = registration.shared_with

    if isinstance(shared, LegacyShareList):
        # Legacy entries predate approval, so any match counts as approved.
        return any(_normalize(entry) == wanted for entry in shared.emails)

    if isinstance(shared, ApprovalShareList):
        return any(
            _normalize(entry.email) == wanted and entry.status is ShareStatus.APPROVED
            for entry in shared.entries
        )

    return False


def can_read(registration: Registration, requester: Requester) -> bool:
    """
    Decide read eligibility.

    Args:
        registration: Registration being read
        requester: Caller identity (user id and/or email)

    Returns:
        True if the requester owns the registration or holds an approved share
    """
    if requester.user_id and requester.user_id == registration.owner_user_id:
        return True
    return has_approved_share(registration, requester.email)
