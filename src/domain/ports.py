"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the enumerations shared across the domain and the
interfaces (ports) that the domain requires from infrastructure.
Adapters implement these protocols.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import FeeRateConfig, Registration, StateChange


class Step(str, Enum):
    """
    Incorporation workflow steps, in order.

    A registration advances one step at a time. Moving backwards is only
    possible through the explicit admin reopen operation.
    """

    CONTACT_DETAILS = "contact-details"
    COMPANY_DETAILS = "company-details"
    DOCUMENTATION = "documentation"
    PAYMENT = "payment"
    INCORPORATION = "incorporation"

    @classmethod
    def parse(cls, value: str) -> Step:
        """Parse a wire value, accepting the legacy ``incorporate`` alias."""
        if value == "incorporate":
            return cls.INCORPORATION
        return cls(value)

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)


STEP_ORDER: tuple[Step, ...] = tuple(Step)


class ReviewState(str, Enum):
    """
    Company-details review state.

    Replaces the three independent locked/approved/rejected flags so that
    approval and rejection can never be set together.
    """

    NONE = "none"
    LOCKED = "locked"
    APPROVED = "approved"
    REJECTED = "rejected"


class ShareStatus(str, Enum):
    """Approval status of a shared-access entry."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Residency(str, Enum):
    LOCAL = "local"
    FOREIGN = "foreign"


class LegalType(str, Enum):
    NATURAL_PERSON = "natural-person"
    LEGAL_ENTITY = "legal-entity"


class NotificationKind(str, Enum):
    """Messages the notification sender must be able to deliver."""

    EXPIRY_WARNING = "expiry-warning"
    PAYMENT_APPROVED = "payment-approved"
    REGISTRATION_COMPLETED = "registration-completed"


class ExpiryStatus(Enum):
    """
    Result of an expiry check.

    Used by ExpiryNotifier.check_and_notify() to report what happened.
    """

    NOT_DUE = "not_due"
    ALREADY_SENT_TODAY = "already_sent_today"
    SENT = "sent"
    FAILED = "failed"


class RegistrationRepository(Protocol):
    """Port interface for registration persistence."""

    def get(self, registration_id: str) -> Registration | None:
        """Return the registration, or None when the id is unknown."""
        ...

    def list(
        self, owner_user_id: str | None = None, shared_email: str | None = None
    ) -> list[Registration]:
        """
        List registrations, newest first.

        With no filter every registration is returned. With filters, a row
        matches when it is owned by ``owner_user_id`` OR ``shared_email``
        appears in its shared list at approved status (legacy plain-string
        entries count as approved).
        """
        ...

    def list_expiry_candidates(self) -> list[Registration]:
        """List registrations that have an expiry date or are flagged expired."""
        ...

    def create(self, registration: Registration) -> bool:
        """
        Insert a registration.

        Returns:
            True if inserted, False if a registration with the id exists
        """
        ...

    def update(self, registration_id: str, fields: dict[str, Any]) -> int:
        """
        Write the given domain fields.

        Args:
            registration_id: Registration id
            fields: Mapping of Registration attribute name to new value

        Returns:
            Number of affected rows (0 when the id is unknown)
        """
        ...

    def modify(
        self,
        registration_id: str,
        mutate: Callable[[Registration], StateChange],
    ) -> StateChange | None:
        """
        Atomic read-modify-write of one registration.

        The row is locked, handed to ``mutate``, and the fields named in the
        returned StateChange are written in the same transaction. Exceptions
        raised by ``mutate`` roll the transaction back and propagate.

        Returns:
            The applied StateChange, or None when the id is unknown
        """
        ...

    def delete(self, registration_id: str) -> int:
        """Delete a registration. Returns the number of affected rows."""
        ...


class FeeRateProvider(Protocol):
    """Port interface for the settings store's additional-fee rates."""

    def get_fee_rates(self) -> FeeRateConfig:
        ...


class NotificationSender(Protocol):
    """Port interface for outbound notifications."""

    def send(self, kind: NotificationKind, recipient: str, template_data: dict[str, Any]) -> None:
        """
        Deliver a notification.

        Args:
            kind: Which message to send
            recipient: Destination email address
            template_data: Values rendered into the message

        Raises:
            NotificationFailed: If the transport could not deliver
        """
        ...


class FileStorage(Protocol):
    """Port interface for stored document files."""

    def delete(self, path_ref: str) -> None:
        """
        Delete a stored file.

        Raises:
            FileDeletionFailed: If the file could not be removed
        """
        ...
