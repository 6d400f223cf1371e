"""
Registration domain service - composition root for the incorporation workflow.

Orchestrates the pieces behind every inbound operation:

- reads go through the access resolver and trigger a best-effort expiry check
- writes go through the state machine (which reprices the roster when needed)
- admin transitions trigger best-effort customer notifications
- deletes fan out to file storage before the row is removed

Expiry, notification and file-deletion failures are side effects of an
unrelated primary operation: they are logged and never make that
operation fail.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from .access import can_read
from .exceptions import (
    AccessDenied,
    FileDeletionFailed,
    NotificationFailed,
    RegistrationError,
    RegistrationNotFound,
)
from .expiry import ExpiryNotifier, ExpiryOutcome, SweepReport
from .models import Registration, Requester, StateChange
from .ports import (
    FileStorage,
    NotificationKind,
    NotificationSender,
    RegistrationRepository,
    Step,
)
from .state_machine import RegistrationStateMachine

logger = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"


def iter_file_paths(value: Any) -> Iterator[str]:
    """Yield every stored file reference (``filePath``) inside a document value."""
    if isinstance(value, Mapping):
        path = value.get("filePath")
        if isinstance(path, str) and path:
            yield path
            return
        for nested in value.values():
            yield from iter_file_paths(nested)
    elif isinstance(value, list):
        for item in value:
            yield from iter_file_paths(item)


def registration_file_paths(registration: Registration) -> list[str]:
    """All file references of a registration: document slots and roster documents."""
    paths: list[str] = []
    paths.extend(iter_file_paths(registration.documents))
    for member in [*registration.shareholders, *registration.directors]:
        paths.extend(iter_file_paths(member.details.get("documents")))
    # Directors copied from shareholders share their documents.
    return list(dict.fromkeys(paths))


@dataclass
class RegistrationService:
    """
    Domain service for company-incorporation registrations.

    Receives create/read/update/delete requests and wires the state machine,
    access resolver, expiry notifier and external collaborators together.
    """

    repository: RegistrationRepository
    state_machine: RegistrationStateMachine
    notifier: ExpiryNotifier
    file_storage: FileStorage
    notification_sender: NotificationSender
    expiry_check_batch_size: int = 10

    def create(
        self, registration_id: str, owner_user_id: str | None, data: Mapping[str, Any]
    ) -> tuple[Registration, bool]:
        """
        Create a registration, idempotent on id.

        Args:
            registration_id: Externally supplied id
            owner_user_id: Owning user
            data: Initial field values (same keys as an update patch)

        Returns:
            (registration, created) where created is False if the id existed

        Raises:
            AccessDenied: The id exists and belongs to another user
        """
        existing = self.repository.get(registration_id)
        if existing is not None:
            return self._existing_for(existing, owner_user_id), False

        registration = self.state_machine.initialize(
            Registration(id=registration_id, owner_user_id=owner_user_id), data
        )
        if not self.repository.create(registration):
            # Lost a race with a concurrent create of the same id.
            stored = self.repository.get(registration_id) or registration
            return self._existing_for(stored, owner_user_id), False

        logger.info("Registration %s created for user %s", registration_id, owner_user_id)
        return registration, True

    def get(self, registration_id: str, requester: Requester) -> Registration:
        """
        Read one registration.

        An anonymous requester is an administrative caller already
        authenticated upstream and bypasses the access check.

        Raises:
            RegistrationNotFound: Unknown id
            AccessDenied: Requester is neither owner nor approved share
        """
        registration = self.repository.get(registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)
        if not requester.is_anonymous and not can_read(registration, requester):
            raise AccessDenied(f"Access to registration {registration_id} denied")

        self._check_expiry_quietly(registration)
        return registration

    def list(self, requester: Requester) -> list[Registration]:
        """List registrations readable by the requester (all of them for admins)."""
        if requester.is_anonymous:
            registrations = self.repository.list()
        else:
            email = requester.email.strip().lower() if requester.email else None
            candidates = self.repository.list(owner_user_id=requester.user_id, shared_email=email)
            registrations = [r for r in candidates if can_read(r, requester)]

        for registration in registrations[: self.expiry_check_batch_size]:
            self._check_expiry_quietly(registration)
        return registrations

    def update(self, registration_id: str, patch: Mapping[str, Any]) -> Registration:
        """
        Apply a partial update.

        Raises:
            RegistrationNotFound: Unknown id
            TransitionConflict: Step ordering or approval exclusivity violated
        """
        change = self.state_machine.apply_update(registration_id, patch)
        self._notify_transitions(change)
        return change.after

    def reopen(self, registration_id: str, step: Step | str) -> Registration:
        """Admin action: move the registration back to an earlier step."""
        change = self.state_machine.reopen(registration_id, step)
        logger.info(
            "Registration %s reopened from %s to %s",
            registration_id,
            change.before.current_step.value,
            change.after.current_step.value,
        )
        return change.after

    def set_pinned(self, registration_id: str, pinned: bool) -> Registration:
        return self.update(registration_id, {"pinned": pinned})

    def set_noted(self, registration_id: str, noted: bool) -> Registration:
        return self.update(registration_id, {"noted": noted})

    def request_share(
        self, registration_id: str, email: str, requested_by: str | None = None
    ) -> Registration:
        return self.state_machine.request_share(registration_id, email, requested_by).after

    def respond_share(
        self, registration_id: str, email: str, approve: bool, responded_by: str | None = None
    ) -> Registration:
        return self.state_machine.respond_share(registration_id, email, approve, responded_by).after

    def revoke_share(self, registration_id: str, email: str) -> Registration:
        return self.state_machine.revoke_share(registration_id, email).after

    def check_expiry(self, registration_id: str) -> ExpiryOutcome:
        """Explicit expiry check for one registration."""
        registration = self.repository.get(registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)
        return self.notifier.check_and_notify(registration)

    def sweep_expired(self) -> SweepReport:
        return self.notifier.sweep()

    def delete(self, registration_id: str) -> None:
        """
        Delete a registration and its stored documents.

        File deletion failures are logged and never abort the delete.

        Raises:
            RegistrationNotFound: Unknown id
        """
        registration = self.repository.get(registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)

        for path in registration_file_paths(registration):
            try:
                self.file_storage.delete(path)
            except FileDeletionFailed as exc:
                logger.warning("Failed to delete file %s for %s: %s", path, registration_id, exc)

        if self.repository.delete(registration_id) == 0:
            raise RegistrationNotFound(registration_id)
        logger.info("Registration %s deleted", registration_id)

    def _existing_for(self, existing: Registration, owner_user_id: str | None) -> Registration:
        """Only the owner (or an administrative caller) sees an existing registration."""
        if owner_user_id is not None and existing.owner_user_id != owner_user_id:
            logger.warning(
                "Create of existing registration %s refused for user %s", existing.id, owner_user_id
            )
            raise AccessDenied(f"Registration {existing.id} belongs to another user")
        return existing

    def _check_expiry_quietly(self, registration: Registration) -> None:
        try:
            self.notifier.check_and_notify(registration)
        except RegistrationError:
            logger.exception("Expiry check failed for registration %s", registration.id)

    def _notify_transitions(self, change: StateChange) -> None:
        after = change.after
        if change.flipped_on("payment_approved"):
            self._send_quietly(
                NotificationKind.PAYMENT_APPROVED,
                after,
                {"packageName": after.selected_package},
            )
        if after.status == COMPLETED_STATUS and change.before.status != COMPLETED_STATUS:
            self._send_quietly(NotificationKind.REGISTRATION_COMPLETED, after, {})

    def _send_quietly(
        self, kind: NotificationKind, registration: Registration, extra: dict[str, Any]
    ) -> None:
        recipient, name = registration.notification_recipient()
        if not recipient:
            logger.warning("No recipient for %s notification on %s", kind.value, registration.id)
            return
        template_data = {"name": name, "companyName": registration.display_company_name, **extra}
        try:
            self.notification_sender.send(kind, recipient, template_data)
        except NotificationFailed as exc:
            logger.error("%s notification failed for %s: %s", kind.value, registration.id, exc)
        except Exception:
            logger.exception("%s notification for %s raised unexpectedly", kind.value, registration.id)
