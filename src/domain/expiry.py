"""
Expiry notifier - at most one expiry email per registration per day.

A registration is expired when it is flagged expired or its expiry date
is before today. When expired and no notification was recorded today, the
expiry warning is sent and the send time is persisted together with the
expired flag.

The send is claimed on the locked row before it goes out, so checks
running concurrently from different request paths send at most once a
day. A crash between the claim and the send skips that day's email
rather than duplicating it.

check_and_notify() is called opportunistically from read paths and from
the batch sweep, so every failure is reported in the outcome instead of
being raised.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone, tzinfo

from .exceptions import CollaboratorUnavailable, NotificationFailed
from .models import Registration, StateChange
from .ports import ExpiryStatus, NotificationKind, NotificationSender, RegistrationRepository
from .state_machine import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryOutcome:
    """Result of one expiry check."""

    status: ExpiryStatus
    reason: str | None = None


@dataclass(frozen=True)
class SweepReport:
    """Counters for a batch expiry sweep."""

    total_checked: int = 0
    sent: int = 0
    already_sent: int = 0
    not_due: int = 0
    failed: int = 0


@dataclass
class ExpiryNotifier:
    """
    Decides whether an expiry warning is due and sends it at most once a day.

    "Today" is the calendar date of ``clock()`` in ``tz``.
    """

    repository: RegistrationRepository
    sender: NotificationSender
    clock: Callable[[], datetime] = utcnow
    tz: tzinfo = timezone.utc

    def _local_date(self, moment: datetime) -> date:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz).date()

    def is_expired(self, registration: Registration, today: date) -> bool:
        if registration.is_expired:
            return True
        return registration.expire_date is not None and registration.expire_date < today

    def sent_today(self, registration: Registration, today: date) -> bool:
        sent_at = registration.expiry_notification_sent_at
        return sent_at is not None and self._local_date(sent_at) == today

    def check_and_notify(self, registration: Registration) -> ExpiryOutcome:
        """
        Send the expiry warning if it is due and not yet sent today.

        The send is first claimed on the locked row: the send time and the
        expired flag are written only if the stored row is still expired
        and unsent today. Only the caller that wins the claim sends, so
        concurrent checks holding stale copies send at most once. A failed
        send releases the claim.

        On success the registration passed in is updated in place with the
        recorded send time and expired flag.

        Args:
            registration: Registration to check

        Returns:
            ExpiryOutcome with NOT_DUE, ALREADY_SENT_TODAY, SENT or FAILED
        """
        now = self.clock()
        today = self._local_date(now)

        if not self.is_expired(registration, today):
            return ExpiryOutcome(ExpiryStatus.NOT_DUE)
        if self.sent_today(registration, today):
            return ExpiryOutcome(ExpiryStatus.ALREADY_SENT_TODAY)

        recipient, name = registration.notification_recipient()
        if not recipient:
            logger.warning("Registration %s expired but has no notifiable address", registration.id)
            return ExpiryOutcome(ExpiryStatus.FAILED, "no notifiable address")

        try:
            claim = self.repository.modify(
                registration.id, lambda current: self._claim(current, today, now)
            )
        except CollaboratorUnavailable as exc:
            logger.error("Expiry check for %s could not reach the store: %s", registration.id, exc)
            return ExpiryOutcome(ExpiryStatus.FAILED, "registration store unavailable")
        if claim is None:
            return ExpiryOutcome(ExpiryStatus.FAILED, "registration not found")
        if not claim.changed:
            registration.expiry_notification_sent_at = claim.after.expiry_notification_sent_at
            registration.is_expired = claim.after.is_expired
            if not self.is_expired(claim.after, today):
                return ExpiryOutcome(ExpiryStatus.NOT_DUE)
            return ExpiryOutcome(ExpiryStatus.ALREADY_SENT_TODAY)

        template_data = {
            "name": name,
            "companyName": registration.display_company_name,
            "expireDate": registration.expire_date.isoformat() if registration.expire_date else None,
        }
        try:
            self.sender.send(NotificationKind.EXPIRY_WARNING, recipient, template_data)
        except NotificationFailed as exc:
            logger.error("Expiry notification failed for %s: %s", registration.id, exc)
            self._release(claim, now)
            return ExpiryOutcome(ExpiryStatus.FAILED, str(exc))
        except Exception as exc:
            logger.exception("Expiry notification for %s raised unexpectedly", registration.id)
            self._release(claim, now)
            return ExpiryOutcome(ExpiryStatus.FAILED, f"notification error: {exc}")

        registration.expiry_notification_sent_at = now
        registration.is_expired = True
        logger.info("Expiry notification sent for registration %s", registration.id)
        return ExpiryOutcome(ExpiryStatus.SENT)

    def _claim(self, current: Registration, today: date, now: datetime) -> StateChange:
        if not self.is_expired(current, today) or self.sent_today(current, today):
            return StateChange(before=current, after=current, changed=frozenset())
        after = replace(current, expiry_notification_sent_at=now, is_expired=True)
        return StateChange(
            before=current,
            after=after,
            changed=frozenset({"expiry_notification_sent_at", "is_expired"}),
        )

    def _release(self, claim: StateChange, now: datetime) -> None:
        """Undo a claim whose send failed, unless the row moved on since."""

        def restore(current: Registration) -> StateChange:
            if current.expiry_notification_sent_at != now:
                return StateChange(before=current, after=current, changed=frozenset())
            after = replace(
                current,
                expiry_notification_sent_at=claim.before.expiry_notification_sent_at,
                is_expired=claim.before.is_expired,
            )
            return StateChange(
                before=current,
                after=after,
                changed=frozenset({"expiry_notification_sent_at", "is_expired"}),
            )

        try:
            self.repository.modify(claim.after.id, restore)
        except CollaboratorUnavailable as exc:
            logger.error(
                "Could not release expiry claim for %s; no retry until tomorrow: %s",
                claim.after.id,
                exc,
            )

    def sweep(self) -> SweepReport:
        """
        Check every registration that can be expired.

        Intended to run daily. Per-registration failures are counted,
        never raised.
        """
        candidates = self.repository.list_expiry_candidates()
        counts = {status: 0 for status in ExpiryStatus}
        for registration in candidates:
            counts[self.check_and_notify(registration).status] += 1

        report = SweepReport(
            total_checked=len(candidates),
            sent=counts[ExpiryStatus.SENT],
            already_sent=counts[ExpiryStatus.ALREADY_SENT_TODAY],
            not_due=counts[ExpiryStatus.NOT_DUE],
            failed=counts[ExpiryStatus.FAILED],
        )
        logger.info(
            "Expiry sweep checked %d registrations: %d sent, %d failed",
            report.total_checked,
            report.sent,
            report.failed,
        )
        return report
