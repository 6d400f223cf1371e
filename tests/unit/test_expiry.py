"""
Unit tests for the expiry notifier.

Tests verify:
- At most one expiry email per registration per calendar day
- Date comparison semantics (expire_date < today)
- Failures are reported in the outcome and never persisted as sent
- Sweep counters
"""

from datetime import date, datetime, timezone
from unittest.mock import Mock
from zoneinfo import ZoneInfo

from src.domain.exceptions import CollaboratorUnavailable
from src.domain.expiry import ExpiryNotifier
from src.domain.models import Registration
from src.domain.ports import ExpiryStatus, NotificationKind


def expired_registration(registration_id: str = "reg-1", **fields) -> Registration:
    defaults = {
        "owner_user_id": "owner-1",
        "owner_email": "owner@example.com",
        "owner_name": "Owner",
        "company_name": "Acme (Pvt) Ltd",
        "expire_date": date(2024, 6, 1),
    }
    defaults.update(fields)
    return Registration(id=registration_id, **defaults)


class TestOncePerDay:
    """Tests for the once-per-day guarantee."""

    def test_repeated_checks_send_once(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """N checks on the same day send exactly one notification."""
        repository.create(expired_registration())

        outcomes = [notifier.check_and_notify(repository.get("reg-1")) for _ in range(5)]

        assert len(sender.sent) == 1
        assert outcomes[0].status is ExpiryStatus.SENT
        assert all(o.status is ExpiryStatus.ALREADY_SENT_TODAY for o in outcomes[1:])

    def test_sent_time_recorded_on_that_day(
        self, notifier: ExpiryNotifier, repository, clock
    ) -> None:
        """The recorded send time falls on the day of the check."""
        repository.create(expired_registration())

        notifier.check_and_notify(repository.get("reg-1"))

        stored = repository.get("reg-1")
        assert stored.expiry_notification_sent_at == clock.now
        assert stored.is_expired is True

    def test_same_object_checked_twice_sends_once(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """The checked object is updated in place, so reusing it is safe."""
        registration = expired_registration()
        repository.create(registration)

        notifier.check_and_notify(registration)
        notifier.check_and_notify(registration)

        assert len(sender.sent) == 1

    def test_stale_copies_send_once(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """Two callers holding copies read before either send notify once."""
        repository.create(expired_registration())
        first = repository.get("reg-1")
        second = repository.get("reg-1")

        outcomes = [notifier.check_and_notify(first), notifier.check_and_notify(second)]

        assert len(sender.sent) == 1
        assert [o.status for o in outcomes] == [ExpiryStatus.SENT, ExpiryStatus.ALREADY_SENT_TODAY]
        assert second.expiry_notification_sent_at == first.expiry_notification_sent_at

    def test_sent_yesterday_sends_again(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """A notification from a previous day does not suppress today's."""
        repository.create(
            expired_registration(
                expiry_notification_sent_at=datetime(2024, 6, 14, 9, 0, tzinfo=timezone.utc)
            )
        )

        outcome = notifier.check_and_notify(repository.get("reg-1"))

        assert outcome.status is ExpiryStatus.SENT
        assert len(sender.sent) == 1

    def test_day_boundary_follows_configured_timezone(self, repository, sender, clock) -> None:
        """'Today' is the local calendar day, not the UTC one."""
        colombo = ZoneInfo("Asia/Colombo")
        notifier = ExpiryNotifier(repository=repository, sender=sender, clock=clock, tz=colombo)
        # 20:00 UTC on the 14th is 01:30 on the 15th in Colombo, the same local day as the clock.
        repository.create(
            expired_registration(
                expiry_notification_sent_at=datetime(2024, 6, 14, 20, 0, tzinfo=timezone.utc)
            )
        )

        outcome = notifier.check_and_notify(repository.get("reg-1"))

        assert outcome.status is ExpiryStatus.ALREADY_SENT_TODAY
        assert sender.sent == []


class TestExpiryDetection:
    """Tests for deciding whether a registration is expired."""

    def test_future_date_not_due(self, notifier: ExpiryNotifier, sender) -> None:
        """A registration expiring later is not due."""
        outcome = notifier.check_and_notify(expired_registration(expire_date=date(2024, 7, 1)))
        assert outcome.status is ExpiryStatus.NOT_DUE
        assert sender.sent == []

    def test_expiring_today_not_due(self, notifier: ExpiryNotifier) -> None:
        """expire_date equal to today is not yet expired."""
        outcome = notifier.check_and_notify(expired_registration(expire_date=date(2024, 6, 15)))
        assert outcome.status is ExpiryStatus.NOT_DUE

    def test_no_expiry_date_not_due(self, notifier: ExpiryNotifier) -> None:
        """Without a date or flag a registration never expires."""
        outcome = notifier.check_and_notify(expired_registration(expire_date=None))
        assert outcome.status is ExpiryStatus.NOT_DUE

    def test_expired_flag_alone_is_due(self, notifier: ExpiryNotifier, repository) -> None:
        """The expired flag makes a registration due even without a date."""
        repository.create(expired_registration(expire_date=None, is_expired=True))
        outcome = notifier.check_and_notify(repository.get("reg-1"))
        assert outcome.status is ExpiryStatus.SENT


class TestNotificationContent:
    """Tests for recipient and template data."""

    def test_sends_expiry_warning_to_owner(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """The owner's account email receives the expiry warning."""
        repository.create(expired_registration())

        notifier.check_and_notify(repository.get("reg-1"))

        kind, recipient, data = sender.sent[0]
        assert kind is NotificationKind.EXPIRY_WARNING
        assert recipient == "owner@example.com"
        assert data == {"name": "Owner", "companyName": "Acme (Pvt) Ltd", "expireDate": "2024-06-01"}

    def test_falls_back_to_contact_person(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """Without an owner email the contact person is notified."""
        repository.create(
            expired_registration(
                owner_email=None, owner_name=None,
                contact_person_email="contact@example.com", contact_person_name="Contact",
            )
        )

        notifier.check_and_notify(repository.get("reg-1"))

        assert sender.sent[0][1] == "contact@example.com"


class TestFailures:
    """Tests for failure reporting."""

    def test_no_recipient_fails(self, notifier: ExpiryNotifier, sender) -> None:
        """A registration without any address cannot be notified."""
        outcome = notifier.check_and_notify(expired_registration(owner_email=None))
        assert outcome.status is ExpiryStatus.FAILED
        assert outcome.reason == "no notifiable address"
        assert sender.sent == []

    def test_send_failure_not_recorded(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """A failed send leaves the registration eligible for a retry."""
        repository.create(expired_registration())
        sender.fail = True

        outcome = notifier.check_and_notify(repository.get("reg-1"))

        assert outcome.status is ExpiryStatus.FAILED
        assert repository.update_calls == []
        assert repository.get("reg-1").expiry_notification_sent_at is None

        sender.fail = False
        retry = notifier.check_and_notify(repository.get("reg-1"))
        assert retry.status is ExpiryStatus.SENT

    def test_store_unavailable_sends_nothing(self, sender, clock) -> None:
        """Without a recorded claim nothing is sent."""
        repo = Mock()
        repo.modify.side_effect = CollaboratorUnavailable("store down")
        notifier = ExpiryNotifier(repository=repo, sender=sender, clock=clock)

        outcome = notifier.check_and_notify(expired_registration())

        assert outcome.status is ExpiryStatus.FAILED
        assert outcome.reason == "registration store unavailable"
        assert sender.sent == []

    def test_unknown_registration_fails(self, notifier: ExpiryNotifier, sender) -> None:
        """A registration missing from the store is not notified."""
        outcome = notifier.check_and_notify(expired_registration("gone"))

        assert outcome.status is ExpiryStatus.FAILED
        assert outcome.reason == "registration not found"
        assert sender.sent == []

    def test_unexpected_sender_error_reported(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """Any transport error becomes a failed outcome and releases the claim."""
        repository.create(expired_registration())
        sender.send = Mock(side_effect=OSError("connection reset"))

        outcome = notifier.check_and_notify(repository.get("reg-1"))

        assert outcome.status is ExpiryStatus.FAILED
        assert repository.get("reg-1").expiry_notification_sent_at is None

    def test_sweep_continues_after_unexpected_error(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """One broken send does not stop the sweep."""
        repository.create(expired_registration("a"))
        repository.create(expired_registration("b"))
        sender.send = Mock(side_effect=[OSError("connection reset"), None])

        report = notifier.sweep()

        assert report.total_checked == 2
        assert report.failed == 1
        assert report.sent == 1


class TestSweep:
    """Tests for the batch sweep."""

    def test_sweep_counts_outcomes(self, notifier: ExpiryNotifier, repository, clock) -> None:
        """Each candidate is checked once and counted by outcome."""
        repository.create(expired_registration("due"))
        repository.create(expired_registration("done", expiry_notification_sent_at=clock.now))
        repository.create(expired_registration("later", expire_date=date(2024, 12, 1)))
        repository.create(expired_registration("nobody", owner_email=None))
        repository.create(expired_registration("undated", expire_date=None))

        report = notifier.sweep()

        assert report.total_checked == 4
        assert report.sent == 1
        assert report.already_sent == 1
        assert report.not_due == 1
        assert report.failed == 1

    def test_second_sweep_sends_nothing(self, notifier: ExpiryNotifier, repository, sender) -> None:
        """Running the sweep twice on one day sends each email once."""
        repository.create(expired_registration("a"))
        repository.create(expired_registration("b"))

        notifier.sweep()
        report = notifier.sweep()

        assert len(sender.sent) == 2
        assert report.sent == 0
        assert report.already_sent == 2
