"""
Shared fixtures for unit tests.

Provides in-memory implementations of the domain ports so the state
machine, expiry notifier and registration service run without PostgreSQL.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from src.domain.exceptions import FileDeletionFailed, NotificationFailed
from src.domain.expiry import ExpiryNotifier
from src.domain.models import (
    ApprovalShareList,
    FeeRateConfig,
    LegacyShareList,
    Registration,
    StateChange,
)
from src.domain.ports import NotificationKind
from src.domain.registration import RegistrationService
from src.domain.state_machine import RegistrationStateMachine


class InMemoryRegistrationRepository:
    """RegistrationRepository kept in a dict; stores copies like a database would."""

    def __init__(self) -> None:
        self.rows: dict[str, Registration] = {}
        self.update_calls: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def get(self, registration_id: str) -> Registration | None:
        with self._lock:
            stored = self.rows.get(registration_id)
            return copy.deepcopy(stored) if stored is not None else None

    def list(
        self, owner_user_id: str | None = None, shared_email: str | None = None
    ) -> list[Registration]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self.rows.values()]
        if owner_user_id is None and shared_email is None:
            return rows
        return [
            r
            for r in rows
            if (owner_user_id and r.owner_user_id == owner_user_id)
            or (shared_email and shared_email in _shared_emails(r))
        ]

    def list_expiry_candidates(self) -> list[Registration]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self.rows.values()
                if r.is_expired or r.expire_date is not None
            ]

    def create(self, registration: Registration) -> bool:
        with self._lock:
            if registration.id in self.rows:
                return False
            self.rows[registration.id] = copy.deepcopy(registration)
            return True

    def update(self, registration_id: str, fields: dict[str, Any]) -> int:
        with self._lock:
            self.update_calls.append((registration_id, dict(fields)))
            stored = self.rows.get(registration_id)
            if stored is None:
                return 0
            for name, value in fields.items():
                setattr(stored, name, value)
            return 1

    def modify(
        self, registration_id: str, mutate: Callable[[Registration], StateChange]
    ) -> StateChange | None:
        with self._lock:
            stored = self.rows.get(registration_id)
            if stored is None:
                return None
            change = mutate(copy.deepcopy(stored))
            self.rows[registration_id] = copy.deepcopy(change.after)
            return change

    def delete(self, registration_id: str) -> int:
        with self._lock:
            return 1 if self.rows.pop(registration_id, None) is not None else 0


def _shared_emails(registration: Registration) -> set[str]:
    shared = registration.shared_with
    if isinstance(shared, LegacyShareList):
        return {email.lower() for email in shared.emails}
    if isinstance(shared, ApprovalShareList):
        return {entry.email for entry in shared.entries}
    return set()


class StaticFeeRateProvider:
    """FeeRateProvider returning fixed rates and counting reads."""

    def __init__(self, rates: FeeRateConfig) -> None:
        self.rates = rates
        self.calls = 0

    def get_fee_rates(self) -> FeeRateConfig:
        self.calls += 1
        return self.rates


class RecordingNotificationSender:
    """NotificationSender that records messages; can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, str, dict[str, Any]]] = []
        self.fail = False

    def send(self, kind: NotificationKind, recipient: str, template_data: dict[str, Any]) -> None:
        if self.fail:
            raise NotificationFailed("transport down")
        self.sent.append((kind, recipient, template_data))

    def kinds(self) -> list[NotificationKind]:
        return [kind for kind, _, _ in self.sent]


class RecordingFileStorage:
    """FileStorage that records deletions; paths in ``failing`` raise."""

    def __init__(self) -> None:
        self.deleted: list[str] = []
        self.failing: set[str] = set()

    def delete(self, path_ref: str) -> None:
        if path_ref in self.failing:
            raise FileDeletionFailed(f"cannot delete {path_ref}")
        self.deleted.append(path_ref)


class FixedClock:
    """Settable clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# Rates from the worked example: 500 per local natural shareholder,
# 2000 per foreign entity shareholder, 1000 per local director.
EXAMPLE_RATES = FeeRateConfig(
    director_local=Decimal(1000),
    director_foreign=Decimal(3000),
    shareholder_local_natural=Decimal(500),
    shareholder_local_entity=Decimal(750),
    shareholder_foreign_natural=Decimal(1500),
    shareholder_foreign_entity=Decimal(2000),
)


@pytest.fixture
def repository() -> InMemoryRegistrationRepository:
    return InMemoryRegistrationRepository()


@pytest.fixture
def fee_rates() -> StaticFeeRateProvider:
    return StaticFeeRateProvider(EXAMPLE_RATES)


@pytest.fixture
def sender() -> RecordingNotificationSender:
    return RecordingNotificationSender()


@pytest.fixture
def storage() -> RecordingFileStorage:
    return RecordingFileStorage()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def state_machine(
    repository: InMemoryRegistrationRepository,
    fee_rates: StaticFeeRateProvider,
    clock: FixedClock,
) -> RegistrationStateMachine:
    return RegistrationStateMachine(repository=repository, fee_rates=fee_rates, clock=clock)


@pytest.fixture
def notifier(
    repository: InMemoryRegistrationRepository,
    sender: RecordingNotificationSender,
    clock: FixedClock,
) -> ExpiryNotifier:
    return ExpiryNotifier(repository=repository, sender=sender, clock=clock)


@pytest.fixture
def service(
    repository: InMemoryRegistrationRepository,
    state_machine: RegistrationStateMachine,
    notifier: ExpiryNotifier,
    storage: RecordingFileStorage,
    sender: RecordingNotificationSender,
) -> RegistrationService:
    return RegistrationService(
        repository=repository,
        state_machine=state_machine,
        notifier=notifier,
        file_storage=storage,
        notification_sender=sender,
        expiry_check_batch_size=10,
    )
