"""
Unit tests for domain ports and exceptions.

Tests verify:
- Workflow enumerations and their wire values
- Port interfaces are properly defined
- Exceptions are properly structured
- Domain purity (zero framework imports)
"""

import re
from enum import Enum
from pathlib import Path

import pytest

from src.domain.exceptions import (
    AccessDenied,
    CollaboratorUnavailable,
    FileDeletionFailed,
    NotificationFailed,
    RegistrationError,
    RegistrationNotFound,
    TransitionConflict,
    ValidationFailure,
)
from src.domain.ports import (
    STEP_ORDER,
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

DOMAIN_DIR = Path(__file__).resolve().parents[2] / "src" / "domain"


class TestStepEnum:
    """Tests for the workflow step enumeration."""

    def test_step_is_enum(self) -> None:
        assert issubclass(Step, Enum)

    def test_step_order(self) -> None:
        """Steps are ordered from contact details to incorporation."""
        assert [s.value for s in STEP_ORDER] == [
            "contact-details",
            "company-details",
            "documentation",
            "payment",
            "incorporation",
        ]

    def test_index_follows_order(self) -> None:
        assert Step.CONTACT_DETAILS.index == 0
        assert Step.INCORPORATION.index == 4

    def test_parse_accepts_legacy_alias(self) -> None:
        """'incorporate' is the legacy wire value of the last step."""
        assert Step.parse("incorporate") is Step.INCORPORATION
        assert Step.parse("payment") is Step.PAYMENT

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            Step.parse("shipping")


class TestWorkflowEnums:
    """Tests for the remaining enumerations."""

    def test_review_states(self) -> None:
        assert {s.value for s in ReviewState} == {"none", "locked", "approved", "rejected"}

    def test_share_statuses(self) -> None:
        assert {s.value for s in ShareStatus} == {"pending", "approved", "rejected"}

    def test_notification_kinds(self) -> None:
        assert {k.value for k in NotificationKind} == {
            "expiry-warning",
            "payment-approved",
            "registration-completed",
        }

    def test_expiry_statuses(self) -> None:
        assert {s.name for s in ExpiryStatus} == {"NOT_DUE", "ALREADY_SENT_TODAY", "SENT", "FAILED"}


class TestPorts:
    """Tests for port protocol definitions."""

    @pytest.mark.parametrize(
        "method",
        ["get", "list", "list_expiry_candidates", "create", "update", "modify", "delete"],
    )
    def test_repository_methods(self, method: str) -> None:
        assert hasattr(RegistrationRepository, method)

    def test_fee_rate_provider(self) -> None:
        assert hasattr(FeeRateProvider, "get_fee_rates")

    def test_notification_sender(self) -> None:
        assert hasattr(NotificationSender, "send")

    def test_file_storage(self) -> None:
        assert hasattr(FileStorage, "delete")


class TestDomainExceptions:
    """Tests for domain exceptions."""

    @pytest.mark.parametrize(
        "exception",
        [
            RegistrationNotFound,
            TransitionConflict,
            AccessDenied,
            ValidationFailure,
            CollaboratorUnavailable,
            NotificationFailed,
            FileDeletionFailed,
        ],
    )
    def test_inherits_registration_error(self, exception: type) -> None:
        assert issubclass(exception, RegistrationError)

    def test_not_found_carries_id(self) -> None:
        exc = RegistrationNotFound("reg-1")
        assert exc.registration_id == "reg-1"
        assert "reg-1" in str(exc)

    def test_validation_failure_carries_field(self) -> None:
        exc = ValidationFailure("expire_days", "expected a non-negative integer")
        assert exc.field_name == "expire_days"
        assert "expire_days" in str(exc)


class TestDomainPurity:
    """Tests for domain purity - zero framework imports."""

    @pytest.mark.parametrize("package", ["fastapi", "pydantic", "pydantic_settings", "psycopg", "psycopg_pool"])
    def test_no_framework_imports_in_domain(self, package: str) -> None:
        pattern = re.compile(rf"^\s*(from|import)\s+{package}\b", re.MULTILINE)
        offenders = [
            path.name for path in DOMAIN_DIR.glob("*.py") if pattern.search(path.read_text())
        ]
        assert offenders == [], f"{package} imported in domain: {offenders}"
