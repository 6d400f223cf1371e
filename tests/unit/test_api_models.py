"""
Unit tests for API request/response models.

Tests Pydantic model validation and conversion between the camelCase wire
format and the domain.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from src.api.models import (
    RegistrationCreate,
    RegistrationPatch,
    RegistrationResponse,
    ShareRequest,
)
from src.domain.models import LegacyShareList, Registration
from src.domain.ports import ReviewState, Step


class TestRegistrationPatch:
    """Tests for RegistrationPatch model."""

    def test_accepts_camel_case(self) -> None:
        """Wire keys are camelCase."""
        patch = RegistrationPatch.model_validate({"contactPersonName": "Jane", "paymentApproved": True})
        assert patch.to_patch() == {"contact_person_name": "Jane", "payment_approved": True}

    def test_unset_fields_omitted(self) -> None:
        """An empty body is an empty patch."""
        assert RegistrationPatch.model_validate({}).to_patch() == {}

    def test_explicit_null_kept(self) -> None:
        """An explicit null is part of the patch."""
        patch = RegistrationPatch.model_validate({"status": None})
        assert patch.to_patch() == {"status": None}

    def test_unknown_keys_ignored(self) -> None:
        patch = RegistrationPatch.model_validate({"somethingElse": 1})
        assert patch.to_patch() == {}

    def test_document_slots_grouped(self) -> None:
        """Slot fields are grouped under documents with their stored names."""
        patch = RegistrationPatch.model_validate(
            {
                "step3SignedAdditionalDoc": {"filePath": "a"},
                "balancePaymentReceipt": {"filePath": "b"},
                "customerDocuments": {"form1": {"filePath": "c"}},
            }
        )
        assert patch.to_patch() == {
            "documents": {
                "step3SignedAdditionalDoc": {"filePath": "a"},
                "balancePaymentReceipt": {"filePath": "b"},
            },
            "customer_documents": {"form1": {"filePath": "c"}},
        }

    def test_negative_expire_days_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RegistrationPatch.model_validate({"expireDays": -1})


class TestRegistrationCreate:
    """Tests for RegistrationCreate model."""

    def test_id_required(self) -> None:
        with pytest.raises(ValidationError):
            RegistrationCreate.model_validate({"companyName": "Acme"})

    def test_id_and_owner_not_in_patch(self) -> None:
        """Identity fields are passed separately from the initial data."""
        create = RegistrationCreate.model_validate({"id": "reg-1", "userId": "u1", "companyName": "Acme"})
        assert create.id == "reg-1"
        assert create.user_id == "u1"
        assert create.to_patch() == {"company_name": "Acme"}


class TestShareRequest:
    """Tests for ShareRequest model."""

    def test_invalid_email_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ShareRequest.model_validate({"email": "not-an-email"})

    def test_requested_by_optional(self) -> None:
        request = ShareRequest.model_validate({"email": "friend@example.com"})
        assert request.requested_by is None


class TestRegistrationResponse:
    """Tests for building responses from the domain."""

    def test_from_domain(self) -> None:
        registration = Registration(
            id="reg-1",
            owner_user_id="u1",
            owner_name="Owner",
            current_step=Step.PAYMENT,
            company_details_review=ReviewState.REJECTED,
            documents={"aoa": {"filePath": "a"}, "customerDocuments": {"form1": {"filePath": "c"}}},
            expire_date=date(2024, 7, 1),
            shared_with=LegacyShareList(("old@example.com",)),
        )

        data = RegistrationResponse.from_domain(registration).model_dump(by_alias=True, mode="json")

        assert data["id"] == "reg-1"
        assert data["userName"] == "Owner"
        assert data["currentStep"] == "payment"
        assert data["companyDetailsRejected"] is True
        assert data["companyDetailsApproved"] is False
        assert data["aoa"] == {"filePath": "a"}
        assert data["form1"] is None
        assert data["customerDocuments"] == {"form1": {"filePath": "c"}}
        assert data["expireDate"] == "2024-07-01"
        assert data["sharedWithEmails"] == ["old@example.com"]
        assert data["additionalFees"] is None
