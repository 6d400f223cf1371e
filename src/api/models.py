"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
The wire format is camelCase; unknown keys are ignored.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from src.domain.expiry import ExpiryOutcome, SweepReport
from src.domain.models import Registration


class CamelModel(BaseModel):
    """Base model exchanging camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class DocumentFields(CamelModel):
    """Document slots, each an opaque blob or list of blobs. null removes a slot."""

    payment_receipt: Any = None
    balance_payment_receipt: Any = None
    form1: Any = None
    form19: Any = None
    aoa: Any = None
    form18: Any = None
    address_proof: Any = None
    incorporation_certificate: Any = None
    step3_additional_doc: Any = None
    step3_signed_additional_doc: Any = None
    step4_final_additional_doc: Any = None
    resolutions_docs: Any = None
    admin_resolution_doc: Any = None
    signed_admin_resolution: Any = None
    signed_customer_resolution: Any = None
    customer_documents: dict[str, Any] | None = None


DOCUMENT_FIELD_NAMES = frozenset(DocumentFields.model_fields) - {"customer_documents"}


class RegistrationPatch(DocumentFields):
    """Partial update. Only keys present in the request body are applied."""

    company_name: str | None = None
    company_name_english: str | None = None
    company_name_sinhala: str | None = None
    contact_person_name: str | None = None
    contact_person_email: str | None = None
    contact_person_phone: str | None = None
    selected_package: str | None = None
    payment_method: str | None = None
    company_entity: str | None = None
    is_foreign_owned: str | None = None
    business_email: str | None = None
    business_contact_number: str | None = None
    company_activities: str | None = None

    current_step: str | None = None
    status: str | None = None
    payment_approved: bool | None = None
    details_approved: bool | None = None
    documents_approved: bool | None = None
    documents_published: bool | None = None
    documents_acknowledged: bool | None = None
    balance_payment_approved: bool | None = None
    company_details_locked: bool | None = None
    company_details_approved: bool | None = None
    company_details_rejected: bool | None = None

    shareholders: list[dict[str, Any]] | None = None
    directors: list[dict[str, Any]] | None = None
    additional_fees: dict[str, Any] | None = None

    register_start_date: str | None = None
    expire_days: int | None = Field(default=None, ge=0)
    expire_date: str | None = None
    is_expired: bool | None = None

    shared_with_emails: list[Any] | None = None
    noted: bool | None = None

    def to_patch(self, exclude: frozenset[str] = frozenset()) -> dict[str, Any]:
        """
        Convert to the sparse snake_case patch the state machine applies.

        Document slot fields are grouped under "documents" keyed by their
        stored (camelCase) slot names.
        """
        data = self.model_dump(exclude_unset=True, exclude=set(exclude))
        documents = {
            to_camel(name): data.pop(name)
            for name in DOCUMENT_FIELD_NAMES
            if name in data
        }
        if documents:
            data["documents"] = documents
        return data


class RegistrationCreate(RegistrationPatch):
    """Request model for creating a registration."""

    id: str = Field(..., min_length=1, description="Externally supplied registration id")
    user_id: str | None = None

    def to_patch(self, exclude: frozenset[str] = frozenset()) -> dict[str, Any]:
        return super().to_patch(exclude | {"id", "user_id"})


class RegistrationResponse(DocumentFields):
    """A registration as exposed over the API."""

    id: str
    user_id: str | None = None
    user_name: str | None = None
    user_email: str | None = None

    company_name: str | None = None
    company_name_english: str | None = None
    company_name_sinhala: str | None = None
    contact_person_name: str | None = None
    contact_person_email: str | None = None
    contact_person_phone: str | None = None
    selected_package: str | None = None
    payment_method: str | None = None
    company_entity: str | None = None
    is_foreign_owned: str | None = None
    business_email: str | None = None
    business_contact_number: str | None = None
    company_activities: str | None = None

    current_step: str
    status: str | None = None
    payment_approved: bool = False
    details_approved: bool = False
    documents_approved: bool = False
    documents_published: bool = False
    documents_acknowledged: bool = False
    balance_payment_approved: bool = False
    company_details_locked: bool = False
    company_details_approved: bool = False
    company_details_rejected: bool = False

    shareholders: list[dict[str, Any]] = Field(default_factory=list)
    directors: list[dict[str, Any]] = Field(default_factory=list)
    additional_fees: dict[str, Any] | None = None

    register_start_date: date | None = None
    expire_days: int | None = None
    expire_date: date | None = None
    is_expired: bool = False
    expiry_notification_sent_at: datetime | None = None

    shared_with_emails: list[Any] = Field(default_factory=list)

    pinned: bool = False
    noted: bool = False
    secretary_records_noted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, registration: Registration) -> "RegistrationResponse":
        documents = {
            name: registration.documents.get(to_camel(name))
            for name in DOCUMENT_FIELD_NAMES
        }
        return cls(
            id=registration.id,
            user_id=registration.owner_user_id,
            user_name=registration.owner_name,
            user_email=registration.owner_email,
            company_name=registration.company_name,
            company_name_english=registration.company_name_english,
            company_name_sinhala=registration.company_name_sinhala,
            contact_person_name=registration.contact_person_name,
            contact_person_email=registration.contact_person_email,
            contact_person_phone=registration.contact_person_phone,
            selected_package=registration.selected_package,
            payment_method=registration.payment_method,
            company_entity=registration.company_entity,
            is_foreign_owned=registration.is_foreign_owned,
            business_email=registration.business_email,
            business_contact_number=registration.business_contact_number,
            company_activities=registration.company_activities,
            current_step=registration.current_step.value,
            status=registration.status,
            payment_approved=registration.payment_approved,
            details_approved=registration.details_approved,
            documents_approved=registration.documents_approved,
            documents_published=registration.documents_published,
            documents_acknowledged=registration.documents_acknowledged,
            balance_payment_approved=registration.balance_payment_approved,
            company_details_locked=registration.company_details_locked,
            company_details_approved=registration.company_details_approved,
            company_details_rejected=registration.company_details_rejected,
            shareholders=[member.to_dict() for member in registration.shareholders],
            directors=[member.to_dict() for member in registration.directors],
            additional_fees=(
                registration.additional_fees.to_dict() if registration.additional_fees else None
            ),
            register_start_date=registration.register_start_date,
            expire_days=registration.expire_days,
            expire_date=registration.expire_date,
            is_expired=registration.is_expired,
            expiry_notification_sent_at=registration.expiry_notification_sent_at,
            shared_with_emails=registration.shared_with.to_json(),
            pinned=registration.pinned,
            noted=registration.noted,
            secretary_records_noted_at=registration.secretary_records_noted_at,
            created_at=registration.created_at,
            updated_at=registration.updated_at,
            customer_documents=registration.documents.get("customerDocuments"),
            **documents,
        )


class ReopenRequest(CamelModel):
    """Request model for an admin reopen."""

    step: str = Field(..., description="Earlier step to move the registration back to")


class ShareRequest(CamelModel):
    """Request model for requesting shared access."""

    email: EmailStr
    requested_by: str | None = None


class ShareDecisionRequest(CamelModel):
    """Request model for approving or rejecting a share request."""

    approve: bool
    responded_by: str | None = None


class PinRequest(CamelModel):
    pinned: bool


class NotedRequest(CamelModel):
    noted: bool


class ExpiryCheckResponse(CamelModel):
    """Outcome of an explicit expiry check."""

    status: str
    reason: str | None = None

    @classmethod
    def from_domain(cls, outcome: ExpiryOutcome) -> "ExpiryCheckResponse":
        return cls(status=outcome.status.value, reason=outcome.reason)


class SweepResponse(CamelModel):
    """Counters of a batch expiry sweep."""

    total_checked: int
    sent: int
    already_sent: int
    not_due: int
    failed: int

    @classmethod
    def from_domain(cls, report: SweepReport) -> "SweepResponse":
        return cls(
            total_checked=report.total_checked,
            sent=report.sent,
            already_sent=report.already_sent,
            not_due=report.not_due,
            failed=report.failed,
        )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
