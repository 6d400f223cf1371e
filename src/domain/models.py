"""
Domain model - Registration aggregate and its value objects.

Everything here is plain dataclasses so the domain stays free of
framework imports. JSON-shaped values (roster members, shared-access
entries, fee breakdowns) know how to convert to and from the camelCase
dictionaries stored in the database and exchanged over the API.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from .ports import LegalType, Residency, ReviewState, ShareStatus, Step

# Document slots stored as opaque blobs (or lists of blobs) on a registration.
DOCUMENT_SLOTS: tuple[str, ...] = (
    "paymentReceipt",
    "balancePaymentReceipt",
    "form1",
    "form19",
    "aoa",
    "form18",
    "addressProof",
    "incorporationCertificate",
    "step3AdditionalDoc",
    "step3SignedAdditionalDoc",
    "step4FinalAdditionalDoc",
    "resolutionsDocs",
    "adminResolutionDoc",
    "signedAdminResolution",
    "signedCustomerResolution",
)

CUSTOMER_DOCUMENT_SLOTS: tuple[str, ...] = ("form1", "form19", "aoa", "form18", "addressProof")


def _residency(value: Any) -> Residency:
    # Anything other than "foreign" is local ("sri-lankan", "local", missing).
    if isinstance(value, str) and value.strip().lower() == Residency.FOREIGN.value:
        return Residency.FOREIGN
    return Residency.LOCAL


def _legal_type(value: Any) -> LegalType:
    if value is None or value == "" or value == LegalType.NATURAL_PERSON.value:
        return LegalType.NATURAL_PERSON
    return LegalType.LEGAL_ENTITY


@dataclass(frozen=True)
class Shareholder:
    """A shareholder roster entry. ``details`` keeps the full stored object."""

    residency: Residency = Residency.LOCAL
    kind: LegalType = LegalType.NATURAL_PERSON
    is_director: bool = False
    details: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Shareholder:
        return cls(
            residency=_residency(data.get("residency")),
            kind=_legal_type(data.get("type")),
            is_director=bool(data.get("isDirector", False)),
            details=dict(data),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.details:
            return dict(self.details)
        return {
            "residency": self.residency.value,
            "type": self.kind.value,
            "isDirector": self.is_director,
        }


@dataclass(frozen=True)
class Director:
    """A director roster entry. ``details`` keeps the full stored object."""

    residency: Residency = Residency.LOCAL
    from_shareholder: bool = False
    details: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Director:
        return cls(
            residency=_residency(data.get("residency")),
            from_shareholder=bool(data.get("fromShareholder", False)),
            details=dict(data),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.details:
            return dict(self.details)
        return {
            "residency": self.residency.value,
            "fromShareholder": self.from_shareholder,
        }


def _rate(value: Any) -> Decimal:
    """Read a configured rate. Missing, non-numeric or negative reads as 0."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)
    if not rate.is_finite() or rate < 0:
        return Decimal(0)
    return rate


def money_to_json(value: Decimal) -> int | float:
    """Serialise a Decimal amount as a JSON number."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class FeeRateConfig:
    """Per-head additional fee rates, owned by the settings store."""

    director_local: Decimal = Decimal(0)
    director_foreign: Decimal = Decimal(0)
    shareholder_local_natural: Decimal = Decimal(0)
    shareholder_local_entity: Decimal = Decimal(0)
    shareholder_foreign_natural: Decimal = Decimal(0)
    shareholder_foreign_entity: Decimal = Decimal(0)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> FeeRateConfig:
        """Build from the settings store shape ``{directors: {...}, shareholders: {...}}``."""
        data = data or {}
        directors = data.get("directors") or {}
        shareholders = data.get("shareholders") or {}
        return cls(
            director_local=_rate(directors.get("local")),
            director_foreign=_rate(directors.get("foreign")),
            shareholder_local_natural=_rate(shareholders.get("localNaturalPerson")),
            shareholder_local_entity=_rate(shareholders.get("localLegalEntity")),
            shareholder_foreign_natural=_rate(shareholders.get("foreignNaturalPerson")),
            shareholder_foreign_entity=_rate(shareholders.get("foreignLegalEntity")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "directors": {
                "local": money_to_json(self.director_local),
                "foreign": money_to_json(self.director_foreign),
            },
            "shareholders": {
                "localNaturalPerson": money_to_json(self.shareholder_local_natural),
                "localLegalEntity": money_to_json(self.shareholder_local_entity),
                "foreignNaturalPerson": money_to_json(self.shareholder_foreign_natural),
                "foreignLegalEntity": money_to_json(self.shareholder_foreign_entity),
            },
        }


@dataclass(frozen=True)
class DirectorFees:
    local_count: int
    foreign_count: int
    local_fee: Decimal
    foreign_fee: Decimal
    total: Decimal


@dataclass(frozen=True)
class ShareholderFees:
    local_natural_count: int
    local_entity_count: int
    foreign_natural_count: int
    foreign_entity_count: int
    local_natural_fee: Decimal
    local_entity_fee: Decimal
    foreign_natural_fee: Decimal
    foreign_entity_fee: Decimal
    total: Decimal


@dataclass(frozen=True)
class FeeBreakdown:
    """Priced additional-fee breakdown. A cached snapshot, never authoritative."""

    directors: DirectorFees
    shareholders: ShareholderFees
    total: Decimal

    def to_dict(self) -> dict[str, Any]:
        d, s = self.directors, self.shareholders
        return {
            "directors": {
                "localCount": d.local_count,
                "foreignCount": d.foreign_count,
                "localFee": money_to_json(d.local_fee),
                "foreignFee": money_to_json(d.foreign_fee),
                "total": money_to_json(d.total),
            },
            "shareholders": {
                "localNaturalCount": s.local_natural_count,
                "localEntityCount": s.local_entity_count,
                "foreignNaturalCount": s.foreign_natural_count,
                "foreignEntityCount": s.foreign_entity_count,
                "localNaturalFee": money_to_json(s.local_natural_fee),
                "localEntityFee": money_to_json(s.local_entity_fee),
                "foreignNaturalFee": money_to_json(s.foreign_natural_fee),
                "foreignEntityFee": money_to_json(s.foreign_entity_fee),
                "total": money_to_json(s.total),
            },
            "total": money_to_json(self.total),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FeeBreakdown:
        d = data.get("directors") or {}
        s = data.get("shareholders") or {}
        return cls(
            directors=DirectorFees(
                local_count=int(d.get("localCount", 0)),
                foreign_count=int(d.get("foreignCount", 0)),
                local_fee=_rate(d.get("localFee")),
                foreign_fee=_rate(d.get("foreignFee")),
                total=_rate(d.get("total")),
            ),
            shareholders=ShareholderFees(
                local_natural_count=int(s.get("localNaturalCount", 0)),
                local_entity_count=int(s.get("localEntityCount", 0)),
                foreign_natural_count=int(s.get("foreignNaturalCount", 0)),
                foreign_entity_count=int(s.get("foreignEntityCount", 0)),
                local_natural_fee=_rate(s.get("localNaturalFee")),
                local_entity_fee=_rate(s.get("localEntityFee")),
                foreign_natural_fee=_rate(s.get("foreignNaturalFee")),
                foreign_entity_fee=_rate(s.get("foreignEntityFee")),
                total=_rate(s.get("total")),
            ),
            total=_rate(data.get("total")),
        )


@dataclass(frozen=True)
class SharedEntry:
    """One shared-access entry in the approval-list form."""

    email: str
    status: ShareStatus = ShareStatus.PENDING
    requested_by: str | None = None
    requested_at: str | None = None
    responded_at: str | None = None
    responded_by: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SharedEntry:
        raw_status = data.get("status") or ShareStatus.PENDING.value
        try:
            status = ShareStatus(raw_status)
        except ValueError:
            # Unknown statuses never grant access.
            status = ShareStatus.REJECTED
        return cls(
            email=str(data.get("email") or data.get("address") or "").strip().lower(),
            status=status,
            requested_by=data.get("requestedBy"),
            requested_at=data.get("requestedAt"),
            responded_at=data.get("respondedAt"),
            responded_by=data.get("respondedBy"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "status": self.status.value,
            "requestedBy": self.requested_by,
            "requestedAt": self.requested_at,
            "respondedAt": self.responded_at,
            "respondedBy": self.responded_by,
        }


@dataclass(frozen=True)
class LegacyShareList:
    """Shared list stored as plain email strings; every entry is approved."""

    emails: tuple[str, ...] = ()

    def to_json(self) -> list[Any]:
        return list(self.emails)


@dataclass(frozen=True)
class ApprovalShareList:
    """Shared list stored as ``{email, status, ...}`` entries."""

    entries: tuple[SharedEntry, ...] = ()

    def to_json(self) -> list[Any]:
        return [entry.to_dict() for entry in self.entries]


SharedAccess = Union[LegacyShareList, ApprovalShareList]


def parse_shared_access(raw: Any) -> SharedAccess:
    """
    Resolve the stored shared-list shape into its tagged variant.

    A list of only strings is the legacy form. Anything else is an approval
    list; bare strings mixed into it are upgraded to approved entries.
    """
    if not isinstance(raw, list) or not raw:
        return ApprovalShareList()
    if all(isinstance(item, str) for item in raw):
        return LegacyShareList(tuple(item for item in raw if item))
    entries = []
    for item in raw:
        if isinstance(item, str) and item:
            entries.append(SharedEntry(email=item.strip().lower(), status=ShareStatus.APPROVED))
        elif isinstance(item, Mapping):
            entries.append(SharedEntry.from_dict(item))
    return ApprovalShareList(tuple(entries))


def upgrade_shared_access(shared: SharedAccess) -> ApprovalShareList:
    """Convert a legacy list into an approval list of approved entries."""
    if isinstance(shared, ApprovalShareList):
        return shared
    return ApprovalShareList(
        tuple(
            SharedEntry(email=email.strip().lower(), status=ShareStatus.APPROVED, responded_by="system")
            for email in shared.emails
        )
    )


@dataclass
class Registration:
    """
    The company-incorporation case aggregate.

    Company-details review is held as a single ReviewState; the three
    legacy booleans are derived properties.
    """

    id: str
    owner_user_id: str | None = None
    owner_name: str | None = None
    owner_email: str | None = None

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

    current_step: Step = Step.CONTACT_DETAILS
    status: str | None = None
    payment_approved: bool = False
    details_approved: bool = False
    documents_approved: bool = False
    documents_published: bool = False
    documents_acknowledged: bool = False
    balance_payment_approved: bool = False
    company_details_review: ReviewState = ReviewState.NONE

    shareholders: list[Shareholder] = field(default_factory=list)
    directors: list[Director] = field(default_factory=list)
    additional_fees: FeeBreakdown | None = None

    documents: dict[str, Any] = field(default_factory=dict)

    register_start_date: date | None = None
    expire_days: int | None = None
    expire_date: date | None = None
    is_expired: bool = False
    expiry_notification_sent_at: datetime | None = None

    shared_with: SharedAccess = field(default_factory=ApprovalShareList)

    pinned: bool = False
    noted: bool = False
    secretary_records_noted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def company_details_locked(self) -> bool:
        return self.company_details_review is ReviewState.LOCKED

    @property
    def company_details_approved(self) -> bool:
        return self.company_details_review is ReviewState.APPROVED

    @property
    def company_details_rejected(self) -> bool:
        return self.company_details_review is ReviewState.REJECTED

    @property
    def display_company_name(self) -> str | None:
        return self.company_name_english or self.company_name

    def notification_recipient(self) -> tuple[str | None, str | None]:
        """Owner's account email and name, falling back to the contact person."""
        email = self.owner_email or self.contact_person_email
        name = self.owner_name or self.contact_person_name
        return email, name


def review_from_flags(locked: bool, approved: bool, rejected: bool) -> ReviewState:
    """Collapse the persisted booleans into a ReviewState (decisions win over lock)."""
    if approved:
        return ReviewState.APPROVED
    if rejected:
        return ReviewState.REJECTED
    if locked:
        return ReviewState.LOCKED
    return ReviewState.NONE


@dataclass(frozen=True)
class Requester:
    """Who is asking to read. Both fields are optional."""

    user_id: str | None = None
    email: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id and not self.email


@dataclass(frozen=True)
class StateChange:
    """Result of a state machine transition: before/after and touched fields."""

    before: Registration
    after: Registration
    changed: frozenset[str]

    def flipped_on(self, name: str) -> bool:
        return not getattr(self.before, name) and bool(getattr(self.after, name))
