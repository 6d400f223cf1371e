"""
Registration state machine - applies partial updates to a registration.

Workflow steps (forward-only, one at a time):

    contact-details -> company-details -> documentation -> payment -> incorporation

A patch may keep the current step or advance it by exactly one. Moving
backwards is only possible through reopen(), an explicit admin action.

Company-details review (single ReviewState, never two decisions at once):

    none/rejected --submit (locked=True)--> locked
    any           --approve (approved=True)--> approved   (clears lock)
    any           --reject (rejected=True)--> rejected    (clears lock)

Patches are merged, never replaced: only keys present in the patch are
touched. Unknown keys are ignored. A malformed value for a known key is
dropped with a warning rather than failing the whole patch.

Every mutation runs inside RegistrationRepository.modify(), so the read,
the fee recomputation and the write happen in one transaction.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any

from .exceptions import RegistrationNotFound, TransitionConflict, ValidationFailure
from .fees import compute_additional_fees
from .models import (
    CUSTOMER_DOCUMENT_SLOTS,
    DOCUMENT_SLOTS,
    ApprovalShareList,
    Director,
    FeeRateConfig,
    Registration,
    SharedEntry,
    Shareholder,
    StateChange,
    parse_shared_access,
    upgrade_shared_access,
)
from .ports import FeeRateProvider, RegistrationRepository, ReviewState, ShareStatus, Step

logger = logging.getLogger(__name__)

_STRING_FIELDS = frozenset(
    {
        "company_name",
        "company_name_sinhala",
        "contact_person_name",
        "contact_person_email",
        "contact_person_phone",
        "selected_package",
        "payment_method",
        "company_entity",
        "is_foreign_owned",
        "business_email",
        "business_contact_number",
        "company_activities",
        "status",
    }
)

_BOOL_FIELDS = frozenset(
    {
        "payment_approved",
        "details_approved",
        "documents_approved",
        "documents_published",
        "documents_acknowledged",
        "balance_payment_approved",
        "is_expired",
        "pinned",
    }
)

_REVIEW_FIELDS = {
    "company_details_locked": ReviewState.LOCKED,
    "company_details_approved": ReviewState.APPROVED,
    "company_details_rejected": ReviewState.REJECTED,
}

_EXPIRY_DATE_FIELDS = ("register_start_date", "expire_date")

# Patch keys handled by dedicated code below.
_SPECIAL_FIELDS = frozenset(
    {
        "company_name_english",
        "current_step",
        "shareholders",
        "directors",
        "documents",
        "customer_documents",
        "register_start_date",
        "expire_days",
        "expire_date",
        "expiry_notification_sent_at",
        "shared_with_emails",
        "noted",
        "additional_fees",
    }
)

_KNOWN_FIELDS = _STRING_FIELDS | _BOOL_FIELDS | _SPECIAL_FIELDS | frozenset(_REVIEW_FIELDS)

# Fields whose change alone does not bump updated_at.
_SILENT_FIELDS = frozenset({"pinned"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_str(name: str, value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValidationFailure(name, "expected a string")


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    raise ValidationFailure(name, "expected a boolean")


def _as_date(name: str, value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationFailure(name, "expected an ISO date")


def _as_datetime(name: str, value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    raise ValidationFailure(name, "expected an ISO timestamp")


def _as_days(name: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise ValidationFailure(name, "expected a non-negative integer")


def _as_roster(name: str, value: Any, factory: Callable[[Mapping[str, Any]], Any]) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationFailure(name, "expected a list")
    members = []
    for item in value:
        if isinstance(item, (Shareholder, Director)):
            members.append(item)
        elif isinstance(item, Mapping):
            members.append(factory(item))
        else:
            raise ValidationFailure(name, "expected a list of objects")
    return members


def _as_step(value: Any) -> Step:
    if isinstance(value, Step):
        return value
    try:
        return Step.parse(value)
    except ValueError:
        raise TransitionConflict(f"Unknown step: {value!r}") from None


def _local_today(now: datetime, tz: tzinfo) -> date:
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def transition(
    current: Registration,
    patch: Mapping[str, Any],
    *,
    rates: FeeRateConfig | None = None,
    now: datetime | None = None,
    tz: tzinfo = timezone.utc,
    enforce_order: bool = True,
) -> StateChange:
    """
    Compute the registration that results from merging ``patch`` into ``current``.

    Args:
        current: Registration as currently stored (not mutated)
        patch: Sparse mapping of Registration field names to new values
        rates: Fee rates, required when the patch touches the roster
        now: Current time (defaults to UTC now)
        tz: Timezone defining "today" for expiry date comparisons
        enforce_order: False only when initializing a new registration

    Returns:
        StateChange with the before/after registrations and touched fields

    Raises:
        TransitionConflict: Step regression/skip or contradictory review flags
    """
    now = now or utcnow()
    after = replace(current)
    changed: set[str] = set()

    unknown = [key for key in patch if key not in _KNOWN_FIELDS]
    if unknown:
        logger.debug("Ignoring unknown patch fields for %s: %s", current.id, sorted(unknown))

    def assign(name: str, coerce: Callable[[str, Any], Any]) -> bool:
        try:
            value = coerce(name, patch[name])
        except ValidationFailure as exc:
            logger.warning("Dropping malformed field for %s: %s", current.id, exc)
            return False
        setattr(after, name, value)
        changed.add(name)
        return True

    for name in _STRING_FIELDS & patch.keys():
        assign(name, _as_str)
    for name in _BOOL_FIELDS & patch.keys():
        assign(name, _as_bool)

    if "company_name_english" in patch and assign("company_name_english", _as_str):
        # The English name is the canonical company name.
        after.company_name = after.company_name_english
        changed.add("company_name")

    if "current_step" in patch:
        target = _as_step(patch["current_step"])
        if enforce_order:
            _check_step_order(current.current_step, target)
        after.current_step = target
        changed.add("current_step")

    _apply_review(current, after, patch, changed)

    if "shareholders" in patch:
        assign("shareholders", lambda n, v: _as_roster(n, v, Shareholder.from_dict))
    if "directors" in patch:
        assign("directors", lambda n, v: _as_roster(n, v, Director.from_dict))
    if "additional_fees" in patch:
        logger.debug("Ignoring client-supplied additional fees for %s", current.id)
    if changed & {"shareholders", "directors"}:
        if rates is None:
            raise ValueError("Fee rates are required to reprice the roster")
        after.additional_fees = compute_additional_fees(after.shareholders, after.directors, rates)
        changed.add("additional_fees")

    _apply_documents(current, after, patch, changed)
    _apply_expiry(current, after, patch, changed, _local_today(now, tz), assign)

    if "shared_with_emails" in patch:
        after.shared_with = parse_shared_access(patch["shared_with_emails"])
        changed.add("shared_with")

    if "noted" in patch and assign("noted", _as_bool):
        after.secretary_records_noted_at = now if after.noted else None
        changed.add("secretary_records_noted_at")

    if changed - _SILENT_FIELDS:
        after.updated_at = now
        changed.add("updated_at")

    return StateChange(before=current, after=after, changed=frozenset(changed))


def _check_step_order(current: Step, target: Step) -> None:
    if target.index == current.index or target.index == current.index + 1:
        return
    if target.index < current.index:
        raise TransitionConflict(
            f"Cannot move from {current.value} back to {target.value}; reopen is required"
        )
    raise TransitionConflict(f"Cannot skip from {current.value} to {target.value}")


def _apply_review(
    current: Registration, after: Registration, patch: Mapping[str, Any], changed: set[str]
) -> None:
    flags: dict[str, bool] = {}
    for name in _REVIEW_FIELDS.keys() & patch.keys():
        try:
            flags[name] = _as_bool(name, patch[name])
        except ValidationFailure as exc:
            logger.warning("Dropping malformed field for %s: %s", current.id, exc)
    if not flags:
        return

    raised = [name for name, value in flags.items() if value]
    if len(raised) > 1:
        raise TransitionConflict(
            "Company details cannot be " + " and ".join(n.rsplit("_", 1)[1] for n in sorted(raised)) + " at once"
        )

    if raised:
        after.company_details_review = _REVIEW_FIELDS[raised[0]]
    else:
        for name in flags:
            if current.company_details_review is _REVIEW_FIELDS[name]:
                after.company_details_review = ReviewState.NONE
    changed.add("company_details_review")


def _apply_documents(
    current: Registration, after: Registration, patch: Mapping[str, Any], changed: set[str]
) -> None:
    documents = patch.get("documents")
    customer = patch.get("customer_documents")
    if documents is None and customer is None:
        return

    merged = dict(current.documents)
    if isinstance(documents, Mapping):
        for slot, blob in documents.items():
            if slot not in DOCUMENT_SLOTS:
                logger.debug("Ignoring unknown document slot for %s: %s", current.id, slot)
                continue
            if blob is None:
                merged.pop(slot, None)
            else:
                merged[slot] = blob
    if isinstance(customer, Mapping):
        customer_docs = dict(merged.get("customerDocuments") or {})
        for slot, blob in customer.items():
            if slot not in CUSTOMER_DOCUMENT_SLOTS:
                continue
            if blob is None:
                customer_docs.pop(slot, None)
            else:
                customer_docs[slot] = blob
        if customer_docs:
            merged["customerDocuments"] = customer_docs
        else:
            merged.pop("customerDocuments", None)

    after.documents = merged
    changed.add("documents")


def _apply_expiry(
    current: Registration,
    after: Registration,
    patch: Mapping[str, Any],
    changed: set[str],
    today: date,
    assign: Callable[..., bool],
) -> None:
    for name in _EXPIRY_DATE_FIELDS:
        if name in patch:
            assign(name, _as_date)
    if "expire_days" in patch:
        assign("expire_days", _as_days)
    if "expiry_notification_sent_at" in patch:
        assign("expiry_notification_sent_at", _as_datetime)

    period_changed = bool(changed & {"register_start_date", "expire_days"})
    if period_changed and "expire_date" not in patch:
        if after.register_start_date is not None and after.expire_days is not None:
            after.expire_date = after.register_start_date + timedelta(days=after.expire_days)
            changed.add("expire_date")

    if (
        "expire_date" in changed
        and "is_expired" not in patch
        and after.expire_date is not None
        and after.expire_date >= today
        and after.is_expired
    ):
        # Extending the expiry date revives an expired registration.
        after.is_expired = False
        changed.add("is_expired")


def reopen_transition(current: Registration, step: Step | str, now: datetime | None = None) -> StateChange:
    """Move a registration strictly backwards to ``step``."""
    target = _as_step(step)
    if target.index >= current.current_step.index:
        raise TransitionConflict(
            f"Reopen must move backwards from {current.current_step.value}, got {target.value}"
        )
    now = now or utcnow()
    after = replace(current, current_step=target, updated_at=now)
    return StateChange(before=current, after=after, changed=frozenset({"current_step", "updated_at"}))


def share_transition(
    current: Registration,
    email: str,
    *,
    status: ShareStatus | None,
    actor: str | None,
    now: datetime | None = None,
) -> StateChange:
    """
    Add, answer or remove a shared-access entry.

    Args:
        current: Registration as stored
        email: Shared email (normalized to lower case)
        status: PENDING to request, APPROVED/REJECTED to answer, None to revoke
        actor: Who requested or answered
        now: Current time

    Raises:
        TransitionConflict: Answering an email that was never requested
    """
    now = now or utcnow()
    email = email.strip().lower()
    shared = upgrade_shared_access(current.shared_with)
    entries = list(shared.entries)
    index = next((i for i, entry in enumerate(entries) if entry.email == email), None)
    stamp = now.isoformat()

    if status is None:
        if index is not None:
            del entries[index]
    elif status is ShareStatus.PENDING:
        if index is None:
            entries.append(SharedEntry(email=email, requested_by=actor, requested_at=stamp))
    else:
        if index is None:
            raise TransitionConflict(f"No share request for {email}")
        entries[index] = replace(entries[index], status=status, responded_at=stamp, responded_by=actor)

    after = replace(current, shared_with=ApprovalShareList(tuple(entries)), updated_at=now)
    return StateChange(before=current, after=after, changed=frozenset({"shared_with", "updated_at"}))


@dataclass
class RegistrationStateMachine:
    """
    Applies transitions atomically through the registration store.

    Each operation reads, transitions and writes one registration inside a
    single RegistrationRepository.modify() call.
    """

    repository: RegistrationRepository
    fee_rates: FeeRateProvider
    clock: Callable[[], datetime] = utcnow
    tz: tzinfo = timezone.utc

    def initialize(self, registration: Registration, data: Mapping[str, Any]) -> Registration:
        """
        Build a new registration from creation data.

        The initial step is taken as given; ordering applies from then on.
        """
        rates = self.fee_rates.get_fee_rates() if _touches_roster(data) else None
        now = self.clock()
        change = transition(registration, data, rates=rates, now=now, tz=self.tz, enforce_order=False)
        created = change.after
        created.created_at = created.created_at or now
        created.updated_at = now
        return created

    def apply_update(self, registration_id: str, patch: Mapping[str, Any]) -> StateChange:
        """
        Merge ``patch`` into the stored registration.

        Raises:
            RegistrationNotFound: Unknown id
            TransitionConflict: Step ordering or approval exclusivity violated
        """
        rates = self.fee_rates.get_fee_rates() if _touches_roster(patch) else None
        now = self.clock()
        return self._modify(
            registration_id,
            lambda current: transition(current, patch, rates=rates, now=now, tz=self.tz),
        )

    def reopen(self, registration_id: str, step: Step | str) -> StateChange:
        now = self.clock()
        return self._modify(registration_id, lambda current: reopen_transition(current, step, now))

    def request_share(self, registration_id: str, email: str, requested_by: str | None) -> StateChange:
        now = self.clock()
        return self._modify(
            registration_id,
            lambda current: share_transition(
                current, email, status=ShareStatus.PENDING, actor=requested_by, now=now
            ),
        )

    def respond_share(
        self, registration_id: str, email: str, approve: bool, responded_by: str | None
    ) -> StateChange:
        status = ShareStatus.APPROVED if approve else ShareStatus.REJECTED
        now = self.clock()
        return self._modify(
            registration_id,
            lambda current: share_transition(current, email, status=status, actor=responded_by, now=now),
        )

    def revoke_share(self, registration_id: str, email: str) -> StateChange:
        now = self.clock()
        return self._modify(
            registration_id,
            lambda current: share_transition(current, email, status=None, actor=None, now=now),
        )

    def _modify(self, registration_id: str, mutate: Callable[[Registration], StateChange]) -> StateChange:
        change = self.repository.modify(registration_id, mutate)
        if change is None:
            raise RegistrationNotFound(registration_id)
        return change


def _touches_roster(patch: Mapping[str, Any]) -> bool:
    return "shareholders" in patch or "directors" in patch
