"""
Additional-fee engine.

Prices the shareholder and director rosters of a registration against the
fee rates held by the settings store. Every roster member is charged; a
director who is also a shareholder is charged once on each roster because
the two lists are separate statutory filings.
"""

from collections.abc import Iterable
from decimal import Decimal

from .models import (
    Director,
    DirectorFees,
    FeeBreakdown,
    FeeRateConfig,
    Shareholder,
    ShareholderFees,
)
from .ports import LegalType, Residency


def _subtotal(count: int, rate: Decimal) -> Decimal:
    if count <= 0 or rate <= 0:
        return Decimal(0)
    return count * rate


def compute_additional_fees(
    shareholders: Iterable[Shareholder],
    directors: Iterable[Director],
    rates: FeeRateConfig,
) -> FeeBreakdown:
    """
    Compute the additional-fee breakdown for a roster.

    Pure and deterministic: the same roster and rates always produce an
    equal FeeBreakdown.

    Args:
        shareholders: Shareholder roster
        directors: Director roster (including directors that originate
            from shareholders)
        rates: Per-head fee rates

    Returns:
        FeeBreakdown with per-bucket counts, rates, subtotals and total
    """
    director_local = director_foreign = 0
    for director in directors:
        if director.residency is Residency.FOREIGN:
            director_foreign += 1
        else:
            director_local += 1

    buckets = {
        (Residency.LOCAL, LegalType.NATURAL_PERSON): 0,
        (Residency.LOCAL, LegalType.LEGAL_ENTITY): 0,
        (Residency.FOREIGN, LegalType.NATURAL_PERSON): 0,
        (Residency.FOREIGN, LegalType.LEGAL_ENTITY): 0,
    }
    for shareholder in shareholders:
        buckets[(shareholder.residency, shareholder.kind)] += 1

    local_natural = buckets[(Residency.LOCAL, LegalType.NATURAL_PERSON)]
    local_entity = buckets[(Residency.LOCAL, LegalType.LEGAL_ENTITY)]
    foreign_natural = buckets[(Residency.FOREIGN, LegalType.NATURAL_PERSON)]
    foreign_entity = buckets[(Residency.FOREIGN, LegalType.LEGAL_ENTITY)]

    director_total = _subtotal(director_local, rates.director_local) + _subtotal(
        director_foreign, rates.director_foreign
    )
    shareholder_total = (
        _subtotal(local_natural, rates.shareholder_local_natural)
        + _subtotal(local_entity, rates.shareholder_local_entity)
        + _subtotal(foreign_natural, rates.shareholder_foreign_natural)
        + _subtotal(foreign_entity, rates.shareholder_foreign_entity)
    )

    return FeeBreakdown(
        directors=DirectorFees(
            local_count=director_local,
            foreign_count=director_foreign,
            local_fee=rates.director_local,
            foreign_fee=rates.director_foreign,
            total=director_total,
        ),
        shareholders=ShareholderFees(
            local_natural_count=local_natural,
            local_entity_count=local_entity,
            foreign_natural_count=foreign_natural,
            foreign_entity_count=foreign_entity,
            local_natural_fee=rates.shareholder_local_natural,
            local_entity_fee=rates.shareholder_local_entity,
            foreign_natural_fee=rates.shareholder_foreign_natural,
            foreign_entity_fee=rates.shareholder_foreign_entity,
            total=shareholder_total,
        ),
        total=director_total + shareholder_total,
    )
