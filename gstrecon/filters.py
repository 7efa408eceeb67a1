"""Narrow a result list down for review or export."""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .models import ReconciliationResult, ReconciliationStatus


def _matches_query(result: ReconciliationResult, query: str) -> bool:
    return any(
        query in value.lower()
        for value in (result.invoice_no, result.party_name, result.gstin)
    )


def filter_results(
    results: Iterable[ReconciliationResult],
    *,
    query: str | None = None,
    status: ReconciliationStatus | str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> list[ReconciliationResult]:
    """Keep results matching every given criterion, preserving their order.

    ``query`` is a case-insensitive substring of the invoice number, party
    name or GSTIN. ``status`` of ``None`` or ``"all"`` disables the status
    filter. Amount bounds are inclusive and apply to the purchase total, or
    the sales total when the purchase side is absent. Once either bound is
    given the lower bound defaults to zero, so negative totals such as
    credit notes only appear when ``min_amount`` asks for them.
    """

    needle = query.strip().lower() if query else ""
    wanted = None if status in (None, "all") else ReconciliationStatus(status)
    if min_amount is None and max_amount is not None:
        min_amount = Decimal("0")

    filtered = []
    for result in results:
        if needle and not _matches_query(result, needle):
            continue
        if wanted is not None and result.status is not wanted:
            continue
        amount = result.reference_amount
        if min_amount is not None and amount < min_amount:
            continue
        if max_amount is not None and amount > max_amount:
            continue
        filtered.append(result)
    return filtered
