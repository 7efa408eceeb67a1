"""Aggregate statistics and display lookups for reconciliation results."""
from __future__ import annotations

from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from .models import ReconciliationResult, ReconciliationStatus, ReconciliationSummary, ZERO

STATUS_LABELS = {
    ReconciliationStatus.MATCHED: "Matched",
    ReconciliationStatus.MISMATCHED: "Mismatched",
    ReconciliationStatus.MISSING_IN_PURCHASE: "Missing in Purchase",
    ReconciliationStatus.MISSING_IN_SALES: "Missing in Sales",
}

# Badge variants understood by the presentation layer.
STATUS_COLORS = {
    ReconciliationStatus.MATCHED: "success",
    ReconciliationStatus.MISMATCHED: "destructive",
    ReconciliationStatus.MISSING_IN_PURCHASE: "warning",
    ReconciliationStatus.MISSING_IN_SALES: "warning",
}


def get_status_label(status: ReconciliationStatus | str) -> str:
    return STATUS_LABELS[ReconciliationStatus(status)]


def get_status_color(status: ReconciliationStatus | str) -> str:
    return STATUS_COLORS[ReconciliationStatus(status)]


def calculate_summary(results: Iterable[ReconciliationResult]) -> ReconciliationSummary:
    counter: Counter[ReconciliationStatus] = Counter()
    total_difference = ZERO
    for result in results:
        counter[result.status] += 1
        total_difference += abs(result.total_difference)

    total = sum(counter.values())
    matched = counter[ReconciliationStatus.MATCHED]
    if total:
        percentage = int((Decimal(matched) * 100 / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        percentage = 0

    return ReconciliationSummary(
        total_records=total,
        matched_count=matched,
        mismatched_count=counter[ReconciliationStatus.MISMATCHED],
        missing_in_purchase_count=counter[ReconciliationStatus.MISSING_IN_PURCHASE],
        missing_in_sales_count=counter[ReconciliationStatus.MISSING_IN_SALES],
        match_percentage=percentage,
        total_difference_amount=total_difference,
    )
