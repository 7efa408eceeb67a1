"""Deterministic field checks that classify a matched key."""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from .models import (
    FinancialRecord,
    MatchKey,
    MismatchField,
    MismatchReason,
    ReconciliationResult,
    ReconciliationStatus,
    ZERO,
)

# One rupee of rounding slack between the two registers.
AMOUNT_TOLERANCE = Decimal("1")

_AMOUNT_CHECKS = (
    (MismatchField.TAXABLE_AMOUNT, "taxable_amount"),
    (MismatchField.IGST, "igst"),
    (MismatchField.CGST, "cgst"),
    (MismatchField.SGST, "sgst"),
    (MismatchField.TOTAL_AMOUNT, "total_amount"),
)


def _as_decimal(value: Decimal | float | int) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def compare_amounts(
    purchase_amount: Decimal,
    sales_amount: Decimal,
    tolerance: Decimal | float = AMOUNT_TOLERANCE,
) -> tuple[bool, Decimal]:
    """Return whether two amounts agree within tolerance and their signed difference."""

    difference = _as_decimal(purchase_amount) - _as_decimal(sales_amount)
    return difference.copy_abs() <= _as_decimal(tolerance), difference


def _text_differs(purchase_value: str, sales_value: str) -> bool:
    return bool(purchase_value and sales_value and purchase_value != sales_value)


def find_mismatches(
    purchase: FinancialRecord,
    sales: FinancialRecord,
    *,
    tolerance: Decimal | float = AMOUNT_TOLERANCE,
) -> list[MismatchReason]:
    reasons: List[MismatchReason] = []

    if _text_differs(purchase.gstin.strip().upper(), sales.gstin.strip().upper()):
        reasons.append(MismatchReason(MismatchField.GSTIN, purchase.gstin, sales.gstin))

    purchase_name = purchase.party_name.strip().lower()
    sales_name = sales.party_name.strip().lower()
    # Suffix variants such as "Ltd" are not treated as a different party.
    if _text_differs(purchase_name, sales_name) and not (
        purchase_name in sales_name or sales_name in purchase_name
    ):
        reasons.append(MismatchReason(MismatchField.PARTY_NAME, purchase.party_name, sales.party_name))

    for mismatch_field, attribute in _AMOUNT_CHECKS:
        purchase_amount = getattr(purchase, attribute)
        sales_amount = getattr(sales, attribute)
        is_equal, difference = compare_amounts(purchase_amount, sales_amount, tolerance)
        if not is_equal:
            reasons.append(MismatchReason(mismatch_field, purchase_amount, sales_amount, difference))

    return reasons


def evaluate_pair(
    result_id: str,
    key: MatchKey,
    purchase: FinancialRecord | None,
    sales: FinancialRecord | None,
    *,
    tolerance: Decimal | float = AMOUNT_TOLERANCE,
) -> ReconciliationResult:
    if purchase is not None and sales is None:
        return ReconciliationResult(
            id=result_id,
            status=ReconciliationStatus.MISSING_IN_SALES,
            purchase_record=purchase,
            sales_record=None,
            match_key=key,
            total_difference=_as_decimal(purchase.total_amount),
        )
    if sales is not None and purchase is None:
        return ReconciliationResult(
            id=result_id,
            status=ReconciliationStatus.MISSING_IN_PURCHASE,
            purchase_record=None,
            sales_record=sales,
            match_key=key,
            total_difference=-_as_decimal(sales.total_amount),
        )
    if purchase is None or sales is None:  # pragma: no cover - match_records never yields empty pairs
        raise ValueError(f"Nothing to evaluate for key {key}")

    reasons = find_mismatches(purchase, sales, tolerance=tolerance)
    if not reasons:
        return ReconciliationResult(
            id=result_id,
            status=ReconciliationStatus.MATCHED,
            purchase_record=purchase,
            sales_record=sales,
            match_key=key,
        )

    total_difference = next(
        (reason.difference for reason in reasons if reason.field is MismatchField.TOTAL_AMOUNT),
        ZERO,
    )
    return ReconciliationResult(
        id=result_id,
        status=ReconciliationStatus.MISMATCHED,
        purchase_record=purchase,
        sales_record=sales,
        match_key=key,
        mismatch_reasons=tuple(reasons),
        total_difference=total_difference,
    )


def evaluate_matches(
    pairs: Iterable[tuple[MatchKey, tuple[FinancialRecord | None, FinancialRecord | None]]],
    *,
    tolerance: Decimal | float = AMOUNT_TOLERANCE,
) -> list[ReconciliationResult]:
    return [
        evaluate_pair(f"result-{index}", key, purchase, sales, tolerance=tolerance)
        for index, (key, (purchase, sales)) in enumerate(pairs)
    ]
