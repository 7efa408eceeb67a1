from decimal import Decimal

import pytest

from gstrecon.matching import reconcile_datasets
from gstrecon.models import FinancialRecord, MatchKey, ReconciliationResult, ReconciliationStatus
from gstrecon.summary import calculate_summary, get_status_color, get_status_label


def _result(index: int, status: ReconciliationStatus, difference: str = "0") -> ReconciliationResult:
    return ReconciliationResult(
        id=f"result-{index}",
        status=status,
        purchase_record=None,
        sales_record=None,
        match_key=MatchKey(f"INV-{index}", ""),
        total_difference=Decimal(difference),
    )


def test_calculate_summary_on_empty_results():
    summary = calculate_summary([])
    assert summary.total_records == 0
    assert summary.matched_count == 0
    assert summary.mismatched_count == 0
    assert summary.missing_in_purchase_count == 0
    assert summary.missing_in_sales_count == 0
    assert summary.match_percentage == 0
    assert summary.total_difference_amount == Decimal("0")


def test_calculate_summary_counts_partition_results(make_record):
    purchase = [make_record("A"), make_record("B", total_amount="1300"), make_record("C")]
    sales = [make_record("A"), make_record("B"), make_record("D")]

    summary = calculate_summary(reconcile_datasets(purchase, sales))

    assert summary.total_records == 4
    assert (
        summary.matched_count
        + summary.mismatched_count
        + summary.missing_in_purchase_count
        + summary.missing_in_sales_count
    ) == summary.total_records
    assert summary.matched_count == 1
    assert summary.mismatched_count == 1
    assert summary.missing_in_purchase_count == 1
    assert summary.missing_in_sales_count == 1
    assert summary.match_percentage == 25
    assert summary.total_difference_amount == Decimal("120") + Decimal("1180") + Decimal("1180")


def test_total_difference_amount_is_absolute():
    results = [
        _result(0, ReconciliationStatus.MISSING_IN_SALES, "100"),
        _result(1, ReconciliationStatus.MISSING_IN_PURCHASE, "-250.50"),
        _result(2, ReconciliationStatus.MISMATCHED, "-5"),
    ]
    assert calculate_summary(results).total_difference_amount == Decimal("355.50")


def test_float_amounts_are_summed_as_decimals():
    purchase = [
        FinancialRecord(id="p0", invoice_no="INV-1", total_amount=1180.1),
        FinancialRecord(id="p1", invoice_no="INV-2", total_amount=500.0),
    ]
    sales = [
        FinancialRecord(id="s0", invoice_no="INV-2", total_amount=450.0),
        FinancialRecord(id="s1", invoice_no="INV-3", total_amount=2360.2),
    ]

    results = reconcile_datasets(purchase, sales)

    assert [r.status for r in results] == [
        ReconciliationStatus.MISSING_IN_SALES,
        ReconciliationStatus.MISMATCHED,
        ReconciliationStatus.MISSING_IN_PURCHASE,
    ]
    assert all(isinstance(r.total_difference, Decimal) for r in results)
    assert results[0].total_difference == Decimal("1180.1")
    assert results[2].total_difference == Decimal("-2360.2")
    assert calculate_summary(results).total_difference_amount == Decimal("3590.3")


@pytest.mark.parametrize(
    ("matched", "total", "expected"),
    [(1, 8, 13), (1, 3, 33), (2, 3, 67), (1, 200, 1), (3, 3, 100)],
)
def test_match_percentage_rounds_half_up(matched, total, expected):
    results = [_result(i, ReconciliationStatus.MATCHED) for i in range(matched)]
    results += [_result(i, ReconciliationStatus.MISMATCHED) for i in range(matched, total)]
    assert calculate_summary(results).match_percentage == expected


@pytest.mark.parametrize(
    ("status", "label", "color"),
    [
        (ReconciliationStatus.MATCHED, "Matched", "success"),
        (ReconciliationStatus.MISMATCHED, "Mismatched", "destructive"),
        (ReconciliationStatus.MISSING_IN_PURCHASE, "Missing in Purchase", "warning"),
        ("missing_in_sales", "Missing in Sales", "warning"),
    ],
)
def test_status_lookups(status, label, color):
    assert get_status_label(status) == label
    assert get_status_color(status) == color
