import csv
import json
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from gstrecon.matching import find_duplicate_keys, reconcile_datasets
from gstrecon.models import ResultAnnotation
from gstrecon.report import (
    CSV_COLUMNS,
    default_report_name,
    format_currency,
    generate_markdown_summary,
    write_csv,
    write_json,
)
from gstrecon.summary import calculate_summary


@pytest.fixture
def results(make_record):
    purchase = [
        make_record("INV-2024-001"),
        make_record("INV-2024-002", party_name="Wipro | Bangalore", total_amount="1300.00"),
        make_record("INV-2024-016", total_amount="5900.00"),
    ]
    sales = [
        make_record("INV-2024-001"),
        make_record("INV-2024-002", party_name="Infosys"),
        make_record("INV-2024-012", total_amount="2360.00"),
    ]
    return reconcile_datasets(purchase, sales)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (Decimal("123456.7"), "₹1,23,456.70"),
        (Decimal("1234567"), "₹12,34,567.00"),
        (Decimal("999"), "₹999.00"),
        (Decimal("-2360"), "-₹2,360.00"),
        (0, "₹0.00"),
    ],
)
def test_format_currency_uses_indian_grouping(amount, expected):
    assert format_currency(amount) == expected


def test_default_report_name():
    assert default_report_name(date(2024, 3, 31)) == "reconciliation-report-2024-03-31.csv"
    assert default_report_name(date(2024, 3, 31), "md") == "reconciliation-report-2024-03-31.md"
    assert default_report_name(extension="json").endswith(f"{date.today().isoformat()}.json")


def test_write_csv_layout(tmp_path: Path, results):
    path = tmp_path / "nested" / "report.csv"
    write_csv(path, results)

    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))

    assert list(rows[0].keys()) == CSV_COLUMNS
    assert [row["Status"] for row in rows] == [
        "matched",
        "mismatched",
        "missing_in_sales",
        "missing_in_purchase",
    ]
    mismatched = rows[1]
    assert mismatched["Party Name"] == "Wipro | Bangalore"
    assert mismatched["Purchase Total"] == "1300.00"
    assert mismatched["Sales Total"] == "1180.00"
    assert mismatched["Difference"] == "120.00"
    assert mismatched["Mismatch Reasons"] == (
        "Party Name: Wipro | Bangalore vs Infosys; Total Amount: 1300.00 vs 1180.00"
    )
    missing_purchase = rows[3]
    assert missing_purchase["Purchase Total"] == ""
    assert missing_purchase["Sales Total"] == "2360.00"
    assert missing_purchase["Difference"] == "-2360.00"


def test_write_json_includes_summary_and_annotations(tmp_path: Path, results):
    annotation = ResultAnnotation(explanation="Check the invoice copy.", severity="medium", source="rule")
    path = tmp_path / "report.json"
    write_json(path, results, {"result-1": annotation})

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["summary"]["total_records"] == 4
    assert payload["summary"]["match_percentage"] == 25
    first, second = payload["results"][:2]
    assert first["annotation"] is None
    assert first["match_key"] == "INV-2024-001|2024-01-05"
    assert second["annotation"]["explanation"] == "Check the invoice copy."
    assert second["mismatch_reasons"][1] == {
        "field": "Total Amount",
        "purchase_value": 1300.0,
        "sales_value": 1180.0,
        "difference": 120.0,
    }


def test_markdown_summary_lists_exceptions_and_duplicates(make_record, results):
    duplicates = {
        "purchase": find_duplicate_keys([make_record("INV-7"), make_record("inv-7")]),
        "sales": {},
    }
    markdown = generate_markdown_summary(
        results,
        calculate_summary(results),
        purchase_total=3,
        sales_total=3,
        duplicates=duplicates,
    )

    assert "# GST Reconciliation Report" in markdown
    assert "- Match rate: **25%**" in markdown
    assert "- Missing in Sales: 1" in markdown
    assert "- Total Amount: 1" in markdown
    assert "## Duplicate invoices" in markdown
    assert "Purchase INV-7 (2024-01-05): 2 rows" in markdown
    assert "Wipro \\| Bangalore" in markdown
    assert "| INV-2024-012 | 2024-01-05 | HCL Technologies | Missing in Purchase | -₹2,360.00 |" in markdown


def test_markdown_summary_without_exceptions(make_record):
    results = reconcile_datasets([make_record()], [make_record()])
    markdown = generate_markdown_summary(results, calculate_summary(results), purchase_total=1, sales_total=1)
    assert "No exceptions detected" in markdown
    assert "## Duplicate invoices" not in markdown
