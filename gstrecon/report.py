"""Rendering utilities for machine-readable and human-readable outputs."""
from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Iterable, Mapping

from .models import (
    FinancialRecord,
    MatchKey,
    ReconciliationResult,
    ReconciliationStatus,
    ReconciliationSummary,
    ResultAnnotation,
)
from .summary import calculate_summary, get_status_label

CSV_COLUMNS = [
    "Status",
    "Invoice No",
    "Invoice Date",
    "Party Name",
    "GSTIN",
    "Purchase Taxable Amount",
    "Purchase IGST",
    "Purchase CGST",
    "Purchase SGST",
    "Purchase Total",
    "Sales Taxable Amount",
    "Sales IGST",
    "Sales CGST",
    "Sales SGST",
    "Sales Total",
    "Difference",
    "Mismatch Reasons",
]


def format_currency(amount: Decimal | float | int) -> str:
    """Format an amount as Indian rupees, e.g. ``₹1,23,456.70``."""

    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    integer, fraction = f"{abs(value):.2f}".split(".")
    if len(integer) > 3:
        head, tail = integer[:-3], integer[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        integer = ",".join(groups + [tail])
    return f"{sign}₹{integer}.{fraction}"


def default_report_name(today: date | None = None, extension: str = "csv") -> str:
    today = today or date.today()
    return f"reconciliation-report-{today.isoformat()}.{extension}"


def write_csv(path: Path, results: Iterable[ReconciliationResult]) -> None:
    import csv

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for result in results:
            writer.writerow(result.as_dict())


def write_json(
    path: Path,
    results: list[ReconciliationResult],
    annotations: Mapping[str, ResultAnnotation] | None = None,
) -> None:
    import json

    annotations = annotations or {}
    payload = {
        "summary": calculate_summary(results).as_dict(),
        "results": [
            {
                **result.as_json(),
                "annotation": annotations[result.id].as_json() if result.id in annotations else None,
            }
            for result in results
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)


def _escape(text: str) -> str:
    return text.replace("|", "\\|")


def generate_markdown_summary(
    results: list[ReconciliationResult],
    summary: ReconciliationSummary,
    *,
    purchase_total: int,
    sales_total: int,
    duplicates: Mapping[str, Mapping[MatchKey, list[FinancialRecord]]] | None = None,
    annotations: Mapping[str, ResultAnnotation] | None = None,
) -> str:
    annotations = annotations or {}
    field_counter = Counter(
        reason.field.value for result in results for reason in result.mismatch_reasons
    )

    lines = ["# GST Reconciliation Report", ""]
    lines.append(f"Generated: {datetime.now(timezone.utc).isoformat(timespec='seconds')}")
    lines.append("")
    lines.append("## Overview")
    lines.append("")
    lines.append(f"- Purchase records processed: **{purchase_total}**")
    lines.append(f"- Sales records processed: **{sales_total}**")
    lines.append(f"- Invoices reconciled: **{summary.total_records}**")
    lines.append(f"- Match rate: **{summary.match_percentage}%**")
    lines.append(f"- Total difference: **{format_currency(summary.total_difference_amount)}**")
    lines.append("")

    lines.append("## Results by status")
    lines.append("")
    counts = {
        ReconciliationStatus.MATCHED: summary.matched_count,
        ReconciliationStatus.MISMATCHED: summary.mismatched_count,
        ReconciliationStatus.MISSING_IN_PURCHASE: summary.missing_in_purchase_count,
        ReconciliationStatus.MISSING_IN_SALES: summary.missing_in_sales_count,
    }
    for status, count in counts.items():
        lines.append(f"- {get_status_label(status)}: {count}")
    lines.append("")

    if field_counter:
        lines.append("## Mismatches by field")
        lines.append("")
        for field_name, count in field_counter.most_common():
            lines.append(f"- {field_name}: {count}")
        lines.append("")

    duplicate_lines = []
    for side, groups in (duplicates or {}).items():
        for key, records in groups.items():
            ids = ", ".join(record.id for record in records)
            duplicate_lines.append(
                f"- {side.title()} {key.invoice_no} ({key.invoice_date or 'no date'}): "
                f"{len(records)} rows ({ids}); only the last was reconciled"
            )
    if duplicate_lines:
        lines.append("## Duplicate invoices")
        lines.append("")
        lines.extend(duplicate_lines)
        lines.append("")

    exceptions = [result for result in results if result.status is not ReconciliationStatus.MATCHED]
    if exceptions:
        lines.append("## Exceptions")
        lines.append("")
        lines.append("| Invoice | Date | Party | Status | Difference | Reasons | Explanation |")
        lines.append("| --- | --- | --- | --- | --- | --- | --- |")
        for result in exceptions:
            annotation = annotations.get(result.id)
            lines.append(
                "| {invoice} | {date} | {party} | {status} | {difference} | {reasons} | {explanation} |".format(
                    invoice=_escape(result.invoice_no),
                    date=_escape(result.invoice_date),
                    party=_escape(result.party_name),
                    status=get_status_label(result.status),
                    difference=format_currency(result.total_difference),
                    reasons=_escape("; ".join(reason.describe() for reason in result.mismatch_reasons)),
                    explanation=_escape(annotation.explanation) if annotation else "",
                )
            )
        lines.append("")
    else:
        lines.append("No exceptions detected. Every invoice matched within tolerance.")

    return "\n".join(lines)


def write_markdown(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        handle.write(content)
