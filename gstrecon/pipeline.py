"""High-level orchestration for a reconciliation run."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

from .filters import filter_results
from .llm import annotate_results
from .matching import find_duplicate_keys, reconcile_datasets
from .models import ReconciliationSummary
from .normalization import load_sources
from .report import (
    default_report_name,
    generate_markdown_summary,
    write_csv,
    write_json,
    write_markdown,
)
from .summary import calculate_summary

LOGGER = logging.getLogger(__name__)


def run_reconciliation(
    *,
    purchase_path: Path,
    sales_path: Path,
    out_dir: Path,
    tolerance: Decimal | float,
    annotate: bool = False,
    filters: Mapping[str, Any] | None = None,
    report_date: date | None = None,
) -> ReconciliationSummary:
    """Reconcile two register files and write CSV, JSON and Markdown reports.

    The returned summary covers every result; ``filters`` only narrow what
    is exported. Report files are named after ``report_date``, today by
    default.
    """

    purchase_records, sales_records = load_sources(purchase_path, sales_path)
    results = reconcile_datasets(purchase_records, sales_records, tolerance=tolerance)
    summary = calculate_summary(results)
    LOGGER.info(
        "Reconciled %d invoices: %d matched, %d mismatched, %d missing in purchase, %d missing in sales",
        summary.total_records,
        summary.matched_count,
        summary.mismatched_count,
        summary.missing_in_purchase_count,
        summary.missing_in_sales_count,
    )

    exported = filter_results(results, **filters) if filters else results
    annotations = annotate_results(exported) if annotate else {}
    duplicates = {
        "purchase": find_duplicate_keys(purchase_records),
        "sales": find_duplicate_keys(sales_records),
    }

    report_date = report_date or date.today()
    out_dir.mkdir(parents=True, exist_ok=True)
    write_csv(out_dir / default_report_name(report_date, "csv"), exported)
    write_json(out_dir / default_report_name(report_date, "json"), exported, annotations)
    markdown = generate_markdown_summary(
        exported,
        calculate_summary(exported),
        purchase_total=len(purchase_records),
        sales_total=len(sales_records),
        duplicates=duplicates,
        annotations=annotations,
    )
    write_markdown(out_dir / default_report_name(report_date, "md"), markdown)
    return summary
