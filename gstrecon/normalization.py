"""Utilities for reading source registers and normalising match keys."""
from __future__ import annotations

import csv
import logging
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Iterable, List, Mapping

from .models import FinancialRecord, MatchKey

LOGGER = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_INDIAN_DATE = re.compile(r"^(\d{2})[-/](\d{2})[-/](\d{4})$")
_WHITESPACE = re.compile(r"\s+")
_AMOUNT_NOISE = re.compile(r"[₹,\s]")

CENTS = Decimal("0.01")

# Header names accepted for each record field, compared case-insensitively.
COLUMN_ALIASES = {
    "gstin": ("GSTIN", "GST No", "GST Number", "Supplier GSTIN", "Customer GSTIN", "GSTIN/UIN"),
    "party_name": ("Party Name", "Supplier Name", "Customer Name", "Name", "Vendor Name", "Business Name"),
    "invoice_no": ("Invoice No", "Invoice Number", "Inv No", "Bill No", "Document No", "Voucher No"),
    "invoice_date": ("Invoice Date", "Date", "Bill Date", "Document Date", "Voucher Date"),
    "taxable_amount": ("Taxable Amount", "Taxable Value", "Base Amount", "Net Amount", "Amount"),
    "igst": ("IGST", "IGST Amount", "Integrated Tax"),
    "cgst": ("CGST", "CGST Amount", "Central Tax"),
    "sgst": ("SGST", "SGST Amount", "State Tax", "UTGST"),
    "total_amount": ("Total Amount", "Total", "Invoice Value", "Gross Amount", "Invoice Amount"),
}

AMOUNT_FIELDS = ("taxable_amount", "igst", "cgst", "sgst", "total_amount")


class NormalizationError(RuntimeError):
    """Raised when a source file cannot be turned into records."""


def normalise_invoice_no(raw: str | None) -> str:
    if not raw:
        return ""
    return _WHITESPACE.sub("", str(raw).strip().upper())


def normalise_invoice_date(raw: str | None) -> str:
    """Rewrite DD-MM-YYYY and DD/MM/YYYY to ISO; anything else is kept trimmed."""

    if not raw:
        return ""
    value = str(raw).strip()
    if _ISO_DATE.match(value):
        return value
    indian = _INDIAN_DATE.match(value)
    if indian:
        day, month, year = indian.groups()
        return f"{year}-{month}-{day}"
    return value


def generate_match_key(record: FinancialRecord) -> MatchKey:
    return MatchKey(
        normalise_invoice_no(record.invoice_no),
        normalise_invoice_date(record.invoice_date),
    )


def parse_amount(raw: str | int | float | Decimal | None) -> Decimal:
    """Parse a register amount, treating blanks and garbage as zero."""

    if raw is None:
        return Decimal("0")
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))

    cleaned = _AMOUNT_NOISE.sub("", raw)
    if not cleaned:
        return Decimal("0")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        LOGGER.debug("Treating unparseable amount %r as zero", raw)
        return Decimal("0")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def detect_column_mapping(headers: Iterable[str]) -> dict[str, str]:
    """Map record fields to the first header matching one of their aliases."""

    headers = [header for header in headers if header is not None]
    mapping: dict[str, str] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        wanted = {alias.lower().strip() for alias in aliases}
        for header in headers:
            if header.lower().strip() in wanted:
                mapping[field_name] = header
                break
    return mapping


def parse_row(row: Mapping[str, str], index: int, mapping: Mapping[str, str]) -> FinancialRecord:
    def value(field_name: str) -> str:
        column = mapping.get(field_name)
        if column is None:
            return ""
        return (row.get(column) or "").strip()

    amounts = {name: parse_amount(value(name)) for name in AMOUNT_FIELDS}
    if amounts["total_amount"] == 0 and amounts["taxable_amount"] > 0:
        amounts["total_amount"] = (
            amounts["taxable_amount"] + amounts["igst"] + amounts["cgst"] + amounts["sgst"]
        )

    return FinancialRecord(
        id=f"row-{index}",
        gstin=value("gstin"),
        party_name=value("party_name"),
        invoice_no=value("invoice_no"),
        invoice_date=value("invoice_date"),
        raw=dict(row),
        **amounts,
    )


def _sniff_delimiter(sample: str) -> str:
    """Detect a CSV delimiter, defaulting to comma when uncertain."""

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        return dialect.delimiter
    except csv.Error:
        return ";" if sample.count(";") > sample.count(",") else ","


def load_file(path: Path) -> List[FinancialRecord]:
    if not path.exists():
        raise FileNotFoundError(path)

    with path.open(newline="", encoding="utf-8-sig") as handle:
        sample = handle.read(1024)
        handle.seek(0)
        reader = csv.DictReader(handle, delimiter=_sniff_delimiter(sample))

        if not reader.fieldnames:
            raise NormalizationError(f"{path} appears to be empty")

        rows = [
            row for row in reader
            if any(cell.strip() for cell in row.values() if isinstance(cell, str))
        ]
        if not rows:
            raise NormalizationError(f"{path} appears to be empty")

        mapping = detect_column_mapping(reader.fieldnames)
        if "invoice_no" not in mapping:
            raise NormalizationError(
                f"Could not find an invoice number column in {path}; "
                f"expected one of: {', '.join(COLUMN_ALIASES['invoice_no'])}"
            )

    records = []
    for index, row in enumerate(rows):
        record = parse_row(row, index, mapping)
        if not record.invoice_no:
            LOGGER.debug("Skipping row %d of %s without an invoice number", index, path)
            continue
        records.append(record)

    LOGGER.info("Loaded %d records from %s", len(records), path)
    return records


def load_sources(purchase_path: Path, sales_path: Path) -> tuple[list[FinancialRecord], list[FinancialRecord]]:
    purchase = load_file(purchase_path)
    sales = load_file(sales_path)
    return purchase, sales
