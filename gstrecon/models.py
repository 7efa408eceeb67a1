"""Data models used by the reconciliation workflow."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping, NamedTuple, Optional, Tuple

ZERO = Decimal("0")


class ReconciliationStatus(str, Enum):
    """Outcome of reconciling one match key."""

    MATCHED = "matched"
    MISMATCHED = "mismatched"
    MISSING_IN_PURCHASE = "missing_in_purchase"
    MISSING_IN_SALES = "missing_in_sales"


class MismatchField(str, Enum):
    """Fields compared between a purchase and a sales record, in report order."""

    GSTIN = "GSTIN"
    PARTY_NAME = "Party Name"
    TAXABLE_AMOUNT = "Taxable Amount"
    IGST = "IGST"
    CGST = "CGST"
    SGST = "SGST"
    TOTAL_AMOUNT = "Total Amount"


@dataclass(frozen=True, slots=True)
class ResultAnnotation:
    """Structured explanation attached to a non-matched result."""

    explanation: str
    severity: str
    actions: Tuple[str, ...] = ()
    confidence: Optional[float] = None
    needs_escalation: bool = False
    source: str = "openai"
    raw_response: Dict[str, object] | None = None

    def as_json(self) -> dict[str, object]:
        return {
            "explanation": self.explanation,
            "severity": self.severity,
            "actions": list(self.actions),
            "confidence": self.confidence,
            "needs_escalation": self.needs_escalation,
            "source": self.source,
            "llm_payload": self.raw_response,
        }


class MatchKey(NamedTuple):
    invoice_no: str
    invoice_date: str

    def __str__(self) -> str:
        return f"{self.invoice_no}|{self.invoice_date}"


@dataclass(frozen=True, slots=True)
class FinancialRecord:
    id: str
    gstin: str = ""
    party_name: str = ""
    invoice_no: str = ""
    invoice_date: str = ""
    taxable_amount: Decimal = ZERO
    igst: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    total_amount: Decimal = ZERO
    raw: Mapping[str, str] = field(default_factory=dict, compare=False)

    def amounts(self) -> dict[str, Decimal]:
        return {
            "taxable_amount": self.taxable_amount,
            "igst": self.igst,
            "cgst": self.cgst,
            "sgst": self.sgst,
            "total_amount": self.total_amount,
        }


@dataclass(frozen=True, slots=True)
class MismatchReason:
    field: MismatchField
    purchase_value: str | Decimal
    sales_value: str | Decimal
    difference: Optional[Decimal] = None

    def describe(self) -> str:
        return f"{self.field.value}: {self.purchase_value} vs {self.sales_value}"

    def as_json(self) -> dict[str, object]:
        return {
            "field": self.field.value,
            "purchase_value": _json_value(self.purchase_value),
            "sales_value": _json_value(self.sales_value),
            "difference": float(self.difference) if self.difference is not None else None,
        }


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    id: str
    status: ReconciliationStatus
    purchase_record: Optional[FinancialRecord]
    sales_record: Optional[FinancialRecord]
    match_key: MatchKey
    mismatch_reasons: Tuple[MismatchReason, ...] = ()
    total_difference: Decimal = ZERO

    def _first(self, attribute: str) -> str:
        for record in (self.purchase_record, self.sales_record):
            if record is not None and getattr(record, attribute):
                return getattr(record, attribute)
        return ""

    @property
    def invoice_no(self) -> str:
        return self._first("invoice_no")

    @property
    def invoice_date(self) -> str:
        return self._first("invoice_date")

    @property
    def party_name(self) -> str:
        return self._first("party_name")

    @property
    def gstin(self) -> str:
        return self._first("gstin")

    @property
    def reference_amount(self) -> Decimal:
        """Total used when filtering by amount: purchase side first, then sales."""

        if self.purchase_record is not None and self.purchase_record.total_amount:
            return self.purchase_record.total_amount
        if self.sales_record is not None:
            return self.sales_record.total_amount
        return ZERO

    def as_dict(self) -> dict[str, str]:
        purchase = self.purchase_record
        sales = self.sales_record
        return {
            "Status": self.status.value,
            "Invoice No": self.invoice_no,
            "Invoice Date": self.invoice_date,
            "Party Name": self.party_name,
            "GSTIN": self.gstin,
            "Purchase Taxable Amount": _fmt(purchase.taxable_amount) if purchase else "",
            "Purchase IGST": _fmt(purchase.igst) if purchase else "",
            "Purchase CGST": _fmt(purchase.cgst) if purchase else "",
            "Purchase SGST": _fmt(purchase.sgst) if purchase else "",
            "Purchase Total": _fmt(purchase.total_amount) if purchase else "",
            "Sales Taxable Amount": _fmt(sales.taxable_amount) if sales else "",
            "Sales IGST": _fmt(sales.igst) if sales else "",
            "Sales CGST": _fmt(sales.cgst) if sales else "",
            "Sales SGST": _fmt(sales.sgst) if sales else "",
            "Sales Total": _fmt(sales.total_amount) if sales else "",
            "Difference": _fmt(self.total_difference),
            "Mismatch Reasons": "; ".join(reason.describe() for reason in self.mismatch_reasons),
        }

    def as_json(self) -> dict[str, object]:
        def serialise_record(record: Optional[FinancialRecord]) -> dict[str, object] | None:
            if record is None:
                return None
            return {
                "id": record.id,
                "gstin": record.gstin,
                "party_name": record.party_name,
                "invoice_no": record.invoice_no,
                "invoice_date": record.invoice_date,
                **{name: float(value) for name, value in record.amounts().items()},
            }

        return {
            "id": self.id,
            "status": self.status.value,
            "match_key": str(self.match_key),
            "purchase": serialise_record(self.purchase_record),
            "sales": serialise_record(self.sales_record),
            "mismatch_reasons": [reason.as_json() for reason in self.mismatch_reasons],
            "total_difference": float(self.total_difference),
        }


@dataclass(frozen=True, slots=True)
class ReconciliationSummary:
    total_records: int = 0
    matched_count: int = 0
    mismatched_count: int = 0
    missing_in_purchase_count: int = 0
    missing_in_sales_count: int = 0
    match_percentage: int = 0
    total_difference_amount: Decimal = ZERO

    def as_dict(self) -> dict[str, object]:
        return {
            "total_records": self.total_records,
            "matched_count": self.matched_count,
            "mismatched_count": self.mismatched_count,
            "missing_in_purchase_count": self.missing_in_purchase_count,
            "missing_in_sales_count": self.missing_in_sales_count,
            "match_percentage": self.match_percentage,
            "total_difference_amount": float(self.total_difference_amount),
        }


def _fmt(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _json_value(value: str | Decimal) -> str | float:
    return float(value) if isinstance(value, Decimal) else value
