import json
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from gstrecon import llm
from gstrecon.models import FinancialRecord


@pytest.fixture(autouse=True)
def stubbed_llm_client():
    """Provide deterministic LLM outputs for tests without network access."""

    class _StubClient:
        _SEVERITY_MAP = {
            "mismatched": "medium",
            "missing_in_purchase": "high",
            "missing_in_sales": "high",
        }

        _SUMMARY_MAP = {
            "mismatched": "Register amounts disagree; agree the invoice copy with the supplier.",
            "missing_in_purchase": "Sales entry has no purchase booking; book the invoice.",
            "missing_in_sales": "Purchase entry is not reported by the counterparty; follow up.",
        }

        def request(self, *, messages, schema):  # type: ignore[override]
            if schema.get("name") != "reconciliation_result_annotation":
                raise AssertionError(f"Unexpected schema requested: {schema.get('name')!r}")
            payload = self._extract_payload(messages)
            status = payload.get("status", "")
            return {
                "severity": self._SEVERITY_MAP.get(status, "medium"),
                "summary": self._SUMMARY_MAP.get(status, "Investigate register data quality."),
                "actions": ["Review automated reconciliation output"],
                "confidence": 0.5,
                "needs_escalation": status == "missing_in_sales",
            }

        def _extract_payload(self, messages):
            for block in reversed(messages):
                content = block.get("content")
                if not isinstance(content, list):
                    continue
                for item in reversed(content):
                    if not isinstance(item, dict) or item.get("type") != "text":
                        continue
                    try:
                        return json.loads(item.get("text", ""))
                    except json.JSONDecodeError:
                        continue
            return {}

    llm.set_structured_client_for_testing(_StubClient())
    yield
    llm.set_structured_client_for_testing(None)


@pytest.fixture
def make_record():
    """Build a record whose amounts default to a consistent 1000 + 18% GST invoice."""

    counter = iter(range(10_000))

    def _make(
        invoice_no: str = "INV-2024-001",
        invoice_date: str = "2024-01-05",
        *,
        gstin: str = "27AAACH1234F1Z5",
        party_name: str = "HCL Technologies",
        taxable_amount: str = "1000.00",
        igst: str = "0",
        cgst: str = "90.00",
        sgst: str = "90.00",
        total_amount: str = "1180.00",
    ) -> FinancialRecord:
        return FinancialRecord(
            id=f"row-{next(counter)}",
            gstin=gstin,
            party_name=party_name,
            invoice_no=invoice_no,
            invoice_date=invoice_date,
            taxable_amount=Decimal(taxable_amount),
            igst=Decimal(igst),
            cgst=Decimal(cgst),
            sgst=Decimal(sgst),
            total_amount=Decimal(total_amount),
        )

    return _make
