"""LLM-backed explanations and prioritisation for reconciliation exceptions."""
from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from functools import lru_cache
from typing import Any, Dict, Iterable, Protocol

from .models import (
    FinancialRecord,
    MismatchField,
    ReconciliationResult,
    ReconciliationStatus,
    ResultAnnotation,
)
from .report import format_currency

LOGGER = logging.getLogger(__name__)

STATUS_ACTIONS = {
    ReconciliationStatus.MISMATCHED: (
        "Compare the invoice copy with both register entries",
        "Raise a debit or credit note for the differing amounts",
    ),
    ReconciliationStatus.MISSING_IN_PURCHASE: (
        "Confirm the supplier invoice was received",
        "Book the invoice in the purchase register before filing",
    ),
    ReconciliationStatus.MISSING_IN_SALES: (
        "Ask the counterparty to report the invoice in their return",
        "Hold the input tax credit until the invoice appears",
    ),
}

_VALID_SEVERITIES = {"low", "medium", "high"}

# Differences on these fields put the input tax credit claim at risk.
_CRITICAL_FIELDS = {MismatchField.GSTIN, MismatchField.TOTAL_AMOUNT}

_JSON_SCHEMA = {
    "name": "reconciliation_result_annotation",
    "schema": {
        "type": "object",
        "properties": {
            "severity": {
                "type": "string",
                "description": "Operational priority: low, medium or high.",
            },
            "summary": {
                "type": "string",
                "description": "Human readable explanation (1-2 sentences).",
            },
            "actions": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Ordered remediation steps for the accounts team.",
            },
            "confidence": {
                "type": "number",
                "description": "Confidence score between 0 and 1.",
            },
            "needs_escalation": {
                "type": "boolean",
                "description": "Whether a reviewer must sign off before filing.",
            },
        },
        "required": ["severity", "summary"],
        "additionalProperties": False,
    },
}


class StructuredClient(Protocol):
    def request(self, *, messages: list[dict[str, Any]], schema: dict[str, Any]) -> Dict[str, Any] | None:
        ...


@dataclass(frozen=True)
class LLMConfig:
    """Runtime configuration for the LLM integration."""

    model: str
    temperature: float
    api_key: str | None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        model = os.getenv("GSTRECON_OPENAI_MODEL", "gpt-4o-mini")
        temperature = float(os.getenv("GSTRECON_OPENAI_TEMPERATURE", "0.2"))
        api_key = os.getenv("GSTRECON_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY")
        return cls(model=model, temperature=temperature, api_key=api_key)


class OpenAIStructuredClient:
    """Adapter that asks the chat completions API for schema-bound JSON."""

    def __init__(self, config: LLMConfig, client: Any) -> None:
        self._config = config
        self._client = client

    @classmethod
    def from_config(cls, config: LLMConfig) -> "OpenAIStructuredClient":
        from openai import OpenAI

        return cls(config, OpenAI(api_key=config.api_key))

    def request(self, *, messages: list[dict[str, Any]], schema: dict[str, Any]) -> Dict[str, Any] | None:
        response = self._client.chat.completions.create(
            model=self._config.model,
            temperature=self._config.temperature,
            messages=messages,
            response_format={"type": "json_schema", "json_schema": schema},
        )
        return _extract_json_payload(response)


_client_override: StructuredClient | None = None


def set_structured_client_for_testing(client: StructuredClient | None) -> None:
    """Install (or remove, with ``None``) a client used instead of OpenAI."""

    global _client_override
    _client_override = client
    _service.cache_clear()


def _serialise_record(record: FinancialRecord | None) -> Dict[str, Any] | None:
    if record is None:
        return None
    return {
        "gstin": record.gstin,
        "party_name": record.party_name,
        "invoice_no": record.invoice_no,
        "invoice_date": record.invoice_date,
        **{name: float(value) for name, value in record.amounts().items()},
    }


def _compose_user_payload(result: ReconciliationResult) -> dict[str, Any]:
    return {
        "status": result.status.value,
        "match_key": str(result.match_key),
        "purchase_record": _serialise_record(result.purchase_record),
        "sales_record": _serialise_record(result.sales_record),
        "mismatch_reasons": [reason.as_json() for reason in result.mismatch_reasons],
        "total_difference": float(result.total_difference),
    }


def _fallback_summary(result: ReconciliationResult) -> str:
    invoice = result.invoice_no or "(no invoice number)"
    dated = f" dated {result.invoice_date}" if result.invoice_date else ""
    party = f" for {result.party_name}" if result.party_name else ""

    if result.status is ReconciliationStatus.MISSING_IN_SALES:
        amount = format_currency(result.purchase_record.total_amount)
        return (
            f"Invoice {invoice}{dated}{party} is booked in purchases at {amount} "
            "but has no matching sales entry."
        )
    if result.status is ReconciliationStatus.MISSING_IN_PURCHASE:
        amount = format_currency(result.sales_record.total_amount)
        return (
            f"Invoice {invoice}{dated}{party} is reported in sales at {amount} "
            "but is missing from the purchase register."
        )
    details = "; ".join(reason.describe() for reason in result.mismatch_reasons)
    return f"Invoice {invoice}{dated}{party} differs between registers: {details}."


def _fallback_severity(result: ReconciliationResult) -> str:
    if result.status is not ReconciliationStatus.MISMATCHED:
        return "high"
    fields = {reason.field for reason in result.mismatch_reasons}
    return "high" if fields & _CRITICAL_FIELDS else "medium"


def _fallback_annotation(result: ReconciliationResult) -> ResultAnnotation:
    return ResultAnnotation(
        explanation=_fallback_summary(result),
        severity=_fallback_severity(result),
        actions=STATUS_ACTIONS.get(result.status, ()),
        source="rule",
    )


class ResultAnnotationService:
    """Explains reconciliation exceptions, via an LLM when one is configured."""

    def __init__(self, config: LLMConfig, client: StructuredClient | None) -> None:
        self._config = config
        self._client = client

    @classmethod
    def from_env(cls) -> "ResultAnnotationService":
        config = LLMConfig.from_env()
        if _client_override is not None:
            client: StructuredClient | None = _client_override
        elif config.api_key:
            client = OpenAIStructuredClient.from_config(config)
        else:
            client = None
        return cls(config=config, client=client)

    def annotate(self, result: ReconciliationResult) -> ResultAnnotation | None:
        if result.status is ReconciliationStatus.MATCHED:
            return None
        if self._client is None:
            return _fallback_annotation(result)

        payload = _compose_user_payload(result)
        messages = [
            {
                "role": "system",
                "content": "You are a GST compliance analyst reconciling purchase and sales registers.",
            },
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": (
                            "Explain the reconciliation exception and how to resolve it. "
                            "Return JSON that aligns with the provided schema."
                        ),
                    },
                    {"type": "text", "text": json.dumps(payload, indent=2)},
                ],
            },
        ]

        try:
            llm_payload = self._client.request(messages=messages, schema=_JSON_SCHEMA)
        except Exception as exc:  # pragma: no cover - network/runtime failure
            LOGGER.warning("LLM annotation failed; using rule-based fallback: %s", exc)
            return _fallback_annotation(result)

        if not llm_payload:
            return _fallback_annotation(result)

        severity = str(llm_payload.get("severity", "")).lower()
        if severity not in _VALID_SEVERITIES:
            LOGGER.warning("LLM returned unknown severity %r; using rule-based fallback", severity)
            return _fallback_annotation(result)

        summary = llm_payload.get("summary") or _fallback_summary(result)

        actions = llm_payload.get("actions") or []
        if isinstance(actions, Iterable) and not isinstance(actions, str):
            ordered_actions = [a for a in actions if isinstance(a, str)]
        else:
            ordered_actions = []

        confidence = llm_payload.get("confidence")

        extra_segments = []
        if llm_payload.get("needs_escalation"):
            extra_segments.append("Escalate for reviewer sign-off before filing.")

        explanation = " ".join(part.strip() for part in (summary, *extra_segments) if part)
        return ResultAnnotation(
            explanation=explanation,
            severity=severity,
            actions=tuple(ordered_actions),
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
            needs_escalation=bool(llm_payload.get("needs_escalation")),
            source="openai",
            raw_response=llm_payload,
        )


def _block_text(block: Any) -> str | None:
    message = getattr(block, "message", None)
    content = getattr(message, "content", None) if message is not None else getattr(block, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict):
            return first.get("text")
        return getattr(first, "text", None)
    return getattr(block, "text", None)


def _extract_json_payload(response: Any) -> Dict[str, Any] | None:
    """Normalise an OpenAI client response into a Python dictionary."""

    outputs = (
        getattr(response, "output", None)
        or getattr(response, "outputs", None)
        or getattr(response, "choices", None)
    )
    if not outputs:
        return None

    for block in outputs:
        text = _block_text(block)
        if not text:
            continue
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload

    LOGGER.warning("LLM response could not be parsed as JSON. Falling back to rules.")
    return None


@lru_cache(maxsize=1)
def _service() -> ResultAnnotationService:
    return ResultAnnotationService.from_env()


def annotate_result(result: ReconciliationResult) -> ResultAnnotation | None:
    """Return an explanation and severity for a non-matched result."""

    return _service().annotate(result)


def annotate_results(results: Iterable[ReconciliationResult]) -> dict[str, ResultAnnotation]:
    annotations = {}
    for result in results:
        annotation = annotate_result(result)
        if annotation is not None:
            annotations[result.id] = annotation
    return annotations
