"""Record matching between the purchase and sales registers."""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from .checks import AMOUNT_TOLERANCE, evaluate_matches
from .models import FinancialRecord, MatchKey, ReconciliationResult
from .normalization import generate_match_key

LOGGER = logging.getLogger(__name__)


class MatchResult:
    """Ordered pairing of purchase and sales records by match key.

    Keys appear in purchase order first, followed by the keys that only
    exist on the sales side in sales order.
    """

    def __init__(self) -> None:
        self.pairs: Dict[MatchKey, Tuple[FinancialRecord |
                                         None, FinancialRecord | None]] = {}

    def add_pair(
        self,
        key: MatchKey,
        purchase: FinancialRecord | None,
        sales: FinancialRecord | None,
    ) -> None:
        self.pairs[key] = (purchase, sales)

    def items(self):
        return self.pairs.items()

    def __len__(self) -> int:
        return len(self.pairs)


def _index_by_key(records: Iterable[FinancialRecord], *, label: str) -> Dict[MatchKey, FinancialRecord]:
    index: Dict[MatchKey, FinancialRecord] = {}
    for record in records:
        key = generate_match_key(record)
        previous = index.get(key)
        if previous is not None:
            LOGGER.warning(
                "Duplicate %s key %s: record %s replaces %s",
                label, key, record.id, previous.id,
            )
        index[key] = record
    return index


def match_records(purchase: Iterable[FinancialRecord], sales: Iterable[FinancialRecord]) -> MatchResult:
    result = MatchResult()

    purchase_map = _index_by_key(purchase, label="purchase")
    sales_map = _index_by_key(sales, label="sales")

    for key, purchase_record in purchase_map.items():
        result.add_pair(key, purchase_record, sales_map.get(key))

    for key, sales_record in sales_map.items():
        if key not in purchase_map:
            result.add_pair(key, None, sales_record)

    return result


def reconcile_datasets(
    purchase_records: Iterable[FinancialRecord],
    sales_records: Iterable[FinancialRecord],
    *,
    tolerance: Decimal | float = AMOUNT_TOLERANCE,
) -> list[ReconciliationResult]:
    """Classify every distinct match key found in either register."""

    matches = match_records(purchase_records, sales_records)
    return evaluate_matches(matches.items(), tolerance=tolerance)


def find_duplicate_keys(records: Iterable[FinancialRecord]) -> dict[MatchKey, list[FinancialRecord]]:
    """Return keys shared by more than one record; only the last one is reconciled."""

    grouped: Dict[MatchKey, List[FinancialRecord]] = defaultdict(list)
    for record in records:
        grouped[generate_match_key(record)].append(record)
    return {key: group for key, group in grouped.items() if len(group) > 1}
