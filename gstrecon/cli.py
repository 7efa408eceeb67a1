from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from .config import LOG_LEVELS, ReconConfig
from .normalization import NormalizationError
from .pipeline import run_reconciliation
from .report import format_currency

STATUS_CHOICES = ("all", "matched", "mismatched", "missing_in_purchase", "missing_in_sales")


def _amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}")
    return amount


def build_parser(config: ReconConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GST purchase vs sales register reconciliation")
    parser.add_argument(
        "--log-level",
        default=config.log_level,
        choices=LOG_LEVELS,
        type=str.upper,
        help="Logging verbosity.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Execute the reconciliation workflow")
    run_parser.add_argument(
        "--purchase-file",
        type=Path,
        default=Path("data/purchase-register.csv"),
        help="Path to the purchase register CSV file.",
    )
    run_parser.add_argument(
        "--sales-file",
        type=Path,
        default=Path("data/sales-register.csv"),
        help="Path to the sales register CSV file.",
    )
    run_parser.add_argument(
        "--out-dir",
        type=Path,
        default=config.out_dir,
        help="Directory that will receive the reconciliation reports.",
    )
    run_parser.add_argument(
        "--tolerance",
        type=_amount,
        default=config.tolerance,
        help="Absolute amount tolerance before a difference is reported.",
    )
    run_parser.add_argument(
        "--annotate",
        action="store_true",
        help="Attach explanations to exceptions (uses OpenAI when an API key is set).",
    )
    run_parser.add_argument(
        "--status",
        choices=STATUS_CHOICES,
        default="all",
        help="Only export results with this status.",
    )
    run_parser.add_argument(
        "--search",
        default=None,
        help="Only export results whose invoice number, party name or GSTIN contains this text.",
    )
    run_parser.add_argument("--min-amount", type=_amount, default=None,
                            help="Lowest invoice total to export.")
    run_parser.add_argument("--max-amount", type=_amount, default=None,
                            help="Highest invoice total to export.")

    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        config = ReconConfig.from_env()
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    parser = build_parser(config)
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        filters = {
            "query": args.search,
            "status": args.status,
            "min_amount": args.min_amount,
            "max_amount": args.max_amount,
        }
        try:
            summary = run_reconciliation(
                purchase_path=args.purchase_file,
                sales_path=args.sales_file,
                out_dir=args.out_dir,
                tolerance=args.tolerance,
                annotate=args.annotate,
                filters=filters,
            )
        except (FileNotFoundError, NormalizationError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2

        print(
            f"{summary.total_records} invoices, {summary.match_percentage}% matched, "
            f"difference {format_currency(summary.total_difference_amount)}. "
            f"Reports written to {args.out_dir}"
        )
        return 0

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover - exercised via CLI entry point
    raise SystemExit(main())
