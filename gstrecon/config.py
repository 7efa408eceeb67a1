"""Runtime configuration read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class ReconConfig:
    """Defaults for a reconciliation run; CLI flags take precedence."""

    tolerance: Decimal
    out_dir: Path
    log_level: str

    @classmethod
    def from_env(cls) -> "ReconConfig":
        raw_tolerance = os.getenv("GSTRECON_TOLERANCE", "1")
        try:
            tolerance = Decimal(raw_tolerance)
        except InvalidOperation as exc:
            raise ValueError(f"GSTRECON_TOLERANCE must be a number, got {raw_tolerance!r}") from exc
        if not tolerance.is_finite():
            raise ValueError(f"GSTRECON_TOLERANCE must be a finite number, got {raw_tolerance!r}")
        out_dir = Path(os.getenv("GSTRECON_OUT_DIR", "out"))
        log_level = os.getenv("GSTRECON_LOG_LEVEL", "WARNING").upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(
                f"GSTRECON_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            )
        return cls(tolerance=tolerance, out_dir=out_dir, log_level=log_level)
