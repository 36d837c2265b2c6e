"""
Entry validation and calculation-status gating for collaborators.

Validation never clamps: out-of-range values are reported field by field so
the caller can reject the submission.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from numbers import Real
from typing import List, Optional

from allostat.config import AllostatConfig
from allostat.schema import METRIC_MAX, METRIC_MIN, METRICS, Entry


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CalculationStatus:
    can_calculate: bool
    entries_needed: int
    progress_percentage: float
    message: str


def _is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and not math.isnan(value)


def validate_entry(candidate: Entry, today: Optional[date] = None) -> ValidationResult:
    """
    Check a candidate entry before it is persisted.

    Rules:
        - every metric is a number within [0, 10]
        - `date` is a valid calendar date and not after `today`
        - `timestamp`, when present, is a datetime
    """
    if today is None:
        today = date.today()

    errors: List[str] = []

    for metric in METRICS:
        value = getattr(candidate, metric.value, None)
        if not _is_number(value) or value < METRIC_MIN or value > METRIC_MAX:
            errors.append(
                f"{metric.value} must be between {METRIC_MIN:g} and {METRIC_MAX:g}"
            )

    entry_date = getattr(candidate, "date", None)
    if isinstance(entry_date, datetime):
        entry_date = entry_date.date()
    if not isinstance(entry_date, date):
        errors.append("Invalid date")
    elif entry_date > today:
        errors.append("Date cannot be in the future")

    timestamp = getattr(candidate, "timestamp", None)
    if timestamp is not None and not isinstance(timestamp, datetime):
        errors.append("Invalid timestamp")

    return ValidationResult(valid=not errors, errors=errors)


def calculation_status(
    entry_count: int,
    cfg: Optional[AllostatConfig] = None,
) -> CalculationStatus:
    """How close the history is to the minimum needed for scoring."""
    if cfg is None:
        cfg = AllostatConfig()
    required = cfg.windows.min_entries

    needed = max(0, required - entry_count)
    can_calculate = entry_count >= required
    progress = min(100.0, max(0, entry_count) / required * 100.0)

    if can_calculate:
        message = "Allostasis calculations active"
    elif needed == 1:
        message = "1 more entry needed for calculations"
    else:
        message = f"{needed} more entries needed for calculations"

    return CalculationStatus(
        can_calculate=can_calculate,
        entries_needed=needed,
        progress_percentage=progress,
        message=message,
    )
