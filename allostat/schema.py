"""
Value objects passed between engine stages.

Entries are produced by the storage collaborator and are read-only here.
WeightState, ScoreEntry and ConflictPattern are created by the engine and
never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

import pandas as pd


def _new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class Metric(str, Enum):
    """The five daily check-in metrics, all on a 0-10 scale."""

    SLEEP_RECOVERY = "sleep_recovery"
    PHYSICAL_LOAD = "physical_load"
    RECOVERY_FROM_LOAD = "recovery_from_load"
    PSYCHOLOGICAL_STRESS = "psychological_stress"
    ENERGY_LEVEL = "energy_level"

    @property
    def good_when_high(self) -> bool:
        """True for metrics whose low values indicate strain."""
        return self in _GOOD_WHEN_HIGH

    @property
    def camel_name(self) -> str:
        head, *rest = self.value.split("_")
        return head + "".join(part.title() for part in rest)

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_GOOD_WHEN_HIGH = frozenset({
    Metric.SLEEP_RECOVERY,
    Metric.RECOVERY_FROM_LOAD,
    Metric.ENERGY_LEVEL,
})

_DISPLAY_NAMES = {
    Metric.SLEEP_RECOVERY: "Sleep Recovery",
    Metric.PHYSICAL_LOAD: "Physical Load",
    Metric.RECOVERY_FROM_LOAD: "Recovery from Load",
    Metric.PSYCHOLOGICAL_STRESS: "Psychological Stress",
    Metric.ENERGY_LEVEL: "Energy Level",
}

_DESCRIPTIONS = {
    Metric.SLEEP_RECOVERY: "How well you slept last night",
    Metric.PHYSICAL_LOAD: "Physical activity and demands today",
    Metric.RECOVERY_FROM_LOAD: "How recovered you feel from physical demands",
    Metric.PSYCHOLOGICAL_STRESS: "Mental and emotional stress level",
    Metric.ENERGY_LEVEL: "Current energy and vitality (anchor metric)",
}

METRICS: Tuple[Metric, ...] = tuple(Metric)

METRIC_MIN = 0.0
METRIC_MAX = 10.0


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Entry:
    """One daily observation of the five metrics."""

    date: date
    sleep_recovery: float
    physical_load: float
    recovery_from_load: float
    psychological_stress: float
    energy_level: float
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None
    id: str = field(default_factory=_new_id)

    def value(self, metric: Metric) -> float:
        return getattr(self, metric.value)

    def values(self) -> Dict[Metric, float]:
        return {m: self.value(m) for m in METRICS}

    @property
    def sort_key(self) -> Tuple:
        # Same-day entries fall back to capture time, then id for stability
        ts = self.timestamp.timestamp() if isinstance(self.timestamp, datetime) else 0.0
        return (self.date, ts, self.id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Entry":
        """
        Build an entry from a JSON-style mapping.

        Accepts snake_case keys or the camelCase keys used by exported data.
        Dates may be `date`/`datetime` objects or ISO-8601 strings. Values are
        passed through unchecked; run `validate_entry` before scoring.
        """
        kwargs: Dict[str, Any] = {}
        for metric in METRICS:
            if metric.value in data:
                kwargs[metric.value] = data[metric.value]
            elif metric.camel_name in data:
                kwargs[metric.value] = data[metric.camel_name]
            else:
                raise ValueError(f"Missing required metric: {metric.value}")

        if "date" not in data:
            raise ValueError("Missing required field: date")
        kwargs["date"] = _parse_date(data["date"])

        if data.get("timestamp") is not None:
            kwargs["timestamp"] = _parse_datetime(data["timestamp"])
        if data.get("notes") is not None:
            kwargs["notes"] = str(data["notes"])
        if data.get("id") is not None:
            kwargs["id"] = str(data["id"])

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "date": self.date.isoformat()}
        for metric in METRICS:
            out[metric.value] = self.value(metric)
        out["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        out["notes"] = self.notes
        return out


def _parse_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).date()
        except ValueError:
            # Left as-is so validation can report it
            return value
    return value


def _parse_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricWeight:
    """Weight components for one metric plus the diagnostics behind them."""

    impact_weight: float
    volatility_weight: float
    imbalance_weight: float
    combined_weight: float
    correlation: float
    std_dev: float
    active_conflicts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DataWindow:
    """The span of entries a WeightState was computed from."""

    start_date: date
    end_date: date
    entry_count: int


@dataclass(frozen=True)
class WeightState:
    """Per-metric weights for one computation window."""

    weights: Dict[Metric, MetricWeight]
    normalized_weights: Dict[Metric, float]
    data_window: DataWindow
    calculated_at: datetime = field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreEntry:
    """sALI result for a single entry, chained to its predecessor via the EMAs."""

    entry_id: str
    date: date
    raw_score: float
    ema_short: float
    ema_long: float
    components: Dict[Metric, float]
    weights_snapshot: Dict[Metric, float]
    id: str = field(default_factory=_new_id)

    def contribution(self, metric: Metric) -> float:
        return self.components[metric] * self.weights_snapshot[metric]


# ---------------------------------------------------------------------------
# Conflict patterns
# ---------------------------------------------------------------------------

class ConflictType(str, Enum):
    ACUTE = "acute"
    CHRONIC = "chronic"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


class PatternId(str, Enum):
    # Acute: latest entry
    HIGH_LOAD_LOW_RECOVERY = "high_load_low_recovery"
    POOR_SLEEP_HIGH_STRESS = "poor_sleep_high_stress"
    OVERWORK = "overwork"
    FATIGUE_WITH_LOAD = "fatigue_with_load"
    # Chronic: rolling windows
    PROLONGED_STRESS = "prolonged_stress"
    CHRONIC_SLEEP_DEFICIT = "chronic_sleep_deficit"
    PROLONGED_FATIGUE = "prolonged_fatigue"
    BRAIN_FOG = "brain_fog"


@dataclass(frozen=True)
class ConflictPattern:
    """A detected acute or chronic imbalance."""

    type: ConflictType
    pattern: PatternId
    severity: Severity
    affected_metrics: Tuple[Metric, ...]
    detected_at: date
    description: str
    duration: Optional[int] = None
    id: str = field(default_factory=_new_id)

    def content(self) -> Tuple:
        """Everything except the instance id."""
        return (
            self.type,
            self.pattern,
            self.severity,
            self.affected_metrics,
            self.detected_at,
            self.description,
            self.duration,
        )


# ---------------------------------------------------------------------------
# Tabular view
# ---------------------------------------------------------------------------

def entries_to_frame(entries: Sequence[Entry]) -> pd.DataFrame:
    """One row per entry (input order kept), one column per metric plus id/date."""
    rows = [
        {"id": e.id, "date": e.date, **{m.value: float(e.value(m)) for m in METRICS}}
        for e in entries
    ]
    columns = ["id", "date"] + [m.value for m in METRICS]
    return pd.DataFrame(rows, columns=columns)
