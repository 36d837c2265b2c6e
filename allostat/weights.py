"""
Adaptive metric weights.

Each non-anchor metric gets three components:

    impact     w_i = (|rho(metric, energy)| + 1) / 2      ∈ [0.5, 1]
    volatility w_v = min(1, std(metric) / 3)              ∈ [0, 1]
    imbalance  w_b = 1 + 0.5 * active conflicts naming it ≥ 1

combined = w_i * w_v * w_b. The anchor (energy) is fixed at 1 on every
component. The five combined weights are then rescaled to sum to 1.0.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from allostat.config import AllostatConfig
from allostat.detectors import conflicts_for_metric, detect_conflict_patterns
from allostat.exceptions import InsufficientDataError
from allostat.logging_config import get_logger
from allostat.schema import (
    METRICS,
    ConflictPattern,
    DataWindow,
    Entry,
    Metric,
    MetricWeight,
    WeightState,
    entries_to_frame,
)
from allostat.stats import spearman, std_dev

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def impact_weight(rho: float) -> float:
    """Rescale correlation magnitude onto [0.5, 1] so no metric drops to zero impact."""
    return (abs(rho) + 1.0) / 2.0


def volatility_weight(std: float, cfg: AllostatConfig) -> float:
    wp = cfg.weights
    return min(wp.volatility_cap, std / wp.volatility_divisor)


def imbalance_weight(active_conflicts: int, cfg: AllostatConfig) -> float:
    return 1.0 + cfg.weights.imbalance_step * active_conflicts


def normalize_weights(combined: Mapping[Metric, float], anchor: Metric) -> Dict[Metric, float]:
    """Rescale combined weights to sum to 1.0 (all mass on the anchor if the total is 0)."""
    total = sum(combined.values())
    if total <= 0.0:
        return {m: (1.0 if m == anchor else 0.0) for m in METRICS}
    return {m: combined[m] / total for m in METRICS}


# ---------------------------------------------------------------------------
# Weight state
# ---------------------------------------------------------------------------

def compute_metric_weights(
    entries: Sequence[Entry],
    cfg: Optional[AllostatConfig] = None,
    conflicts: Optional[Sequence[ConflictPattern]] = None,
) -> WeightState:
    """
    Compute adaptive weights over a date-ordered window of entries.

    Args:
        entries: the window (at least `cfg.windows.min_entries` entries)
        cfg: engine configuration
        conflicts: active conflict patterns; detected over `entries` when omitted

    Raises:
        InsufficientDataError: if the window is smaller than the minimum.
    """
    if cfg is None:
        cfg = AllostatConfig()

    required = cfg.windows.min_entries
    if len(entries) < required:
        raise InsufficientDataError(required, len(entries))

    if conflicts is None:
        conflicts = detect_conflict_patterns(entries, cfg)

    anchor = cfg.weights.anchor
    df = entries_to_frame(entries)
    anchor_values = df[anchor.value].tolist()

    weights: Dict[Metric, MetricWeight] = {}
    for metric in METRICS:
        if metric == anchor:
            weights[metric] = MetricWeight(
                impact_weight=1.0,
                volatility_weight=1.0,
                imbalance_weight=1.0,
                combined_weight=1.0,
                correlation=1.0,
                std_dev=std_dev(anchor_values),
            )
            continue

        values = df[metric.value].tolist()
        rho = spearman(values, anchor_values)
        std = std_dev(values)
        active = conflicts_for_metric(conflicts, metric)

        w_i = impact_weight(rho)
        w_v = volatility_weight(std, cfg)
        w_b = imbalance_weight(len(active), cfg)

        weights[metric] = MetricWeight(
            impact_weight=w_i,
            volatility_weight=w_v,
            imbalance_weight=w_b,
            combined_weight=w_i * w_v * w_b,
            correlation=rho,
            std_dev=std,
            active_conflicts=tuple(c.pattern.value for c in active),
        )

    normalized = normalize_weights(
        {m: w.combined_weight for m, w in weights.items()},
        anchor,
    )

    logger.debug(
        "Computed weights over %d entries (%s to %s)",
        len(entries), entries[0].date, entries[-1].date,
    )

    return WeightState(
        weights=weights,
        normalized_weights=normalized,
        data_window=DataWindow(
            start_date=entries[0].date,
            end_date=entries[-1].date,
            entry_count=len(entries),
        ),
    )


# ---------------------------------------------------------------------------
# Ranking and change
# ---------------------------------------------------------------------------

def metrics_by_weight(state: WeightState) -> List[Dict[str, object]]:
    """
    Metrics sorted by normalized weight, heaviest first.

    Each item: {"metric", "weight", "percentage", "rank"}. Ties keep the
    fixed metric order.
    """
    ordered = sorted(
        METRICS,
        key=lambda m: state.normalized_weights[m],
        reverse=True,
    )
    return [
        {
            "metric": m,
            "weight": state.normalized_weights[m],
            "percentage": state.normalized_weights[m] * 100.0,
            "rank": i + 1,
        }
        for i, m in enumerate(ordered)
    ]


def top_metric(state: WeightState) -> Tuple[Metric, float]:
    """(metric, normalized weight) of the heaviest metric."""
    top = metrics_by_weight(state)[0]
    return top["metric"], top["weight"]


def weight_changes(
    current: WeightState,
    previous: WeightState,
) -> Dict[Metric, Dict[str, float]]:
    """Absolute and percent change of every normalized weight vs a previous state."""
    changes: Dict[Metric, Dict[str, float]] = {}
    for m in METRICS:
        now = current.normalized_weights[m]
        before = previous.normalized_weights[m]
        change = now - before
        changes[m] = {
            "change": change,
            "percent_change": (change / before * 100.0) if before > 0 else 0.0,
        }
    return changes
