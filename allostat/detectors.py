"""
Conflict pattern detection: four acute and four chronic imbalance patterns.

Acute patterns read only the latest entry. Chronic patterns average rolling
windows over the full history. The detector is a pure function of the entry
list: the output is regenerated wholesale on every call and its order is
fixed (acute patterns first, then chronic, each in declaration order).
"""

from typing import Callable, List, Optional, Sequence, Tuple

import pandas as pd

from allostat.config import AllostatConfig, ConflictThresholds
from allostat.schema import (
    ConflictPattern,
    ConflictType,
    Entry,
    Metric,
    PatternId,
    Severity,
    entries_to_frame,
)
from allostat.stats import mean


LOAD = Metric.PHYSICAL_LOAD
RECOVERY = Metric.RECOVERY_FROM_LOAD
STRESS = Metric.PSYCHOLOGICAL_STRESS
SLEEP = Metric.SLEEP_RECOVERY
ENERGY = Metric.ENERGY_LEVEL


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------

def combined_severity(factor1: float, factor2: float, t: ConflictThresholds) -> Severity:
    """
    Severity from two contributing factors on the 0-10 scale.

    Factors where "low" is the trigger are passed inverted (10 - value) so
    that a larger sum always means a stronger conflict.
    """
    combined = factor1 + factor2
    if combined >= t.severity_high:
        return Severity.HIGH
    if combined >= t.severity_medium:
        return Severity.MEDIUM
    return Severity.LOW


# ---------------------------------------------------------------------------
# Acute rules (declarative)
# ---------------------------------------------------------------------------

# (pattern, affected metrics, trigger, severity factors, description)
AcuteRule = Tuple[
    PatternId,
    Tuple[Metric, ...],
    Callable[[Entry, ConflictThresholds], bool],
    Callable[[Entry], Tuple[float, float]],
    str,
]

ACUTE_RULES: Tuple[AcuteRule, ...] = (
    (
        PatternId.HIGH_LOAD_LOW_RECOVERY,
        (LOAD, RECOVERY),
        lambda e, t: e.physical_load > t.high_load and e.recovery_from_load < t.low_recovery,
        lambda e: (e.physical_load, 10 - e.recovery_from_load),
        "High physical load without adequate recovery - risk of overtraining",
    ),
    (
        PatternId.POOR_SLEEP_HIGH_STRESS,
        (STRESS, SLEEP),
        lambda e, t: e.psychological_stress > t.high_stress and e.sleep_recovery < t.low_sleep,
        lambda e: (e.psychological_stress, 10 - e.sleep_recovery),
        "High stress combined with poor sleep quality - compounding strain",
    ),
    (
        PatternId.OVERWORK,
        (LOAD, STRESS),
        lambda e, t: e.physical_load > t.high_load and e.psychological_stress > t.high_stress,
        lambda e: (e.physical_load, e.psychological_stress),
        "Overwork pattern: high physical and psychological demands simultaneously",
    ),
    (
        PatternId.FATIGUE_WITH_LOAD,
        (ENERGY, LOAD),
        lambda e, t: e.energy_level < t.low_energy and e.physical_load > t.high_load,
        lambda e: (10 - e.energy_level, e.physical_load),
        "Continuing high physical load despite low energy - burnout risk",
    ),
)


def detect_acute(entries: Sequence[Entry], cfg: AllostatConfig) -> List[ConflictPattern]:
    """Evaluate the acute rules against the latest entry only."""
    if not entries:
        return []

    t = cfg.conflicts
    latest = entries[-1]
    patterns: List[ConflictPattern] = []

    for pattern_id, affected, trigger, factors, description in ACUTE_RULES:
        if not trigger(latest, t):
            continue
        patterns.append(
            ConflictPattern(
                type=ConflictType.ACUTE,
                pattern=pattern_id,
                severity=combined_severity(*factors(latest), t),
                affected_metrics=affected,
                detected_at=latest.date,
                description=description,
            )
        )

    return patterns


# ---------------------------------------------------------------------------
# Chronic rules
# ---------------------------------------------------------------------------

def _window_mean(df: pd.DataFrame, metric: Metric, days: int) -> float:
    return mean(df[metric.value].tail(days).tolist())


def _chronic(
    pattern_id: PatternId,
    severity: Severity,
    affected: Tuple[Metric, ...],
    detected_at,
    duration: int,
    description: str,
) -> ConflictPattern:
    return ConflictPattern(
        type=ConflictType.CHRONIC,
        pattern=pattern_id,
        severity=severity,
        affected_metrics=affected,
        detected_at=detected_at,
        description=description,
        duration=duration,
    )


def detect_chronic(entries: Sequence[Entry], cfg: AllostatConfig) -> List[ConflictPattern]:
    """
    Evaluate the chronic rules over trailing windows of the history.

    Nothing fires until the history reaches the shortest chronic window;
    brain fog additionally needs its full 60-entry window.

    Escalation to high severity uses a single tighter threshold per pattern;
    brain fog is always high.
    """
    t = cfg.conflicts
    if len(entries) < t.chronic_min_entries:
        return []

    df = entries_to_frame(entries)
    detected_at = entries[-1].date
    patterns: List[ConflictPattern] = []

    if len(df) >= t.chronic_stress_days:
        avg_stress = _window_mean(df, STRESS, t.chronic_stress_days)
        if avg_stress > t.chronic_stress:
            patterns.append(_chronic(
                PatternId.PROLONGED_STRESS,
                Severity.HIGH if avg_stress > t.chronic_stress_severe else Severity.MEDIUM,
                (STRESS,),
                detected_at,
                t.chronic_stress_days,
                "Sustained elevated stress for 2+ weeks - chronic activation",
            ))

    if len(df) >= t.chronic_sleep_days:
        avg_sleep = _window_mean(df, SLEEP, t.chronic_sleep_days)
        if avg_sleep < t.chronic_sleep:
            patterns.append(_chronic(
                PatternId.CHRONIC_SLEEP_DEFICIT,
                Severity.HIGH if avg_sleep < t.chronic_sleep_severe else Severity.MEDIUM,
                (SLEEP,),
                detected_at,
                t.chronic_sleep_days,
                "Sustained poor sleep quality for 2+ weeks - recovery impaired",
            ))

    if len(df) >= t.chronic_fatigue_days:
        avg_energy = _window_mean(df, ENERGY, t.chronic_fatigue_days)
        if avg_energy < t.chronic_fatigue:
            patterns.append(_chronic(
                PatternId.PROLONGED_FATIGUE,
                Severity.HIGH if avg_energy < t.chronic_fatigue_severe else Severity.MEDIUM,
                (ENERGY,),
                detected_at,
                t.chronic_fatigue_days,
                "Sustained low energy for 2+ weeks - chronic fatigue pattern",
            ))

    if len(df) >= t.brain_fog_days:
        fog_energy = _window_mean(df, ENERGY, t.brain_fog_days)
        fog_stress = _window_mean(df, STRESS, t.brain_fog_days)
        if fog_energy < t.brain_fog_energy and fog_stress > t.brain_fog_stress:
            patterns.append(_chronic(
                PatternId.BRAIN_FOG,
                Severity.HIGH,
                (ENERGY, STRESS),
                detected_at,
                t.brain_fog_days,
                "Persistent brain fog: 60+ days of low energy with high stress",
            ))

    return patterns


# ---------------------------------------------------------------------------
# Full pass
# ---------------------------------------------------------------------------

def detect_conflict_patterns(
    entries: Sequence[Entry],
    cfg: Optional[AllostatConfig] = None,
) -> List[ConflictPattern]:
    """
    Detect every conflict pattern for a date-ordered entry history.

    Returns acute patterns (latest entry) followed by chronic patterns
    (rolling windows). Empty history yields an empty list.
    """
    if cfg is None:
        cfg = AllostatConfig()
    if not entries:
        return []
    return detect_acute(entries, cfg) + detect_chronic(entries, cfg)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def filter_by_type(
    conflicts: Sequence[ConflictPattern],
    conflict_type: ConflictType,
) -> List[ConflictPattern]:
    return [c for c in conflicts if c.type == conflict_type]


def filter_by_severity(
    conflicts: Sequence[ConflictPattern],
    severity: Severity,
) -> List[ConflictPattern]:
    return [c for c in conflicts if c.severity == severity]


def conflicts_for_metric(
    conflicts: Sequence[ConflictPattern],
    metric: Metric,
) -> List[ConflictPattern]:
    return [c for c in conflicts if metric in c.affected_metrics]


def most_severe(conflicts: Sequence[ConflictPattern]) -> Optional[ConflictPattern]:
    """Highest-severity conflict; the earliest one wins ties."""
    best: Optional[ConflictPattern] = None
    for conflict in conflicts:
        if best is None or conflict.severity.rank > best.severity.rank:
            best = conflict
    return best
