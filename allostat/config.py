"""
Centralized configuration for all thresholds, periods, and window parameters.

Every tunable constant lives here. The conflict thresholds and window lengths
are domain-tuned values; they are kept as named configuration so they can be
reviewed and overridden without touching detection logic.
"""

from dataclasses import dataclass, field

from allostat.schema import Metric


# ---------------------------------------------------------------------------
# Data windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WindowParams:
    """Minimum-data gate and the trailing window used for weight adaptation."""

    min_entries: int = 7
    weight_window: int = 28

    def __post_init__(self):
        if self.min_entries < 2:
            raise ValueError(f"min_entries must be at least 2, got {self.min_entries}")
        if self.weight_window < self.min_entries:
            raise ValueError(
                f"weight_window ({self.weight_window}) must be >= "
                f"min_entries ({self.min_entries})"
            )


# ---------------------------------------------------------------------------
# EMA smoothing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SmoothingParams:
    """Periods for the dual EMA and the minimum change that counts as a trend."""

    short_period: int = 7
    long_period: int = 28
    trend_threshold: float = 0.02

    @property
    def short_alpha(self) -> float:
        return 2.0 / (self.short_period + 1)

    @property
    def long_alpha(self) -> float:
        return 2.0 / (self.long_period + 1)


# ---------------------------------------------------------------------------
# Adaptive weights
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeightParams:
    """
    Parameters for the three weight components.

    w_v = min(volatility_cap, std / volatility_divisor)
    w_b = 1 + imbalance_step * active_conflicts
    """

    volatility_divisor: float = 3.0
    volatility_cap: float = 1.0
    imbalance_step: float = 0.5
    anchor: Metric = Metric.ENERGY_LEVEL


# ---------------------------------------------------------------------------
# Conflict detection thresholds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConflictThresholds:
    """Thresholds for the eight conflict patterns (all on the 0-10 scale)."""

    # Acute patterns (latest entry)
    high_load: float = 7.0
    low_recovery: float = 4.0
    high_stress: float = 7.0
    low_energy: float = 4.0
    low_sleep: float = 4.0

    # Acute severity: sum of the two contributing factors
    severity_high: float = 16.0
    severity_medium: float = 13.0

    # Chronic patterns (rolling windows)
    chronic_stress: float = 6.0
    chronic_stress_severe: float = 8.0
    chronic_stress_days: int = 14

    chronic_sleep: float = 6.0
    chronic_sleep_severe: float = 4.0
    chronic_sleep_days: int = 14

    chronic_fatigue: float = 5.0
    chronic_fatigue_severe: float = 3.0
    chronic_fatigue_days: int = 14

    brain_fog_energy: float = 5.0
    brain_fog_stress: float = 7.0
    brain_fog_days: int = 60

    @property
    def chronic_min_entries(self) -> int:
        """History length before any chronic pattern is evaluated."""
        return min(
            self.chronic_stress_days,
            self.chronic_sleep_days,
            self.chronic_fatigue_days,
        )


# ---------------------------------------------------------------------------
# Score interpretation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreLevels:
    """Upper bounds (inclusive) for each sALI level; above `high` is critical."""

    optimal: float = 0.2
    good: float = 0.4
    moderate: float = 0.6
    high: float = 0.8

    # Raw score change below this is reported as stable
    stable_magnitude: float = 0.05

    def __post_init__(self):
        bounds = (self.optimal, self.good, self.moderate, self.high)
        if list(bounds) != sorted(bounds):
            raise ValueError(f"Score level bounds must be ascending, got {bounds}")


# ---------------------------------------------------------------------------
# Top-level config aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AllostatConfig:
    """Complete engine configuration. Pass to the pipeline to override defaults."""

    windows: WindowParams = field(default_factory=WindowParams)
    smoothing: SmoothingParams = field(default_factory=SmoothingParams)
    weights: WeightParams = field(default_factory=WeightParams)
    conflicts: ConflictThresholds = field(default_factory=ConflictThresholds)
    levels: ScoreLevels = field(default_factory=ScoreLevels)
