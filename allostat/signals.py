"""
Signal smoothing: exponential moving averages, dual short/long tracking,
crossovers, and trend direction.

Formula:  EMA_t = alpha * value_t + (1 - alpha) * EMA_(t-1),  alpha = 2 / (N + 1)

The first value of any series seeds the EMA. Online updates (`DualEMA`) and
offline recomputation (`ema_series`, `dual_ema`) share `ema()`, so both give
identical results for the same input sequence.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from allostat.stats import mean


CROSS_ABOVE = "cross_above"
CROSS_BELOW = "cross_below"

TREND_UP = "up"
TREND_DOWN = "down"
TREND_FLAT = "flat"


# ---------------------------------------------------------------------------
# EMA primitives
# ---------------------------------------------------------------------------

def alpha(period: float) -> float:
    """Smoothing factor for an N-period EMA."""
    if period <= 0:
        raise ValueError(f"Period must be positive, got {period}")
    return 2.0 / (period + 1)


def ema(current: float, previous: float, alpha: float) -> float:
    """One EMA step."""
    if alpha < 0 or alpha > 1:
        raise ValueError(f"Alpha must be between 0 and 1, got {alpha}")
    return alpha * current + (1.0 - alpha) * previous


def ema_series(values: Sequence[float], alpha: float) -> List[float]:
    """EMA at every point of a series, seeded with the first value."""
    out: List[float] = []
    for value in values:
        out.append(float(value) if not out else ema(value, out[-1], alpha))
    return out


def initialize_ema(values: Sequence[float], alpha: float) -> float:
    """Final EMA after folding the whole series."""
    if len(values) == 0:
        raise ValueError("Cannot initialize EMA with empty series")
    return ema_series(values, alpha)[-1]


# ---------------------------------------------------------------------------
# Online dual tracker
# ---------------------------------------------------------------------------

@dataclass
class DualEMA:
    """
    Short- and long-period EMAs maintained in parallel over one raw series.

    Seeds both on the first value; after that each `update` applies one EMA
    step per period.
    """

    short_alpha: float
    long_alpha: float
    short: Optional[float] = None
    long: Optional[float] = None
    count: int = 0

    @classmethod
    def from_periods(cls, short_period: int = 7, long_period: int = 28) -> "DualEMA":
        return cls(short_alpha=alpha(short_period), long_alpha=alpha(long_period))

    def step(
        self,
        value: float,
        previous: Optional[Tuple[float, float]],
    ) -> Tuple[float, float]:
        """Stateless single step from a previous (short, long) pair, or seed."""
        if previous is None:
            return float(value), float(value)
        prev_short, prev_long = previous
        return (
            ema(value, prev_short, self.short_alpha),
            ema(value, prev_long, self.long_alpha),
        )

    def update(self, value: float) -> Tuple[float, float]:
        previous = None if self.short is None else (self.short, self.long)
        self.short, self.long = self.step(value, previous)
        self.count += 1
        return self.short, self.long

    @property
    def convergence(self) -> float:
        if self.short is None or self.long is None:
            return 0.0
        return self.short - self.long


# ---------------------------------------------------------------------------
# Offline dual series + crossovers
# ---------------------------------------------------------------------------

def dual_ema(
    values: Sequence[float],
    short_period: int = 7,
    long_period: int = 28,
) -> pd.DataFrame:
    """
    Compute short and long EMAs over a series and flag crossovers.

    Returns a DataFrame with columns:
        value, ema_short, ema_long, convergence, crossover

    `crossover` is "cross_above" where the short EMA moves from <= long to
    > long, "cross_below" where it moves from >= long to < long, else None.
    """
    df = pd.DataFrame({"value": pd.Series(values, dtype=np.float64)})
    df["ema_short"] = ema_series(df["value"].tolist(), alpha(short_period))
    df["ema_long"] = ema_series(df["value"].tolist(), alpha(long_period))
    df["convergence"] = df["ema_short"] - df["ema_long"]

    prev_short = df["ema_short"].shift(1)
    prev_long = df["ema_long"].shift(1)
    above = (prev_short <= prev_long) & (df["ema_short"] > df["ema_long"])
    below = (prev_short >= prev_long) & (df["ema_short"] < df["ema_long"])

    df["crossover"] = None
    df.loc[above, "crossover"] = CROSS_ABOVE
    df.loc[below, "crossover"] = CROSS_BELOW
    return df


def smooth_time_series(
    dates: Sequence,
    values: Sequence[float],
    period: int = 7,
) -> pd.DataFrame:
    """
    EMA-smooth a dated series.

    Returns a DataFrame with columns date, value, ema (one row per input
    point, input order kept). Empty input yields an empty frame.
    """
    if len(dates) != len(values):
        raise ValueError("Dates and values must have the same length")
    df = pd.DataFrame({
        "date": list(dates),
        "value": pd.Series(values, dtype=np.float64),
    })
    df["ema"] = ema_series(df["value"].tolist(), alpha(period))
    return df


def find_crossovers(
    short: Sequence[float],
    long: Sequence[float],
) -> List[Tuple[int, str]]:
    """(index, kind) pairs where the short series crosses the long one."""
    if len(short) != len(long):
        raise ValueError("Short and long series must have the same length")
    found: List[Tuple[int, str]] = []
    for i in range(1, len(short)):
        if short[i - 1] <= long[i - 1] and short[i] > long[i]:
            found.append((i, CROSS_ABOVE))
        elif short[i - 1] >= long[i - 1] and short[i] < long[i]:
            found.append((i, CROSS_BELOW))
    return found


# ---------------------------------------------------------------------------
# Trend helpers
# ---------------------------------------------------------------------------

def determine_trend(current: float, previous: float, threshold: float = 0.02) -> str:
    """Label a change as up/down, or flat when smaller than `threshold`."""
    change = current - previous
    if abs(change) < threshold:
        return TREND_FLAT
    return TREND_UP if change > 0 else TREND_DOWN


def ema_convergence(short_ema: float, long_ema: float) -> float:
    return short_ema - long_ema


def ema_rate(current: float, previous: float) -> float:
    """Percent change between consecutive EMA values; 0.0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100.0


def predict_next(recent: Sequence[float]) -> Optional[float]:
    """Naive linear extrapolation from the last two values."""
    if len(recent) < 2:
        return None
    return recent[-1] + (recent[-1] - recent[-2])


# ---------------------------------------------------------------------------
# Alternative averages
# ---------------------------------------------------------------------------

def sma(values: Sequence[float], period: Optional[int] = None) -> float:
    """Simple average of the trailing `period` values (all values if omitted)."""
    if len(values) == 0:
        return 0.0
    n = period if period and period < len(values) else len(values)
    return mean(list(values)[-n:])


def weighted_ma(values: Sequence[float], weights: Sequence[float]) -> float:
    if len(values) != len(weights):
        raise ValueError("Values and weights must have the same length")
    if abs(sum(weights) - 1.0) > 0.001:
        raise ValueError(f"Weights must sum to 1.0, got {sum(weights)}")
    return float(np.dot(np.asarray(values, dtype=np.float64), np.asarray(weights, dtype=np.float64)))
