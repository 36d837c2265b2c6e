"""
Normalization and data-preparation helpers.

Not needed for score correctness; used by consumers of the engine's output
(charts, summaries, imports with gaps). All functions are pure.
"""

import math
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd


FILL_METHODS = ("forward", "backward", "linear", "mean")


# ---------------------------------------------------------------------------
# Scalar transforms
# ---------------------------------------------------------------------------

def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def normalize_to_range(value: float, lower: float, upper: float) -> float:
    """Map value into [0, 1] relative to [lower, upper]; 0.5 for a degenerate range."""
    if upper == lower:
        return 0.5
    return clamp((value - lower) / (upper - lower), 0.0, 1.0)


def denormalize_from_range(normalized: float, lower: float, upper: float) -> float:
    return normalized * (upper - lower) + lower


def lerp(start: float, end: float, t: float) -> float:
    """Linear interpolation with t clamped to [0, 1]."""
    return start + (end - start) * clamp(t, 0.0, 1.0)


def inverse_lerp(value: float, start: float, end: float) -> float:
    if start == end:
        return 0.5
    return clamp((value - start) / (end - start), 0.0, 1.0)


def remap(
    value: float,
    in_min: float,
    in_max: float,
    out_min: float,
    out_max: float,
) -> float:
    """Linearly remap value from [in_min, in_max] onto [out_min, out_max]."""
    return lerp(out_min, out_max, inverse_lerp(value, in_min, in_max))


def round_to(value: float, decimals: int) -> float:
    return round(value, decimals)


def z_score(value: float, mean: float, std: float) -> float:
    if std == 0:
        return 0.0
    return (value - mean) / std


def log_scale(value: float, base: float = math.e) -> float:
    if value <= 0:
        return 0.0
    return math.log(value) / math.log(base)


def inv_log_scale(scaled: float, base: float = math.e) -> float:
    """Inverse of `log_scale` for positive inputs."""
    return math.pow(base, scaled)


def sigmoid(value: float, midpoint: float = 0.0, steepness: float = 1.0) -> float:
    return 1.0 / (1.0 + math.exp(-steepness * (value - midpoint)))


# ---------------------------------------------------------------------------
# Percentiles
# ---------------------------------------------------------------------------

def percentile_rank(value: float, dataset: Sequence[float]) -> float:
    """
    Percentile (0-100) of value within dataset.

    Ties count half, so a value equal to every point sits at 50.
    """
    arr = np.asarray(dataset, dtype=np.float64)
    if arr.size == 0:
        return 50.0
    below = np.count_nonzero(arr < value)
    equal = np.count_nonzero(arr == value)
    return float((below + equal / 2.0) / arr.size * 100.0)


def value_at_percentile(dataset: Sequence[float], percentile: float) -> float:
    """Value at a percentile (0-100), interpolating linearly between neighbours."""
    arr = np.asarray(dataset, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.percentile(arr, clamp(percentile, 0.0, 100.0)))


# ---------------------------------------------------------------------------
# Series transforms
# ---------------------------------------------------------------------------

def smooth_outliers(values: Sequence[float], threshold: float = 3.0) -> List[float]:
    """
    Clamp points further than `threshold` median absolute deviations from the
    median back onto that boundary. Series with no spread are returned as-is.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return []

    median = float(np.median(arr))
    mad = float(np.median(np.abs(arr - median)))
    if mad == 0.0:
        return arr.tolist()

    lower = median - threshold * mad
    upper = median + threshold * mad
    return np.clip(arr, lower, upper).tolist()


def moving_average(values: Sequence[float], window_size: int) -> List[float]:
    """Trailing moving average; leading points average whatever history exists."""
    if window_size <= 0:
        raise ValueError(f"window_size must be positive, got {window_size}")
    series = pd.Series(values, dtype=np.float64)
    if series.empty:
        return []
    return series.rolling(window_size, min_periods=1).mean().tolist()


def fill_missing_values(
    values: Sequence[Optional[float]],
    method: str = "linear",
) -> List[float]:
    """
    Fill None/NaN gaps in a series.

    Methods:
        forward   — carry the last seen value forward (leading gaps take the first value)
        backward  — carry the next value backward (trailing gaps take the last value)
        linear    — interpolate between neighbours; edges fall back to nearest value
        mean      — replace gaps with the mean of the present values

    A series with no values at all is filled with 0.0.
    """
    if method not in FILL_METHODS:
        raise ValueError(f"Unknown fill method: {method!r} (expected one of {FILL_METHODS})")

    series = pd.Series([np.nan if v is None else v for v in values], dtype=np.float64)
    if series.empty:
        return []
    if series.isna().all():
        return [0.0] * len(series)

    if method == "forward":
        filled = series.ffill().bfill()
    elif method == "backward":
        filled = series.bfill().ffill()
    elif method == "mean":
        filled = series.fillna(series.mean())
    else:
        filled = series.interpolate(method="linear", limit_direction="both")

    return filled.tolist()
