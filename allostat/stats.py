"""
Statistics primitives: rank correlation, product-moment correlation,
significance, mean and population standard deviation.

Degenerate input (a single point, or a series with no variation) is an
expected steady state for self-reported data, so these return a neutral 0
instead of NaN or raising.
"""

from typing import Sequence

import numpy as np
import pandas as pd
from scipy import stats as sp_stats


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def _check_pair(x: np.ndarray, y: np.ndarray, name: str) -> None:
    if x.size == 0 or y.size == 0:
        raise ValueError(f"Cannot calculate {name} correlation on empty arrays")
    if x.size != y.size:
        raise ValueError(
            f"Arrays must have the same length for correlation "
            f"(got {x.size} and {y.size})"
        )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0.0 for empty input."""
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation (ddof=0); 0.0 for empty or singleton input."""
    arr = _as_array(values)
    if arr.size < 2:
        return 0.0
    return float(np.std(arr, ddof=0))


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def rank_average(values: Sequence[float]) -> np.ndarray:
    """1-indexed ranks; tied values share the average of their positions."""
    return pd.Series(_as_array(values)).rank(method="average").to_numpy(dtype=np.float64)


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------

def spearman(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Spearman rank correlation coefficient in [-1, 1].

    Formula:  rho = 1 - 6 * sum(d^2) / (n * (n^2 - 1))
    where d is the per-position difference in ranks.

    Raises ValueError for empty or unequal-length input. Returns 0.0 when
    n == 1 or either series is constant.
    """
    xa = _as_array(x)
    ya = _as_array(y)
    _check_pair(xa, ya, "Spearman")

    n = xa.size
    if n == 1:
        return 0.0
    if np.unique(xa).size == 1 or np.unique(ya).size == 1:
        return 0.0

    d = rank_average(xa) - rank_average(ya)
    sum_d2 = float(np.dot(d, d))
    return 1.0 - (6.0 * sum_d2) / (n * (n * n - 1))


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson product-moment correlation; 0.0 when either series has no variance."""
    xa = _as_array(x)
    ya = _as_array(y)
    _check_pair(xa, ya, "Pearson")

    if xa.size == 1:
        return 0.0

    dx = xa - xa.mean()
    dy = ya - ya.mean()
    var_x = np.dot(dx, dx)
    var_y = np.dot(dy, dy)
    if var_x == 0.0 or var_y == 0.0:
        return 0.0
    return float(np.dot(dx, dy) / np.sqrt(var_x * var_y))


def p_value(rho: float, n: int) -> float:
    """
    Two-sided p-value for a correlation coefficient over n samples.

    Uses t = rho * sqrt((n - 2) / (1 - rho^2)) on n - 2 degrees of freedom.
    Returns 1.0 when n < 3 (not enough data to test).
    """
    if n < 3:
        return 1.0
    if abs(rho) >= 1.0:
        return 0.0
    t = rho * np.sqrt((n - 2) / (1.0 - rho * rho))
    return float(2.0 * sp_stats.t.sf(abs(t), df=n - 2))
