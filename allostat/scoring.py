"""
sALI scoring: turns one entry plus normalized weights into a strain score
in [0, 1] (higher is more strain) and its short/long EMA trends.

Per-metric orientation is fixed: metrics that are good when high (sleep,
recovery, energy) are inverted as (10 - v) / 10; the others map as v / 10.
"""

from typing import Dict, Mapping, Optional

from allostat.config import AllostatConfig
from allostat.schema import METRIC_MAX, METRICS, Entry, Metric, ScoreEntry
from allostat.signals import ema


def normalize_metric(value: float, invert: bool) -> float:
    """Map a 0-10 value onto 0-1 where 1 means more strain."""
    if invert:
        return (METRIC_MAX - value) / METRIC_MAX
    return value / METRIC_MAX


def oriented_components(entry: Entry) -> Dict[Metric, float]:
    return {m: normalize_metric(entry.value(m), m.good_when_high) for m in METRICS}


def compute_sali(
    entry: Entry,
    normalized_weights: Mapping[Metric, float],
    previous: Optional[ScoreEntry] = None,
    cfg: Optional[AllostatConfig] = None,
) -> ScoreEntry:
    """
    Score a single entry.

    raw = sum(weight[m] * oriented[m]) over all five metrics.

    With a previous ScoreEntry both EMAs take one step from it; otherwise
    both are seeded with the raw score.
    """
    if cfg is None:
        cfg = AllostatConfig()
    sp = cfg.smoothing

    components = oriented_components(entry)
    raw = sum(normalized_weights[m] * components[m] for m in METRICS)

    if previous is not None:
        ema_short = ema(raw, previous.ema_short, sp.short_alpha)
        ema_long = ema(raw, previous.ema_long, sp.long_alpha)
    else:
        ema_short = raw
        ema_long = raw

    return ScoreEntry(
        entry_id=entry.id,
        date=entry.date,
        raw_score=raw,
        ema_short=ema_short,
        ema_long=ema_long,
        components=components,
        weights_snapshot=dict(normalized_weights),
    )
