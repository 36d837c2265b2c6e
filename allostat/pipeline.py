"""
Pipeline orchestration: gate → window → weights → score → conflicts.

All analytical logic is delegated to weights, scoring, detectors and
signals. `AllostasisPipeline` owns the derived state (recompute cache, score
history, current conflicts) and is invoked explicitly after each validated
mutation of the entry history. The history itself belongs to the caller and
is only read.

Two modes:
    - single entry: `add_entry` / `update_entry` / `delete_entry` / `run`
    - batch:        `recalculate_all` walks the whole history forward and
                    yields the same score series as sequential `add_entry` calls

CLI helpers (`load_entries`, `analyze`, `analyze_data`, `generate_report`)
sit at the bottom; they are the only code here that touches files.
"""

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from allostat.config import AllostatConfig
from allostat.detectors import detect_conflict_patterns
from allostat.exceptions import EntryValidationError
from allostat.interpret import (
    analyze_trend,
    pattern_display_name,
    score_description,
    score_level,
    top_contributor,
)
from allostat.logging_config import get_logger
from allostat.schema import METRICS, ConflictPattern, Entry, ScoreEntry, WeightState
from allostat.scoring import compute_sali
from allostat.signals import dual_ema
from allostat.validation import CalculationStatus, calculation_status, validate_entry
from allostat.weights import compute_metric_weights, top_metric

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Results and cache
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CalculationCache:
    """Fingerprint of the last weight window and the weights it produced."""

    window_hash: str
    weights: WeightState


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one orchestrated recomputation."""

    has_minimum_data: bool
    status: CalculationStatus
    total_entries: int
    window_entries: int = 0
    weights: Optional[WeightState] = None
    score: Optional[ScoreEntry] = None
    conflicts: List[ConflictPattern] = field(default_factory=list)
    weights_recomputed: bool = False


def sort_entries(entries: Sequence[Entry]) -> List[Entry]:
    return sorted(entries, key=lambda e: e.sort_key)


def window_hash(window: Sequence[Entry]) -> str:
    """
    Fingerprint of a window's membership and metric values.

    Content is included so an in-place update (same id, new values)
    invalidates cached weights.
    """
    digest = hashlib.sha1()
    for e in window:
        values = ",".join(repr(float(e.value(m))) for m in METRICS)
        digest.update(f"{e.id}|{e.date.isoformat()}|{values};".encode("utf-8"))
    return digest.hexdigest()


def weight_window(entries: Sequence[Entry], end_index: int, cfg: AllostatConfig) -> List[Entry]:
    """The trailing `weight_window` entries ending at `end_index` (inclusive)."""
    start = max(0, end_index - cfg.windows.weight_window + 1)
    return list(entries[start:end_index + 1])


# ---------------------------------------------------------------------------
# Batch recomputation (PURE FUNCTION)
# ---------------------------------------------------------------------------

def _recalculate(
    entries: Sequence[Entry],
    cfg: AllostatConfig,
) -> Tuple[List[ScoreEntry], Optional[CalculationCache]]:
    scores: List[ScoreEntry] = []
    cache: Optional[CalculationCache] = None

    for i in range(cfg.windows.min_entries - 1, len(entries)):
        window = weight_window(entries, i, cfg)
        weights = compute_metric_weights(window, cfg)
        previous = scores[-1] if scores else None
        scores.append(compute_sali(entries[i], weights.normalized_weights, previous, cfg))
        cache = CalculationCache(window_hash=window_hash(window), weights=weights)

    return scores, cache


def recalculate_all(
    entries: Sequence[Entry],
    cfg: Optional[AllostatConfig] = None,
) -> List[ScoreEntry]:
    """
    Recompute the full chained score series for a history.

    Starts at the first entry that completes the minimum window; returns an
    empty list for shorter histories. Used for backfill after algorithm or
    configuration changes.
    """
    if cfg is None:
        cfg = AllostatConfig()
    scores, _ = _recalculate(sort_entries(entries), cfg)
    return scores


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class AllostasisPipeline:
    """
    Stateful orchestrator for a single subject.

    Derived state (cache, scores, conflicts) is replaced as a unit at the end
    of each call, after every computation in that call has succeeded.
    """

    def __init__(
        self,
        cfg: Optional[AllostatConfig] = None,
        scores: Optional[Sequence[ScoreEntry]] = None,
    ):
        self.cfg = cfg or AllostatConfig()
        self._cache: Optional[CalculationCache] = None
        self._scores: List[ScoreEntry] = list(scores or [])
        self._conflicts: List[ConflictPattern] = []

    @property
    def scores(self) -> List[ScoreEntry]:
        return list(self._scores)

    @property
    def conflicts(self) -> List[ConflictPattern]:
        return list(self._conflicts)

    @property
    def weights(self) -> Optional[WeightState]:
        return self._cache.weights if self._cache else None

    @property
    def latest_score(self) -> Optional[ScoreEntry]:
        return self._scores[-1] if self._scores else None

    # -- Mutations ----------------------------------------------------------

    def add_entry(self, entries: Sequence[Entry], entry: Entry) -> PipelineResult:
        """Recompute after `entry` was appended; `entries` already contains it."""
        return self.run(entries, entry_id=entry.id)

    def update_entry(self, entries: Sequence[Entry], entry: Entry) -> PipelineResult:
        """
        Recompute after `entry` was changed in place (same id, new values).

        Only the updated entry is re-scored. Stored scores of later entries
        stay as they were (still chained to the old score), so the series
        can drift from a full rebuild; call `recalculate_all` when a
        consistent series is needed.
        """
        return self.run(entries, entry_id=entry.id)

    def delete_entry(self, entries: Sequence[Entry], entry_id: str) -> PipelineResult:
        """Recompute after removal; `entries` no longer contains `entry_id`."""
        if any(e.id == entry_id for e in entries):
            raise ValueError(f"Entry {entry_id} is still present in the history")
        return self.run(entries, entry_id=None, score=False)

    # -- Core ---------------------------------------------------------------

    def run(
        self,
        entries: Sequence[Entry],
        entry_id: Optional[str] = None,
        score: bool = True,
        previous: Optional[ScoreEntry] = None,
    ) -> PipelineResult:
        """
        One orchestrated pass.

        Args:
            entries: the full history (any order; sorted by date here)
            entry_id: the affected entry; defaults to the latest one
            score: whether to produce a ScoreEntry for the affected entry
            previous: explicit predecessor for EMA chaining; defaults to the
                latest stored score of an entry that precedes the affected one

        Below the minimum history the pass stops before any computation and
        reports insufficient data instead of raising. Cached weights and
        conflicts are cleared, and scores of entries that are no longer in
        the history are dropped.
        """
        cfg = self.cfg
        history = sort_entries(entries)
        status = calculation_status(len(history), cfg)

        # Stage 1: Gate
        if not status.can_calculate:
            logger.info(
                "Insufficient data: %d of %d entries", len(history), cfg.windows.min_entries
            )
            # Weights and conflicts describe a window that no longer qualifies
            self._cache = None
            self._scores = self._ordered_scores(history, self._scores)
            self._conflicts = []
            return PipelineResult(
                has_minimum_data=False,
                status=status,
                total_entries=len(history),
            )

        index = self._index_of(history, entry_id)
        target = history[index]

        # Stage 2: Weights (cached by window fingerprint)
        window = weight_window(history, index, cfg)
        weights: Optional[WeightState] = None
        cache = self._cache
        recomputed = False

        if len(window) >= cfg.windows.min_entries:
            digest = window_hash(window)
            if cache is not None and cache.window_hash == digest:
                logger.debug("Weight window unchanged, reusing cached weights")
            else:
                logger.debug("Weight window changed, recomputing over %d entries", len(window))
                cache = CalculationCache(
                    window_hash=digest,
                    weights=compute_metric_weights(window, cfg),
                )
                recomputed = True
            weights = cache.weights

        # Stage 3: Score
        scores = self._scores
        new_score: Optional[ScoreEntry] = None
        if score and weights is not None:
            if previous is None:
                previous = self._previous_score(history, index)
            new_score = compute_sali(target, weights.normalized_weights, previous, cfg)
            scores = [s for s in scores if s.entry_id != target.id] + [new_score]
        scores = self._ordered_scores(history, scores)

        # Stage 4: Conflicts over the full history
        conflicts = detect_conflict_patterns(history, cfg)

        # Commit
        self._cache = cache
        self._scores = scores
        self._conflicts = conflicts

        return PipelineResult(
            has_minimum_data=True,
            status=status,
            total_entries=len(history),
            window_entries=len(window),
            weights=weights,
            score=new_score,
            conflicts=list(conflicts),
            weights_recomputed=recomputed,
        )

    def recalculate_all(self, entries: Sequence[Entry]) -> List[ScoreEntry]:
        """Batch mode: rebuild scores, cache and conflicts from the full history."""
        history = sort_entries(entries)
        scores, cache = _recalculate(history, self.cfg)
        conflicts = (
            detect_conflict_patterns(history, self.cfg)
            if len(history) >= self.cfg.windows.min_entries
            else []
        )

        self._scores = scores
        self._cache = cache
        self._conflicts = conflicts

        logger.info("Recalculated %d scores from %d entries", len(scores), len(history))
        return list(scores)

    # -- Helpers ------------------------------------------------------------

    @staticmethod
    def _index_of(history: Sequence[Entry], entry_id: Optional[str]) -> int:
        if entry_id is None:
            return len(history) - 1
        for i, e in enumerate(history):
            if e.id == entry_id:
                return i
        raise KeyError(f"Entry not found in history: {entry_id}")

    def _previous_score(self, history: Sequence[Entry], index: int) -> Optional[ScoreEntry]:
        earlier = {e.id for e in history[:index]}
        for s in reversed(self._scores):
            if s.entry_id in earlier:
                return s
        return None

    @staticmethod
    def _ordered_scores(
        history: Sequence[Entry],
        scores: Sequence[ScoreEntry],
    ) -> List[ScoreEntry]:
        """Drop scores of entries no longer present and order by history position."""
        position = {e.id: i for i, e in enumerate(history)}
        kept = [s for s in scores if s.entry_id in position]
        return sorted(kept, key=lambda s: position[s.entry_id])


# ---------------------------------------------------------------------------
# Data loading (CLI mode only)
# ---------------------------------------------------------------------------

def load_entries(filepath: Union[str, Path]) -> List[Dict]:
    """Load raw entry dicts from a JSON file."""
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    if not data:
        raise ValueError("Data file is empty")
    return data


def parse_entries(data: Sequence[Dict]) -> List[Entry]:
    """Build and validate entries; raises EntryValidationError listing every bad field."""
    entries: List[Entry] = []
    errors: List[str] = []

    for i, row in enumerate(data):
        try:
            entry = Entry.from_dict(row)
        except ValueError as exc:
            errors.append(f"entry {i}: {exc}")
            continue
        result = validate_entry(entry)
        if not result.valid:
            errors.extend(f"entry {i}: {msg}" for msg in result.errors)
            continue
        entries.append(entry)

    if errors:
        raise EntryValidationError(errors)
    return sort_entries(entries)


# ---------------------------------------------------------------------------
# Summary (pure function, no file I/O)
# ---------------------------------------------------------------------------

def _summarize(entries: List[Entry], cfg: AllostatConfig) -> Dict:
    pipeline = AllostasisPipeline(cfg)
    scores = pipeline.recalculate_all(entries)
    status = calculation_status(len(entries), cfg)

    result: Dict = {
        "entries": len(entries),
        "has_minimum_data": status.can_calculate,
        "status": status.message,
        "conflicts": [
            {
                "pattern": c.pattern.value,
                "name": pattern_display_name(c.pattern),
                "type": c.type.value,
                "severity": c.severity.value,
                "affected_metrics": [m.value for m in c.affected_metrics],
                "duration": c.duration,
                "description": c.description,
            }
            for c in pipeline.conflicts
        ],
    }

    if not scores:
        return result

    latest = scores[-1]
    previous = scores[-2] if len(scores) > 1 else None
    weights = pipeline.weights
    top_name, top_weight = top_metric(weights)
    contributor = top_contributor(latest)
    trend = analyze_trend(latest, previous, cfg)

    series = dual_ema(
        [s.raw_score for s in scores],
        cfg.smoothing.short_period,
        cfg.smoothing.long_period,
    )
    crossovers = [
        {"date": scores[i].date.isoformat(), "type": kind}
        for i, kind in series["crossover"].items()
        if kind is not None
    ]

    result.update({
        "sali": {
            "date": latest.date.isoformat(),
            "raw": round(latest.raw_score, 4),
            "ema_short": round(latest.ema_short, 4),
            "ema_long": round(latest.ema_long, 4),
            "level": score_level(latest.raw_score, cfg),
            "description": score_description(latest.raw_score, cfg),
        },
        "trend": trend,
        "weights": {m.value: round(w, 4) for m, w in weights.normalized_weights.items()},
        "top_weight": {"metric": top_name.value, "weight": round(top_weight, 4)},
        "top_contributor": {
            "metric": contributor["metric"].value,
            "percentage": round(contributor["percentage"], 1),
        },
        "crossovers": crossovers,
        "scored_entries": len(scores),
    })
    return result


# ---------------------------------------------------------------------------
# Public Entry Points
# ---------------------------------------------------------------------------

def analyze(
    filepath: Union[str, Path],
    cfg: AllostatConfig | None = None,
) -> Dict:
    """
    CLI-compatible entry point.
    Reads a JSON file of entries and runs the batch analysis.
    """
    if cfg is None:
        cfg = AllostatConfig()
    return _summarize(parse_entries(load_entries(filepath)), cfg)


def analyze_data(
    data: list[dict],
    cfg: AllostatConfig | None = None,
) -> Dict:
    """
    Backend / UI integration entry point.

    Accepts list-of-dict entry data directly.
    No file system usage.
    """
    if cfg is None:
        cfg = AllostatConfig()
    if not data:
        raise ValueError("Input data cannot be empty")
    return _summarize(parse_entries(data), cfg)


# ---------------------------------------------------------------------------
# Report generation
# ---------------------------------------------------------------------------

def generate_report(result: Dict) -> str:
    """Format the analysis result as a human-readable text report."""
    lines = [
        "ALLOSTATIC LOAD REPORT",
        "=" * 58,
        "",
        f"  Entries             : {result['entries']}",
        f"  Status              : {result['status']}",
    ]

    if "sali" in result:
        sali = result["sali"]
        trend = result["trend"]
        lines += [
            f"  sALI ({sali['date']}) : {sali['raw']} ({sali['level']})",
            f"  EMA 7 / EMA 28      : {sali['ema_short']} / {sali['ema_long']}",
            f"  Direction           : {trend['direction']} "
            f"(short: {trend['short_term_trend']}, long: {trend['long_term_trend']})",
            f"  Top Contributor     : {result['top_contributor']['metric']} "
            f"({result['top_contributor']['percentage']}%)",
            "",
            f"  {sali['description']}",
            "",
            "  Weights:",
        ]
        for name, weight in result["weights"].items():
            label = name.replace("_", " ").title()
            lines.append(f"    {label:22s} : {weight:.4f}")

        if result["crossovers"]:
            lines.append("")
            lines.append("  EMA Crossovers:")
            for c in result["crossovers"]:
                lines.append(f"    - {c['date']}: {c['type']}")

    if result["conflicts"]:
        lines.append("")
        lines.append("  Conflict Patterns:")
        for c in result["conflicts"]:
            lines.append(f"    - [{c['severity'].upper()}] {c['name']} ({c['type']})")

    lines.append("")
    lines.append("=" * 58)
    return "\n".join(lines)
