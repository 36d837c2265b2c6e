"""
allostat — Adaptive Allostatic Load Engine

A deterministic, interpretable scoring engine that analyzes a single
subject's daily check-ins and produces an adaptive strain score (sALI) and
detected risk patterns.

Architecture:
    config         — All thresholds, periods, and window sizes (single source of truth)
    schema         — Metric enum and value objects (Entry, WeightState, ScoreEntry, ConflictPattern)
    stats          — Spearman/Pearson correlation, mean, population std-dev
    normalization  — Range mapping, percentiles, outlier smoothing, gap filling
    signals        — EMA primitives, dual short/long tracking, crossovers, trend
    detectors      — Acute and chronic conflict patterns
    weights        — Correlation/volatility/imbalance weight adaptation
    scoring        — sALI composite score with EMA chaining
    interpret      — Levels, trend direction, contributor attribution, guidance
    validation     — Entry validation and calculation-status gating
    pipeline       — Orchestration: gate → window → weights → score → conflicts

Public API:
    AllostasisPipeline      → single-entry and batch recomputation
    analyze(filepath)       → CLI mode
    analyze_data(data)      → UI / backend mode
    generate_report(result) → formatted report
"""

from allostat.config import AllostatConfig
from allostat.detectors import detect_conflict_patterns
from allostat.exceptions import AllostatError, EntryValidationError, InsufficientDataError
from allostat.pipeline import (
    AllostasisPipeline,
    PipelineResult,
    analyze,
    analyze_data,
    generate_report,
    recalculate_all,
)
from allostat.schema import ConflictPattern, Entry, Metric, ScoreEntry, WeightState
from allostat.scoring import compute_sali
from allostat.validation import calculation_status, validate_entry
from allostat.weights import compute_metric_weights

__version__ = "1.0.0"

__all__ = [
    "AllostatConfig",
    "AllostasisPipeline",
    "PipelineResult",
    "Entry",
    "Metric",
    "WeightState",
    "ScoreEntry",
    "ConflictPattern",
    "AllostatError",
    "InsufficientDataError",
    "EntryValidationError",
    "analyze",
    "analyze_data",
    "generate_report",
    "recalculate_all",
    "compute_metric_weights",
    "compute_sali",
    "detect_conflict_patterns",
    "validate_entry",
    "calculation_status",
]
