"""allostat — Standalone test suite (python run_tests.py; also collected by pytest)."""
import logging
import os
import sys
import traceback
from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent))

from allostat.config import AllostatConfig, ScoreLevels, WindowParams
from allostat.detectors import (
    combined_severity,
    detect_conflict_patterns,
    filter_by_severity,
    filter_by_type,
    most_severe,
)
from allostat.exceptions import EntryValidationError, InsufficientDataError
from allostat.interpret import (
    analyze_trend,
    contributor_breakdown,
    pattern_recommendations,
    score_level,
)
from allostat.logging_config import resolve_level, setup_logging
from allostat.normalization import (
    clamp,
    fill_missing_values,
    inv_log_scale,
    log_scale,
    moving_average,
    normalize_to_range,
    percentile_rank,
    remap,
    smooth_outliers,
    value_at_percentile,
)
from allostat.pipeline import (
    AllostasisPipeline,
    analyze,
    analyze_data,
    generate_report,
    recalculate_all,
    sort_entries,
)
from allostat.schema import (
    ConflictType,
    Entry,
    Metric,
    PatternId,
    ScoreEntry,
    Severity,
)
from allostat.scoring import compute_sali, normalize_metric
from allostat.signals import (
    CROSS_ABOVE,
    CROSS_BELOW,
    DualEMA,
    alpha,
    determine_trend,
    dual_ema,
    ema,
    ema_series,
    find_crossovers,
    initialize_ema,
    predict_next,
    smooth_time_series,
    sma,
    weighted_ma,
)
from allostat.stats import mean, p_value, pearson, rank_average, spearman, std_dev
from allostat.validation import calculation_status, validate_entry
from allostat.weights import compute_metric_weights, metrics_by_weight, weight_changes

CFG = AllostatConfig()
TEST_DATA = Path(__file__).parent / "sample_data.json"
START = date(2025, 1, 1)


def approx(a, b, tol=0.01):
    assert abs(a - b) < tol, f"{a} != {b} (tol={tol})"


def raises(exc_type, fn, *args, **kwargs):
    try:
        fn(*args, **kwargs)
    except exc_type:
        return
    raise AssertionError(f"Expected {exc_type.__name__}")


def _series(value, n):
    if isinstance(value, (int, float)):
        return [value] * n
    assert len(value) == n, f"Series length {len(value)} != {n}"
    return list(value)


def make_entries(n, sleep=6, load=5, recovery=6, stress=5, energy=6, start=START):
    """n consecutive daily entries; each metric is a scalar or a length-n sequence."""
    cols = [_series(v, n) for v in (sleep, load, recovery, stress, energy)]
    return [
        Entry(
            date=start + timedelta(days=i),
            sleep_recovery=cols[0][i],
            physical_load=cols[1][i],
            recovery_from_load=cols[2][i],
            psychological_stress=cols[3][i],
            energy_level=cols[4][i],
            id=f"e{i:03d}",
        )
        for i in range(n)
    ]


def random_entries(n, seed=42):
    rng = np.random.RandomState(seed)
    vals = rng.randint(0, 11, size=(5, n)).astype(float)
    return make_entries(n, *[list(row) for row in vals])


def pattern_ids(conflicts):
    return [c.pattern for c in conflicts]


def find(conflicts, pattern):
    for c in conflicts:
        if c.pattern == pattern:
            return c
    return None


# ═══════════════════════════════════════════════════════════════════════
# CONFIG
# ═══════════════════════════════════════════════════════════════════════

def test_ema_alphas():
    approx(CFG.smoothing.short_alpha, 0.25, 1e-12)
    approx(CFG.smoothing.long_alpha, 2 / 29, 1e-12)


def test_window_params_reject_small_window():
    raises(ValueError, WindowParams, min_entries=7, weight_window=5)


def test_score_levels_must_ascend():
    raises(ValueError, ScoreLevels, optimal=0.5, good=0.4)


def test_conflict_threshold_defaults():
    t = CFG.conflicts
    assert (t.high_load, t.low_recovery, t.high_stress, t.low_energy, t.low_sleep) == (7, 4, 7, 4, 4)
    assert t.chronic_min_entries == 14
    assert t.brain_fog_days == 60


def test_log_level_falls_back_on_unknown_name():
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level("verbose") == logging.WARNING

    name = "allostat.level_fallback"
    saved = os.environ.get("ALLOSTAT_LOG_LEVEL")
    os.environ["ALLOSTAT_LOG_LEVEL"] = "verbose"
    try:
        assert setup_logging(name).level == logging.WARNING
    finally:
        logging.getLogger(name).handlers.clear()
        if saved is None:
            os.environ.pop("ALLOSTAT_LOG_LEVEL", None)
        else:
            os.environ["ALLOSTAT_LOG_LEVEL"] = saved


# ═══════════════════════════════════════════════════════════════════════
# STATISTICS
# ═══════════════════════════════════════════════════════════════════════

def test_spearman_symmetric():
    x = [1, 5, 2, 8, 3, 3, 7]
    y = [2, 1, 4, 4, 9, 0, 6]
    assert spearman(x, y) == spearman(y, x)


def test_spearman_monotone_increasing():
    assert spearman([1, 2, 3, 4, 5], [10, 20, 30, 40, 50]) == 1.0
    assert spearman([1, 2, 3, 4, 5], [1, 4, 9, 16, 25]) == 1.0


def test_spearman_inverse():
    assert spearman([1, 2, 3, 4, 5], [50, 40, 30, 20, 10]) == -1.0


def test_spearman_degenerate_is_zero():
    assert spearman([3], [7]) == 0.0
    assert spearman([5, 5, 5, 5], [1, 2, 3, 4]) == 0.0
    assert spearman([1, 2, 3, 4], [2, 2, 2, 2]) == 0.0


def test_spearman_bad_input_raises():
    raises(ValueError, spearman, [], [])
    raises(ValueError, spearman, [1, 2, 3], [1, 2])


def test_rank_average_ties():
    assert rank_average([10, 20, 20, 30]).tolist() == [1.0, 2.5, 2.5, 4.0]


def test_mean_std_repeated_value():
    assert std_dev([4.0] * 6) == 0.0
    assert mean([4.0] * 6) == 4.0


def test_std_is_population():
    approx(std_dev([2, 4, 4, 4, 5, 5, 7, 9]), 2.0, 1e-12)


def test_aggregates_empty():
    assert mean([]) == 0.0
    assert std_dev([]) == 0.0
    assert std_dev([3.0]) == 0.0


def test_pearson():
    approx(pearson([1, 2, 3, 4], [2, 4, 6, 8]), 1.0, 1e-12)
    assert pearson([1, 1, 1], [1, 2, 3]) == 0.0


def test_p_value_edges():
    assert p_value(0.9, 2) == 1.0
    assert p_value(1.0, 10) == 0.0
    approx(p_value(0.0, 10), 1.0, 1e-12)
    assert p_value(0.9, 20) < 0.001


# ═══════════════════════════════════════════════════════════════════════
# NORMALIZATION
# ═══════════════════════════════════════════════════════════════════════

def test_range_helpers():
    assert clamp(15, 0, 10) == 10
    assert normalize_to_range(5, 5, 5) == 0.5
    approx(remap(5, 0, 10, 0, 100), 50.0, 1e-12)


def test_percentiles():
    assert percentile_rank(5, []) == 50.0
    approx(percentile_rank(3, [1, 2, 3, 4]), 62.5, 1e-12)
    approx(value_at_percentile([1, 2, 3, 4, 5], 50), 3.0, 1e-12)


def test_smooth_outliers_mad():
    assert smooth_outliers([1, 2, 3, 4, 100]) == [1.0, 2.0, 3.0, 4.0, 6.0]
    assert smooth_outliers([5, 5, 5]) == [5.0, 5.0, 5.0]
    assert smooth_outliers([]) == []


def test_fill_missing_values():
    assert fill_missing_values([None, 1, None, 3], "forward") == [1.0, 1.0, 1.0, 3.0]
    assert fill_missing_values([None, 1, None, 3], "backward") == [1.0, 1.0, 3.0, 3.0]
    assert fill_missing_values([1, None, 3], "linear") == [1.0, 2.0, 3.0]
    assert fill_missing_values([1, None, 3], "mean") == [1.0, 2.0, 3.0]
    assert fill_missing_values([None, None]) == [0.0, 0.0]
    raises(ValueError, fill_missing_values, [1, None], "cubic")


def test_inv_log_scale():
    approx(inv_log_scale(log_scale(20.0)), 20.0, 1e-9)
    assert inv_log_scale(2, 10) == 100.0


def test_moving_average():
    assert moving_average([1, 2, 3, 4], 2) == [1.0, 1.5, 2.5, 3.5]


# ═══════════════════════════════════════════════════════════════════════
# SMOOTHING
# ═══════════════════════════════════════════════════════════════════════

def test_alpha_from_period():
    assert alpha(7) == 0.25
    raises(ValueError, alpha, 0)


def test_ema_fixed_point():
    for a in (0.0, 0.25, 2 / 29, 1.0):
        approx(ema(0.37, 0.37, a), 0.37, 1e-12)


def test_ema_rejects_bad_alpha():
    raises(ValueError, ema, 1.0, 0.5, 1.5)


def test_ema_seed():
    assert ema_series([0.42], 0.25) == [0.42]
    assert initialize_ema([0.42], 0.25) == 0.42
    raises(ValueError, initialize_ema, [], 0.25)


def test_online_matches_offline():
    values = [0.3, 0.5, 0.45, 0.7, 0.2, 0.35, 0.6, 0.55]
    tracker = DualEMA.from_periods(7, 28)
    online = [tracker.update(v) for v in values]
    short = ema_series(values, alpha(7))
    long_ = ema_series(values, alpha(28))
    for (s, l), s_off, l_off in zip(online, short, long_):
        approx(s, s_off, 1e-12)
        approx(l, l_off, 1e-12)


def test_dual_ema_crossovers():
    values = [0.5, 0.5, 0.5, 0.9, 0.9, 0.1, 0.1, 0.1]
    df = dual_ema(values, 7, 28)
    flagged = {i: kind for i, kind in df["crossover"].items() if kind is not None}
    assert flagged == {3: CROSS_ABOVE, 6: CROSS_BELOW}, f"Got: {flagged}"
    assert find_crossovers(df["ema_short"].tolist(), df["ema_long"].tolist()) == [
        (3, CROSS_ABOVE), (6, CROSS_BELOW),
    ]


def test_determine_trend():
    assert determine_trend(0.50, 0.49) == "flat"
    assert determine_trend(0.60, 0.50) == "up"
    assert determine_trend(0.40, 0.50) == "down"


def test_smooth_time_series():
    dates = [START + timedelta(days=i) for i in range(4)]
    values = [0.2, 0.4, 0.6, 0.8]
    df = smooth_time_series(dates, values, 7)
    assert list(df.columns) == ["date", "value", "ema"]
    assert df["date"].tolist() == dates
    assert df["ema"].tolist() == ema_series(values, alpha(7))
    assert smooth_time_series([], []).empty
    raises(ValueError, smooth_time_series, dates, values[:2])


def test_average_helpers():
    assert predict_next([1.0]) is None
    assert predict_next([1.0, 2.0]) == 3.0
    assert sma([1, 2, 3, 4], 2) == 3.5
    raises(ValueError, weighted_ma, [1, 2], [0.2, 0.2])
    approx(weighted_ma([1, 3], [0.5, 0.5]), 2.0, 1e-12)


# ═══════════════════════════════════════════════════════════════════════
# CONFLICT DETECTION
# ═══════════════════════════════════════════════════════════════════════

def test_high_load_low_recovery_high():
    entries = make_entries(7, load=[5] * 6 + [9], recovery=[6] * 6 + [1])
    conflicts = detect_conflict_patterns(entries, CFG)
    c = find(conflicts, PatternId.HIGH_LOAD_LOW_RECOVERY)
    assert c is not None, f"Got: {pattern_ids(conflicts)}"
    assert c.severity == Severity.HIGH
    assert c.type == ConflictType.ACUTE
    assert c.affected_metrics == (Metric.PHYSICAL_LOAD, Metric.RECOVERY_FROM_LOAD)
    assert c.duration is None


def test_acute_severity_levels():
    t = CFG.conflicts
    assert combined_severity(9, 9, t) == Severity.HIGH
    assert combined_severity(8, 7, t) == Severity.MEDIUM
    assert combined_severity(6, 6, t) == Severity.LOW


def test_acute_patterns_each_fire():
    latest = make_entries(1, sleep=2, load=8, recovery=6, stress=8, energy=3)
    ids = pattern_ids(detect_conflict_patterns(latest, CFG))
    assert ids == [
        PatternId.POOR_SLEEP_HIGH_STRESS,
        PatternId.OVERWORK,
        PatternId.FATIGUE_WITH_LOAD,
    ], f"Got: {ids}"


def test_acute_thresholds_strict():
    entries = make_entries(1, load=7, recovery=4, stress=7, sleep=4, energy=4)
    assert detect_conflict_patterns(entries, CFG) == []


def test_acute_reads_latest_only():
    entries = make_entries(3, load=[9, 9, 5], recovery=[1, 1, 6])
    assert detect_conflict_patterns(entries, CFG) == []


def test_prolonged_stress_high():
    conflicts = detect_conflict_patterns(make_entries(14, stress=9), CFG)
    c = find(conflicts, PatternId.PROLONGED_STRESS)
    assert c is not None, f"Got: {pattern_ids(conflicts)}"
    assert c.severity == Severity.HIGH
    assert c.duration == 14


def test_prolonged_stress_medium():
    c = find(detect_conflict_patterns(make_entries(14, stress=7), CFG), PatternId.PROLONGED_STRESS)
    assert c is not None and c.severity == Severity.MEDIUM


def test_chronic_needs_14_entries():
    assert find(detect_conflict_patterns(make_entries(13, stress=9), CFG),
                PatternId.PROLONGED_STRESS) is None


def test_chronic_sleep_and_fatigue():
    conflicts = detect_conflict_patterns(make_entries(14, sleep=3, energy=2), CFG)
    assert find(conflicts, PatternId.CHRONIC_SLEEP_DEFICIT).severity == Severity.HIGH
    assert find(conflicts, PatternId.PROLONGED_FATIGUE).severity == Severity.HIGH


def test_brain_fog_needs_60():
    assert find(detect_conflict_patterns(make_entries(59, energy=4, stress=8), CFG),
                PatternId.BRAIN_FOG) is None
    c = find(detect_conflict_patterns(make_entries(60, energy=4, stress=8), CFG), PatternId.BRAIN_FOG)
    assert c is not None and c.severity == Severity.HIGH and c.duration == 60


def test_detector_deterministic_and_ordered():
    entries = make_entries(60, sleep=3, load=[5] * 59 + [9], recovery=[6] * 59 + [1],
                           stress=8, energy=4)
    first = detect_conflict_patterns(entries, CFG)
    second = detect_conflict_patterns(entries, CFG)
    assert [c.content() for c in first] == [c.content() for c in second]
    types = [c.type for c in first]
    assert types == sorted(types, key=lambda t: t != ConflictType.ACUTE)


def test_detector_empty():
    assert detect_conflict_patterns([], CFG) == []


def test_conflict_filters():
    conflicts = detect_conflict_patterns(make_entries(14, stress=[5] * 13 + [9], sleep=[6] * 13 + [1]), CFG)
    acute = filter_by_type(conflicts, ConflictType.ACUTE)
    assert pattern_ids(acute) == [PatternId.POOR_SLEEP_HIGH_STRESS]
    assert most_severe(conflicts).severity == Severity.HIGH
    assert all(c.severity == Severity.HIGH for c in filter_by_severity(conflicts, Severity.HIGH))
    assert most_severe([]) is None


# ═══════════════════════════════════════════════════════════════════════
# WEIGHTS
# ═══════════════════════════════════════════════════════════════════════

def test_weights_need_minimum():
    raises(InsufficientDataError, compute_metric_weights, make_entries(6), CFG)
    raises(ValueError, compute_metric_weights, make_entries(6), CFG)


def test_weights_sum_to_one():
    for seed in range(10):
        state = compute_metric_weights(random_entries(7 + seed * 3, seed), CFG)
        approx(sum(state.normalized_weights.values()), 1.0, 1e-9)


def test_impact_weight_perfect_correlation():
    entries = make_entries(7, energy=[3, 4, 5, 6, 7, 8, 9], sleep=[2, 3, 4, 5, 6, 7, 8])
    state = compute_metric_weights(entries, CFG)
    w = state.weights[Metric.SLEEP_RECOVERY]
    assert w.impact_weight == 1.0
    assert w.correlation == 1.0
    approx(w.volatility_weight, 2.0 / 3.0, 1e-12)


def test_anchor_fixed():
    state = compute_metric_weights(random_entries(10), CFG)
    w = state.weights[Metric.ENERGY_LEVEL]
    assert (w.impact_weight, w.volatility_weight, w.imbalance_weight, w.combined_weight) == (1, 1, 1, 1)


def test_uncorrelated_impact_floor():
    entries = make_entries(7, load=5)
    w = compute_metric_weights(entries, CFG).weights[Metric.PHYSICAL_LOAD]
    assert w.impact_weight == 0.5
    assert w.volatility_weight == 0.0


def test_volatility_capped():
    entries = make_entries(8, stress=[0, 10] * 4)
    assert compute_metric_weights(entries, CFG).weights[Metric.PSYCHOLOGICAL_STRESS].volatility_weight == 1.0


def test_imbalance_from_conflicts():
    entries = make_entries(7, load=[4, 6, 5, 3, 6, 5, 9], recovery=[6, 5, 7, 6, 5, 6, 1])
    state = compute_metric_weights(entries, CFG)
    assert state.weights[Metric.PHYSICAL_LOAD].imbalance_weight == 1.5
    assert state.weights[Metric.RECOVERY_FROM_LOAD].imbalance_weight == 1.5
    assert state.weights[Metric.SLEEP_RECOVERY].imbalance_weight == 1.0
    assert state.weights[Metric.PHYSICAL_LOAD].active_conflicts == ("high_load_low_recovery",)

    no_conflicts = compute_metric_weights(entries, CFG, conflicts=[])
    assert no_conflicts.weights[Metric.PHYSICAL_LOAD].imbalance_weight == 1.0


def test_constant_window_puts_weight_on_anchor():
    state = compute_metric_weights(make_entries(7), CFG)
    assert state.normalized_weights[Metric.ENERGY_LEVEL] == 1.0


def test_weights_deterministic():
    entries = random_entries(20, 7)
    a = compute_metric_weights(entries, CFG)
    b = compute_metric_weights(list(entries), CFG)
    assert a.normalized_weights == b.normalized_weights


def test_weight_window_metadata_and_ranking():
    entries = random_entries(12, 3)
    state = compute_metric_weights(entries, CFG)
    assert state.data_window.entry_count == 12
    assert state.data_window.start_date == entries[0].date
    assert state.data_window.end_date == entries[-1].date
    ranked = metrics_by_weight(state)
    assert [r["rank"] for r in ranked] == [1, 2, 3, 4, 5]
    assert ranked[0]["weight"] >= ranked[-1]["weight"]
    changes = weight_changes(state, state)
    assert all(c["change"] == 0.0 for c in changes.values())


# ═══════════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════════

EQUAL = {m: 0.2 for m in Metric}


def test_normalize_metric_orientation():
    assert normalize_metric(10, invert=True) == 0.0
    assert normalize_metric(10, invert=False) == 1.0
    assert normalize_metric(3, invert=True) == 0.7


def test_score_bounds():
    best = make_entries(1, sleep=10, load=0, recovery=10, stress=0, energy=10)[0]
    worst = make_entries(1, sleep=0, load=10, recovery=0, stress=10, energy=0)[0]
    assert compute_sali(best, EQUAL, cfg=CFG).raw_score == 0.0
    approx(compute_sali(worst, EQUAL, cfg=CFG).raw_score, 1.0, 1e-12)


def test_score_seeds_emas():
    s = compute_sali(make_entries(1)[0], EQUAL, cfg=CFG)
    assert s.ema_short == s.raw_score
    assert s.ema_long == s.raw_score
    assert s.weights_snapshot == EQUAL


def test_score_chains_emas():
    entry = make_entries(1)[0]
    prev = ScoreEntry(entry_id="x", date=START, raw_score=0.5, ema_short=0.5, ema_long=0.5,
                      components=EQUAL, weights_snapshot=EQUAL)
    s = compute_sali(entry, EQUAL, previous=prev, cfg=CFG)
    approx(s.ema_short, 0.25 * s.raw_score + 0.75 * 0.5, 1e-12)
    approx(s.ema_long, (2 / 29) * s.raw_score + (27 / 29) * 0.5, 1e-12)


def test_score_in_unit_interval():
    entries = random_entries(30, 11)
    for s in recalculate_all(entries, CFG):
        assert 0.0 <= s.raw_score <= 1.0 + 1e-12


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def test_validate_ok():
    result = validate_entry(make_entries(1)[0], today=date(2026, 1, 1))
    assert result.valid and result.errors == []


def test_validate_range():
    entry = replace(make_entries(1)[0], physical_load=11, energy_level=-1)
    result = validate_entry(entry, today=date(2026, 1, 1))
    assert not result.valid
    assert any("physical_load" in e for e in result.errors)
    assert any("energy_level" in e for e in result.errors)


def test_validate_types_and_dates():
    entry = replace(make_entries(1)[0], sleep_recovery="5", date="not-a-date")
    errors = validate_entry(entry).errors
    assert any("sleep_recovery" in e for e in errors)
    assert "Invalid date" in errors

    future = make_entries(1, start=date(2026, 2, 1))[0]
    assert "Date cannot be in the future" in validate_entry(future, today=date(2026, 1, 1)).errors


def test_validate_bad_timestamp():
    entry = replace(make_entries(1)[0], timestamp="x")
    assert validate_entry(entry, today=date(2026, 1, 1)).errors == ["Invalid timestamp"]

    stamped = replace(entry, timestamp=datetime(2025, 1, 1, 9, 30))
    assert validate_entry(stamped, today=date(2026, 1, 1)).valid


def test_calculation_status():
    s = calculation_status(3, CFG)
    assert not s.can_calculate and s.entries_needed == 4
    approx(s.progress_percentage, 300 / 7, 1e-9)
    assert calculation_status(6, CFG).message == "1 more entry needed for calculations"
    done = calculation_status(9, CFG)
    assert done.can_calculate and done.entries_needed == 0 and done.progress_percentage == 100.0


# ═══════════════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════════════

def test_gate_insufficient():
    result = AllostasisPipeline(CFG).run(make_entries(6))
    assert not result.has_minimum_data
    assert result.score is None and result.weights is None
    assert result.status.entries_needed == 1


def test_batch_equals_sequential():
    entries = random_entries(45, 5)
    pipeline = AllostasisPipeline(CFG)
    for i in range(len(entries)):
        pipeline.add_entry(entries[: i + 1], entries[i])
    sequential = pipeline.scores
    batch = recalculate_all(entries, CFG)

    assert len(batch) == len(entries) - CFG.windows.min_entries + 1
    assert len(sequential) == len(batch)
    for a, b in zip(sequential, batch):
        assert a.entry_id == b.entry_id
        approx(a.raw_score, b.raw_score, 1e-12)
        approx(a.ema_short, b.ema_short, 1e-12)
        approx(a.ema_long, b.ema_long, 1e-12)


def test_batch_first_score_seeded():
    scores = recalculate_all(random_entries(10), CFG)
    assert scores[0].entry_id == "e006"
    assert scores[0].ema_short == scores[0].raw_score == scores[0].ema_long


def test_cache_reused_when_window_unchanged():
    entries = random_entries(10)
    pipeline = AllostasisPipeline(CFG)
    first = pipeline.run(entries)
    second = pipeline.run(entries)
    assert first.weights_recomputed and not second.weights_recomputed
    assert second.weights is first.weights


def test_update_invalidates_cache():
    entries = random_entries(10)
    pipeline = AllostasisPipeline(CFG)
    pipeline.run(entries)
    changed = replace(entries[-1], psychological_stress=(entries[-1].psychological_stress + 1) % 10)
    updated = entries[:-1] + [changed]
    result = pipeline.update_entry(updated, changed)
    assert result.weights_recomputed
    assert len([s for s in pipeline.scores if s.entry_id == changed.id]) == 1


def test_delete_below_minimum_degrades():
    entries = random_entries(7)
    pipeline = AllostasisPipeline(CFG)
    assert pipeline.run(entries).score is not None
    removed = entries[3]
    result = pipeline.delete_entry([e for e in entries if e.id != removed.id], removed.id)
    assert not result.has_minimum_data
    assert result.status.message == "1 more entry needed for calculations"
    assert all(s.entry_id != removed.id for s in pipeline.scores)


def test_delete_below_minimum_clears_derived_state():
    entries = make_entries(7, load=[5] * 6 + [9], recovery=[6] * 6 + [1])
    pipeline = AllostasisPipeline(CFG)
    pipeline.run(entries)
    assert PatternId.HIGH_LOAD_LOW_RECOVERY in pattern_ids(pipeline.conflicts)
    assert pipeline.weights is not None

    removed = entries[-1]
    result = pipeline.delete_entry(entries[:-1], removed.id)
    assert not result.has_minimum_data
    assert pipeline.conflicts == []
    assert pipeline.weights is None
    assert pipeline.scores == []

    # Back at the minimum, weights are rebuilt from scratch
    assert pipeline.add_entry(entries, removed).weights_recomputed


def test_update_leaves_later_scores_until_rebuild():
    entries = random_entries(12)
    pipeline = AllostasisPipeline(CFG)
    pipeline.recalculate_all(entries)
    before = {s.entry_id: s for s in pipeline.scores}

    changed = replace(entries[8], physical_load=(entries[8].physical_load + 5) % 10)
    updated = entries[:8] + [changed] + entries[9:]
    pipeline.update_entry(updated, changed)
    after = {s.entry_id: s for s in pipeline.scores}
    assert after["e008"] is not before["e008"]
    assert after["e009"] is before["e009"]
    assert after["e011"] is before["e011"]

    rebuilt = pipeline.recalculate_all(updated)
    expected = recalculate_all(updated, CFG)
    assert [s.ema_short for s in rebuilt] == [s.ema_short for s in expected]


def test_same_day_entries_ordered_by_timestamp():
    entries = make_entries(8)
    day = entries[6].date
    evening = replace(entries[6], id="a-evening", timestamp=datetime(2025, 1, 7, 20, 0))
    morning = replace(entries[7], id="z-morning", date=day, timestamp=datetime(2025, 1, 7, 8, 0))
    shuffled = [evening] + entries[:6] + [morning]

    assert [e.id for e in sort_entries(shuffled)][-2:] == ["z-morning", "a-evening"]
    scores = recalculate_all(shuffled, CFG)
    assert [s.entry_id for s in scores] == ["z-morning", "a-evening"]
    approx(scores[1].ema_short, 0.25 * scores[1].raw_score + 0.75 * scores[0].ema_short, 1e-12)


def test_delete_requires_removed_entry():
    entries = random_entries(8)
    raises(ValueError, AllostasisPipeline(CFG).delete_entry, entries, entries[0].id)


def test_conflicts_regenerated():
    base = make_entries(8)
    spike = replace(base[-1], physical_load=9, recovery_from_load=1)
    pipeline = AllostasisPipeline(CFG)
    pipeline.run(base[:-1] + [spike])
    assert PatternId.HIGH_LOAD_LOW_RECOVERY in pattern_ids(pipeline.conflicts)

    calm = make_entries(9)[-1]
    pipeline.add_entry(base[:-1] + [spike, calm], calm)
    assert pipeline.conflicts == []


def test_early_entry_update_has_no_score():
    entries = random_entries(10)
    pipeline = AllostasisPipeline(CFG)
    pipeline.recalculate_all(entries)
    result = pipeline.update_entry(entries, entries[2])
    assert result.has_minimum_data and result.score is None and result.weights is None


def test_unknown_entry_raises():
    raises(KeyError, AllostasisPipeline(CFG).run, random_entries(8), "missing")


def test_pipeline_state_after_batch():
    entries = random_entries(20)
    pipeline = AllostasisPipeline(CFG)
    scores = pipeline.recalculate_all(entries)
    assert pipeline.latest_score is not None
    assert pipeline.latest_score.entry_id == scores[-1].entry_id
    assert pipeline.weights.data_window.entry_count == 20


# ═══════════════════════════════════════════════════════════════════════
# INTERPRETATION
# ═══════════════════════════════════════════════════════════════════════

def test_score_levels():
    assert score_level(0.1) == "optimal"
    assert score_level(0.5) == "moderate"
    assert score_level(0.9) == "critical"


def test_trend_and_contributors():
    scores = recalculate_all(random_entries(15, 9), CFG)
    assert analyze_trend(scores[0])["direction"] == "stable"
    trend = analyze_trend(scores[-1], scores[-2], CFG)
    assert trend["direction"] in {"stable", "improving", "worsening"}
    rows = contributor_breakdown(scores[-1])
    approx(sum(r["percentage"] for r in rows), 100.0, 1e-6)
    assert len(pattern_recommendations(PatternId.BRAIN_FOG)) == 4


# ═══════════════════════════════════════════════════════════════════════
# INTEGRATION
# ═══════════════════════════════════════════════════════════════════════

def test_analyze_sample_data():
    result = analyze(TEST_DATA)
    assert result["entries"] == 21
    assert result["has_minimum_data"]
    assert result["scored_entries"] == 15
    assert 0.0 <= result["sali"]["raw"] <= 1.0
    approx(sum(result["weights"].values()), 1.0, 1e-3)
    by_pattern = {c["pattern"]: c for c in result["conflicts"]}
    assert by_pattern["high_load_low_recovery"]["severity"] == "high"
    assert by_pattern["prolonged_stress"]["severity"] == "medium"
    assert by_pattern["chronic_sleep_deficit"]["severity"] == "medium"


def test_report():
    report = generate_report(analyze(TEST_DATA))
    assert "ALLOSTATIC LOAD REPORT" in report
    assert "Weights" in report
    assert "Conflict Patterns" in report


def test_analyze_data_insufficient():
    rows = [e.to_dict() for e in make_entries(3)]
    result = analyze_data(rows)
    assert not result["has_minimum_data"]
    assert "sali" not in result
    assert "4 more entries needed" in generate_report(result)


def test_analyze_data_camel_case():
    rows = [
        {"date": (START + timedelta(days=i)).isoformat(), "sleepRecovery": 6, "physicalLoad": 5,
         "recoveryFromLoad": 6, "psychologicalStress": 5, "energyLevel": 4 + i % 3}
        for i in range(8)
    ]
    assert analyze_data(rows)["scored_entries"] == 2


def test_analyze_data_rejects_invalid():
    rows = [e.to_dict() for e in make_entries(8)]
    rows[2]["psychological_stress"] = 12
    try:
        analyze_data(rows)
        raise AssertionError("Should have raised EntryValidationError")
    except EntryValidationError as exc:
        assert exc.errors == ["entry 2: psychological_stress must be between 0 and 10"]


def test_analyze_data_empty():
    raises(ValueError, analyze_data, [])


def test_missing_file():
    raises(FileNotFoundError, analyze, "nonexistent.json")


# ═══════════════════════════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════════════════════════

SECTIONS = {
    test_ema_alphas: "Config",
    test_spearman_symmetric: "Statistics",
    test_range_helpers: "Normalization",
    test_alpha_from_period: "Smoothing",
    test_high_load_low_recovery_high: "Conflict Detection",
    test_weights_need_minimum: "Weights",
    test_normalize_metric_orientation: "Scoring",
    test_validate_ok: "Validation",
    test_gate_insufficient: "Pipeline",
    test_score_levels: "Interpretation",
    test_analyze_sample_data: "Integration",
}


def _run_all():
    passed = 0
    failed = 0
    for name, fn in list(globals().items()):
        if not name.startswith("test_") or not callable(fn):
            continue
        if fn in SECTIONS:
            print(f"\n[{SECTIONS[fn]}]")
        label = name[len("test_"):].replace("_", " ")
        try:
            fn()
            print(f"  ✓ {label}")
            passed += 1
        except Exception as e:
            print(f"  ✗ {label}: {e}")
            traceback.print_exc()
            failed += 1
    print(f"\n{'=' * 58}")
    print(f"  {passed} passed, {failed} failed")
    print(f"{'=' * 58}")
    return failed


if __name__ == "__main__":
    sys.exit(1 if _run_all() else 0)
