"""
Interpretation of engine output: score levels, trend direction, contributor
attribution, and per-pattern guidance.

Everything here reads finished ScoreEntry / ConflictPattern values; nothing
is recomputed from raw entries.
"""

from typing import Dict, List, Optional, Sequence

from allostat.config import AllostatConfig
from allostat.schema import METRICS, PatternId, ScoreEntry
from allostat.signals import TREND_FLAT, determine_trend
from allostat.stats import mean


LEVEL_OPTIMAL = "optimal"
LEVEL_GOOD = "good"
LEVEL_MODERATE = "moderate"
LEVEL_HIGH = "high"
LEVEL_CRITICAL = "critical"

LEVEL_DESCRIPTIONS = {
    LEVEL_OPTIMAL: "Your system is well-balanced with minimal strain. Excellent recovery and adaptation.",
    LEVEL_GOOD: "Low allostatic load. Your system is handling demands well with adequate recovery.",
    LEVEL_MODERATE: "Moderate strain on your system. Some areas may need attention to prevent accumulation.",
    LEVEL_HIGH: "High allostatic load. Your system is under significant strain. Recovery strategies needed.",
    LEVEL_CRITICAL: "Critical strain level. Immediate attention to recovery and stress reduction recommended.",
}


# ---------------------------------------------------------------------------
# Score level
# ---------------------------------------------------------------------------

def score_level(score: float, cfg: Optional[AllostatConfig] = None) -> str:
    """Bucket a sALI value into one of five levels."""
    lv = (cfg or AllostatConfig()).levels
    if score <= lv.optimal:
        return LEVEL_OPTIMAL
    if score <= lv.good:
        return LEVEL_GOOD
    if score <= lv.moderate:
        return LEVEL_MODERATE
    if score <= lv.high:
        return LEVEL_HIGH
    return LEVEL_CRITICAL


def score_description(score: float, cfg: Optional[AllostatConfig] = None) -> str:
    return LEVEL_DESCRIPTIONS[score_level(score, cfg)]


# ---------------------------------------------------------------------------
# Trend between consecutive scores
# ---------------------------------------------------------------------------

def analyze_trend(
    current: ScoreEntry,
    previous: Optional[ScoreEntry] = None,
    cfg: Optional[AllostatConfig] = None,
) -> Dict[str, object]:
    """
    Compare a score with its predecessor.

    Lower sALI is better, so a falling raw score is "improving". EMA trends
    use the smoothing trend threshold to suppress noise.

    Returns:
        {"direction", "magnitude", "short_term_trend", "long_term_trend"}
    """
    cfg = cfg or AllostatConfig()
    if previous is None:
        return {
            "direction": "stable",
            "magnitude": 0.0,
            "short_term_trend": TREND_FLAT,
            "long_term_trend": TREND_FLAT,
        }

    change = current.raw_score - previous.raw_score
    magnitude = abs(change)

    if magnitude < cfg.levels.stable_magnitude:
        direction = "stable"
    elif change < 0:
        direction = "improving"
    else:
        direction = "worsening"

    threshold = cfg.smoothing.trend_threshold
    return {
        "direction": direction,
        "magnitude": magnitude,
        "short_term_trend": determine_trend(current.ema_short, previous.ema_short, threshold),
        "long_term_trend": determine_trend(current.ema_long, previous.ema_long, threshold),
    }


# ---------------------------------------------------------------------------
# Contributors
# ---------------------------------------------------------------------------

def contributor_breakdown(score: ScoreEntry) -> List[Dict[str, object]]:
    """
    Each metric's share of the raw score, largest first.

    Items: {"metric", "contribution", "percentage", "normalized_value", "weight"}.
    Percentages are 0 when the raw score itself is 0.
    """
    rows = []
    for m in METRICS:
        contribution = score.contribution(m)
        rows.append({
            "metric": m,
            "contribution": contribution,
            "percentage": (contribution / score.raw_score * 100.0) if score.raw_score > 0 else 0.0,
            "normalized_value": score.components[m],
            "weight": score.weights_snapshot[m],
        })
    rows.sort(key=lambda r: r["contribution"], reverse=True)
    return rows


def top_contributor(score: ScoreEntry) -> Dict[str, object]:
    return contributor_breakdown(score)[0]


def score_averages(scores: Sequence[ScoreEntry]) -> Dict[str, float]:
    """Averages of raw and smoothed scores plus the raw range."""
    if not scores:
        return {"avg_raw": 0.0, "avg_ema_short": 0.0, "avg_ema_long": 0.0, "min": 0.0, "max": 0.0}
    raw = [s.raw_score for s in scores]
    return {
        "avg_raw": mean(raw),
        "avg_ema_short": mean([s.ema_short for s in scores]),
        "avg_ema_long": mean([s.ema_long for s in scores]),
        "min": min(raw),
        "max": max(raw),
    }


# ---------------------------------------------------------------------------
# Pattern guidance
# ---------------------------------------------------------------------------

PATTERN_DISPLAY_NAMES = {
    PatternId.HIGH_LOAD_LOW_RECOVERY: "High Load, Low Recovery",
    PatternId.POOR_SLEEP_HIGH_STRESS: "Poor Sleep + High Stress",
    PatternId.OVERWORK: "Overwork Pattern",
    PatternId.FATIGUE_WITH_LOAD: "Fatigue with Load",
    PatternId.PROLONGED_STRESS: "Prolonged Stress",
    PatternId.CHRONIC_SLEEP_DEFICIT: "Chronic Sleep Deficit",
    PatternId.PROLONGED_FATIGUE: "Prolonged Fatigue",
    PatternId.BRAIN_FOG: "Brain Fog Pattern",
}

PATTERN_RECOMMENDATIONS = {
    PatternId.HIGH_LOAD_LOW_RECOVERY: (
        "Schedule a rest day or active recovery session",
        "Ensure adequate sleep tonight (7-9 hours)",
        "Consider reducing workout intensity tomorrow",
        "Focus on nutrition and hydration",
    ),
    PatternId.POOR_SLEEP_HIGH_STRESS: (
        "Practice relaxation techniques before bed",
        "Limit screen time 1 hour before sleep",
        "Try meditation or breathing exercises",
        "Consider journaling to process stress",
    ),
    PatternId.OVERWORK: (
        "Review your schedule and identify non-essential tasks",
        "Delegate or postpone lower-priority items",
        "Schedule breaks throughout the day",
        "Consider discussing workload with supervisor",
    ),
    PatternId.FATIGUE_WITH_LOAD: (
        "Reduce physical demands today if possible",
        "Take short breaks to prevent further depletion",
        "Prioritize sleep and recovery tonight",
        "Re-evaluate your energy management strategy",
    ),
    PatternId.PROLONGED_STRESS: (
        "Consult with a healthcare provider or therapist",
        "Implement stress management techniques daily",
        "Identify and address chronic stressors",
        "Consider lifestyle changes to reduce ongoing stress",
    ),
    PatternId.CHRONIC_SLEEP_DEFICIT: (
        "Establish consistent sleep schedule",
        "Create a relaxing bedtime routine",
        "Evaluate sleep environment (temperature, light, noise)",
        "Consult sleep specialist if problems persist",
    ),
    PatternId.PROLONGED_FATIGUE: (
        "Consult healthcare provider to rule out medical causes",
        "Review nutrition and ensure balanced diet",
        "Gradually increase physical activity",
        "Address any underlying sleep or stress issues",
    ),
    PatternId.BRAIN_FOG: (
        "Consult healthcare provider - this is a serious pattern",
        "Comprehensive health evaluation recommended",
        "Review medication side effects",
        "Consider cognitive behavioral therapy",
    ),
}


def pattern_display_name(pattern: PatternId) -> str:
    return PATTERN_DISPLAY_NAMES.get(pattern, str(pattern))


def pattern_recommendations(pattern: PatternId) -> List[str]:
    return list(PATTERN_RECOMMENDATIONS.get(pattern, ("Monitor the situation and track trends",)))
