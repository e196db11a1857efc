"""Linear trend forecaster for developer growth predictions.

Fits an ordinary least squares line (value vs. sample index) to each metric
history and extrapolates it. Uses numpy for the regression and pandas to
align the chronological history.

Key features:
- Data quality assessment (insufficient/low_confidence/normal)
- Outlier clipping (3 standard deviations) before fitting
- Confidence that saturates with sample count and drops with residual noise
- Multi-period projections with confidence bands
- Stage-requirement ETA projection from a scalar growth rate
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import numpy as np
import pandas as pd

from ..models import (
    STAGE_ORDER,
    ForecastPoint,
    DataQuality,
    GrowthPrediction,
    MilestoneProjection,
    stage_rank,
)

logger = logging.getLogger(__name__)

# Data quality thresholds (in samples)
MIN_SAMPLES_REQUIRED = 2
LOW_CONFIDENCE_THRESHOLD = 6

# Sample count at which the sample-size factor of confidence saturates
FULL_CONFIDENCE_SAMPLES = 12

# Outlier clipping threshold
OUTLIER_STD_THRESHOLD = 3.0

# Slope dead-band: |slope| must exceed max(absolute, relative * |mean|)
TREND_DEAD_BAND = 0.05
TREND_RELATIVE_DEAD_BAND = 0.01

# Days in one projection month
DAYS_PER_MONTH = 30

# Metric thresholds a developer must reach before the given stage
STAGE_METRIC_REQUIREMENTS: dict[str, dict[str, float]] = {
    "mid": {"commits": 500, "reviews": 50},
    "senior": {"commits": 1000, "reviews": 150, "stars": 100},
    "lead": {"commits": 2000, "reviews": 300, "stars": 500},
    "principal": {"commits": 4000, "reviews": 600, "stars": 1000},
}

# Concrete milestones, in the order they are usually reached
METRIC_MILESTONES: list[dict[str, Any]] = [
    {"stage": "junior", "title": "100 Commits", "metric": "commits", "threshold": 100},
    {"stage": "mid", "title": "500 Commits", "metric": "commits", "threshold": 500},
    {
        "stage": "mid",
        "title": "First Popular Repo (50 stars)",
        "metric": "stars",
        "threshold": 50,
    },
    {"stage": "senior", "title": "1000 Commits", "metric": "commits", "threshold": 1000},
    {
        "stage": "senior",
        "title": "Major OSS Contribution (100 stars)",
        "metric": "stars",
        "threshold": 100,
    },
]

GROWTH_FACTORS: dict[str, list[str]] = {
    "commits": [
        "Consistent coding practice",
        "Project complexity",
        "Available time",
    ],
    "codeQuality": [
        "Code review participation",
        "Testing practices",
        "Experience level",
    ],
    "collaboration": [
        "Team size",
        "Communication skills",
        "Community engagement",
    ],
    "stars": [
        "Project visibility",
        "Documentation quality",
        "Community engagement",
    ],
}
DEFAULT_GROWTH_FACTORS = ["General experience", "Learning curve", "Motivation"]

SKILL_MARKET_DEMAND: dict[str, int] = {
    "typescript": 90,
    "react": 95,
    "python": 92,
    "nodejs": 85,
    "docker": 80,
    "kubernetes": 78,
    "aws": 88,
    "go": 75,
}
DEFAULT_MARKET_DEMAND = 60


# Confidence band multiplier per data-quality tier (95%, or ~99% for short histories)
BAND_MULTIPLIERS: dict[str, float] = {"normal": 1.96, "low_confidence": 2.58}


@dataclass(frozen=True)
class LinearTrend:
    """OLS fit of value against sample index."""

    slope: float
    intercept: float
    residual_se: float
    sample_count: int

    def predict(self, index: float) -> float:
        return self.slope * index + self.intercept


def data_quality(sample_count: int) -> DataQuality:
    """Tier a metric history by how many usable samples it has."""
    if sample_count < MIN_SAMPLES_REQUIRED:
        return "insufficient"
    if sample_count < LOW_CONFIDENCE_THRESHOLD:
        return "low_confidence"
    return "normal"


def clip_outliers(
    values: np.ndarray, std_threshold: float = OUTLIER_STD_THRESHOLD
) -> np.ndarray:
    """Pull samples further than ``std_threshold`` deviations back to the band edge.

    Series too short, constant, or too large for a finite mean/std are
    returned unchanged.
    """
    if len(values) < 2:
        return values

    with np.errstate(over="ignore", invalid="ignore"):
        center = float(np.nanmean(values))
        spread = float(np.nanstd(values))
    if spread == 0 or not (math.isfinite(center) and math.isfinite(spread)):
        return values

    reach = std_threshold * spread
    return np.clip(values, center - reach, center + reach)


def fit_linear_trend(values: Sequence[float] | np.ndarray) -> LinearTrend:
    """Fit value = slope * index + intercept by ordinary least squares.

    Args:
        values: Observations in chronological order (NaN already removed).

    Returns:
        LinearTrend. With fewer than 2 values the slope is 0 and the
        intercept is the only value (or 0). When the fit overflows the
        float range the trend is flat at the last value.
    """
    y_values = np.asarray(values, dtype=float)
    n = len(y_values)

    if n < 2:
        intercept = float(y_values[0]) if n == 1 else 0.0
        return LinearTrend(slope=0.0, intercept=intercept, residual_se=0.0, sample_count=n)

    x_values = np.arange(n)
    try:
        with np.errstate(over="ignore", invalid="ignore"):
            coeffs = np.polyfit(x_values, y_values, 1)  # slope, intercept
            residuals = y_values - np.polyval(coeffs, x_values)
            residual_se = float(np.std(residuals, ddof=1))
    except np.linalg.LinAlgError as e:
        logger.debug(f"Linear fit did not converge on {n} samples: {e}")
        coeffs = np.array([np.nan, np.nan])
        residual_se = 0.0

    slope, intercept = float(coeffs[0]), float(coeffs[1])
    if not (math.isfinite(slope) and math.isfinite(intercept)):
        return LinearTrend(
            slope=0.0, intercept=float(y_values[-1]), residual_se=0.0, sample_count=n
        )

    return LinearTrend(
        slope=slope,
        intercept=intercept,
        residual_se=residual_se if math.isfinite(residual_se) else 0.0,
        sample_count=n,
    )


def classify_trend(slope: float, mean: float) -> str:
    """Classify a slope as increasing/decreasing/stable using the dead-band."""
    dead_band = max(TREND_DEAD_BAND, TREND_RELATIVE_DEAD_BAND * abs(mean))
    if slope > dead_band:
        return "increasing"
    if slope < -dead_band:
        return "decreasing"
    return "stable"


def calculate_confidence(trend: LinearTrend, mean: float) -> float:
    """Confidence in [0, 1] from sample count and residual noise.

    The sample factor grows linearly from 0 (one sample) to 1 at
    FULL_CONFIDENCE_SAMPLES; the fit factor is 1 / (1 + residual_se / scale)
    where scale is the series magnitude (at least 1).
    """
    n = trend.sample_count
    if n < MIN_SAMPLES_REQUIRED:
        return 0.0

    sample_factor = min(1.0, (n - 1) / (FULL_CONFIDENCE_SAMPLES - 1))
    scale = max(abs(mean), 1.0)
    fit_factor = 1.0 / (1.0 + trend.residual_se / scale)

    confidence = sample_factor * fit_factor
    if not math.isfinite(confidence):
        return 0.0
    return round(min(1.0, max(0.0, confidence)), 4)


def _history_frame(
    history: Sequence[Mapping[str, Any]], metric_names: Sequence[str]
) -> pd.DataFrame:
    """Build a chronologically sorted frame with one column per metric."""
    rows = []
    for entry in history:
        metrics = entry.get("metrics") or {}
        row: dict[str, Any] = {"date": entry.get("date")}
        for metric in metric_names:
            row[metric] = metrics.get(metric)
        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=["date", *metric_names])

    df = pd.DataFrame(rows)
    df["date"] = pd.to_datetime(df["date"], errors="coerce", utc=True)
    for metric in metric_names:
        df[metric] = pd.to_numeric(df[metric], errors="coerce")

    # Stable sort keeps input order for undated rows
    return df.sort_values("date", kind="mergesort", na_position="last").reset_index(
        drop=True
    )


def _metric_values(df: pd.DataFrame, metric: str) -> np.ndarray:
    if metric not in df.columns:
        return np.array([], dtype=float)
    y_values = df[metric].to_numpy(dtype=float)
    return y_values[np.isfinite(y_values)]


def extract_metric_values(
    history: Sequence[Mapping[str, Any]], metric_names: Sequence[str]
) -> dict[str, list[float]]:
    """Chronological finite values of each metric in a history."""
    df = _history_frame(history, metric_names)
    return {metric: _metric_values(df, metric).tolist() for metric in metric_names}


def predict_metric(metric: str, values: Sequence[float] | np.ndarray) -> GrowthPrediction:
    """Forecast one metric one period past its last observation.

    Args:
        metric: Metric name.
        values: Observations in chronological order.

    Returns:
        GrowthPrediction. Fewer than 2 observations yield confidence 0 and
        the last known value (or 0) as prediction.
    """
    y_values = np.asarray(values, dtype=float)
    y_values = y_values[np.isfinite(y_values)]
    quality = data_quality(len(y_values))
    factors = GROWTH_FACTORS.get(metric, DEFAULT_GROWTH_FACTORS)

    if quality == "insufficient":
        last = float(y_values[-1]) if len(y_values) else 0.0
        return GrowthPrediction(
            metric=metric,
            current_value=last,
            predicted_value=last,
            confidence=0.0,
            trend="stable",
            slope=0.0,
            data_quality="insufficient",
            sample_count=len(y_values),
            factors=list(factors),
        )

    current_value = float(y_values[-1])
    with np.errstate(over="ignore", invalid="ignore"):
        mean = float(np.mean(y_values))
    if not math.isfinite(mean):
        mean = current_value
    trend = fit_linear_trend(clip_outliers(y_values))

    predicted = trend.predict(len(y_values))
    if not math.isfinite(predicted):
        predicted = current_value

    return GrowthPrediction(
        metric=metric,
        current_value=current_value,
        predicted_value=round(max(0.0, predicted), 4),
        confidence=calculate_confidence(trend, mean),
        trend=classify_trend(trend.slope, mean),  # type: ignore[arg-type]
        slope=round(trend.slope, 6),
        data_quality=quality,
        sample_count=len(y_values),
        factors=list(factors),
    )


def predict_growth(
    history: Sequence[Mapping[str, Any]],
    metric_names: Sequence[str],
) -> list[GrowthPrediction]:
    """Predict the next-period value of each requested metric.

    Args:
        history: ``[{"date": ..., "metrics": {name: value}}]`` in any order.
        metric_names: Metrics to forecast; one prediction per name, in order.

    Returns:
        List of GrowthPrediction.
    """
    df = _history_frame(history, metric_names)

    predictions = []
    for metric in metric_names:
        try:
            predictions.append(predict_metric(metric, _metric_values(df, metric)))
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.warning(f"Failed to forecast {metric}: {type(e).__name__}: {e}")
            predictions.append(predict_metric(metric, []))

    logger.debug(
        f"Predicted growth for {len(predictions)} metrics over {len(df)} history rows"
    )
    return predictions


def forecast_metric(
    values: Sequence[float] | np.ndarray, periods: int = 3
) -> list[ForecastPoint]:
    """Project a metric several periods ahead with confidence bands.

    Args:
        values: Observations in chronological order.
        periods: Number of future periods.

    Returns:
        ForecastPoints for periods 1..N past the last observation, or an
        empty list when the data is insufficient.
    """
    y_values = np.asarray(values, dtype=float)
    y_values = y_values[np.isfinite(y_values)]
    quality = data_quality(len(y_values))
    if quality == "insufficient" or periods <= 0:
        return []

    trend = fit_linear_trend(clip_outliers(y_values))
    margin = BAND_MULTIPLIERS[quality] * trend.residual_se
    last_value = float(y_values[-1])

    points = []
    for i in range(1, periods + 1):
        predicted = trend.predict(len(y_values) - 1 + i)
        if not math.isfinite(predicted + margin):
            predicted, margin = last_value, 0.0
        points.append(
            ForecastPoint(
                period_index=i,
                predicted=round(max(0.0, predicted), 2),
                lower_bound=round(max(0.0, predicted - margin), 2),
                upper_bound=round(max(0.0, predicted + margin), 2),
            )
        )
    return points


def months_to_reach(current: float, target: float, growth_rate_percent: float) -> float | None:
    """Months until ``current`` compounds to ``target`` at the monthly rate.

    Returns:
        0.0 when already reached, None when the target is unreachable
        (non-positive growth or nothing to compound from).
    """
    if current >= target:
        return 0.0
    if not math.isfinite(growth_rate_percent) or growth_rate_percent <= 0:
        return None
    if current <= 0:
        return None
    return math.log(target / current) / math.log1p(growth_rate_percent / 100)


def _next_metric_milestone(
    current_metrics: Mapping[str, float],
    growth_rate_percent: float,
    now: datetime,
) -> dict[str, Any] | None:
    for milestone in METRIC_MILESTONES:
        current = float(current_metrics.get(milestone["metric"], 0) or 0)
        if current < milestone["threshold"]:
            months = months_to_reach(current, milestone["threshold"], growth_rate_percent)
            return {
                "title": milestone["title"],
                "metric": milestone["metric"],
                "threshold": milestone["threshold"],
                "estimated_date": (
                    (now + timedelta(days=DAYS_PER_MONTH * math.ceil(months))).isoformat()
                    if months is not None
                    else None
                ),
            }
    return None


def predict_career_milestones(
    current_metrics: Mapping[str, float],
    growth_rate_percent: float,
    current_stage: str,
    now: datetime | None = None,
) -> MilestoneProjection:
    """Project when the next career stage's metric requirements are met.

    Each requirement compounds at ``growth_rate_percent`` per month. The
    stage ETA is the slowest unmet requirement.

    Args:
        current_metrics: Current totals, e.g. ``{"commits": 420, "stars": 30}``.
        growth_rate_percent: Monthly growth rate in percent.
        current_stage: Current stage name (junior..principal).
        now: Reference time for the ETA (defaults to current UTC time).

    Returns:
        MilestoneProjection. Zero, negative or non-finite growth, or a
        requirement with nothing to grow from, gives no projected date.
    """
    now = now or datetime.now(timezone.utc)
    rank = stage_rank(current_stage)
    if rank < 0:
        logger.warning(f"Unknown career stage '{current_stage}', treating as junior")
        rank = 0
    stage = STAGE_ORDER[rank]

    next_milestone = _next_metric_milestone(current_metrics, growth_rate_percent, now)

    if rank >= len(STAGE_ORDER) - 1:
        return MilestoneProjection(
            current_stage=stage,
            next_stage=None,
            estimated_date=None,
            months_to_next_stage=None,
            probability=0.0,
            next_milestone=next_milestone,
        )

    next_stage = STAGE_ORDER[rank + 1]
    requirements = STAGE_METRIC_REQUIREMENTS[next_stage]

    unmet: list[str] = []
    progress: dict[str, float] = {}
    months_needed: list[float | None] = []
    for metric, target in requirements.items():
        current = float(current_metrics.get(metric, 0) or 0)
        progress[metric] = round(min(1.0, max(0.0, current / target)), 4)
        if current < target:
            unmet.append(f"{int(target)}+ {metric} (currently {current:g})")
            months_needed.append(months_to_reach(current, target, growth_rate_percent))

    if not unmet:
        months: float | None = 0.0
    elif any(m is None for m in months_needed):
        months = None
    else:
        months = max(m for m in months_needed if m is not None)

    estimated_date = None
    if months is not None:
        estimated_date = now + timedelta(days=DAYS_PER_MONTH * math.ceil(months))

    probability = 0.0
    if months is not None:
        rate = growth_rate_percent if math.isfinite(growth_rate_percent) else 0.0
        probability = min(0.95, 0.6 + max(0.0, rate) * 0.05)

    return MilestoneProjection(
        current_stage=stage,
        next_stage=next_stage,
        estimated_date=estimated_date,
        months_to_next_stage=round(months, 2) if months is not None else None,
        unmet_requirements=unmet,
        requirement_progress=progress,
        probability=round(probability, 4),
        next_milestone=next_milestone,
    )


def predict_skill_demand(
    skill: str, usage_values: Sequence[float] | np.ndarray
) -> dict[str, Any]:
    """Estimate market demand for a skill adjusted by its usage trend.

    Args:
        skill: Skill name.
        usage_values: Usage observations in chronological order.

    Returns:
        Dict with current/predicted demand (0-100), trend direction and a
        recommendation string.
    """
    y_values = np.asarray(usage_values, dtype=float)
    y_values = y_values[np.isfinite(y_values)]

    current_demand = SKILL_MARKET_DEMAND.get(skill.lower(), DEFAULT_MARKET_DEMAND)

    if len(y_values) >= 2:
        trend = classify_trend(fit_linear_trend(y_values).slope, float(np.mean(y_values)))
    else:
        trend = "stable"
    growth_rate = 0.0
    if len(y_values) > 1 and y_values[0] != 0:
        growth_rate = float((y_values[-1] - y_values[0]) / abs(y_values[0]))

    predicted_demand = min(100.0, max(0.0, current_demand * (1 + growth_rate)))

    direction = {"increasing": "rising", "decreasing": "falling"}.get(trend, "stable")

    if current_demand > 80 and direction == "rising":
        recommendation = f"High priority: {skill} is in high demand and growing"
    elif current_demand > 70:
        recommendation = f"Good investment: {skill} has strong market presence"
    elif direction == "falling":
        recommendation = f"Consider alternatives: {skill} demand is declining"
    else:
        recommendation = f"Monitor: {skill} has moderate demand"

    return {
        "skill": skill,
        "current_demand": current_demand,
        "predicted_demand": int(round(predicted_demand)),
        "trend_direction": direction,
        "recommendation": recommendation,
    }
