"""Statistical anomaly detection over activity metric series.

Two detectors are provided:
- Outliers: samples whose absolute z-score exceeds a threshold. Scores are
  computed over the whole series (not a rolling window), by default against
  the mean/std of the other samples so that a single spike in a short series
  can still be flagged.
- Sudden changes: relative jumps between consecutive samples.

Both are pure functions of the input values. Constant series, empty series
and zero-valued predecessors are guarded so no NaN/Infinity reaches callers.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Literal

import numpy as np

from ..models import MetricSeries, Outlier, SuddenChange

logger = logging.getLogger(__name__)

DEFAULT_OUTLIER_THRESHOLD = 2.5
DEFAULT_CHANGE_THRESHOLD = 0.5

ScoringMethod = Literal["leave_one_out", "population"]
SCORING_METHODS = ("leave_one_out", "population")
DEFAULT_SCORING_METHOD: ScoringMethod = "leave_one_out"

# Relative std below which a series is treated as constant
_STD_EPSILON = 1e-12


def _as_array(series: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(series, dtype=float).reshape(-1)


def score_series(
    series: Sequence[float] | np.ndarray,
    method: ScoringMethod = DEFAULT_SCORING_METHOD,
) -> list[float]:
    """Compute the absolute z-score of every sample.

    With ``method="population"`` each sample is scored against the mean and
    population std of the whole series. With ``"leave_one_out"`` the sample
    is excluded from its own mean/std; if the remaining samples are constant
    the whole-series std is used instead.

    Args:
        series: Metric values in chronological order.
        method: Scoring method.

    Returns:
        One score per sample. All scores are 0.0 when the series std is zero;
        non-finite samples score 0.0 and are excluded from mean/std.
    """
    if method not in SCORING_METHODS:
        raise ValueError(f"Unknown scoring method: {method}")

    values = _as_array(series)
    if values.size == 0:
        return []

    finite = np.isfinite(values)
    count = int(finite.sum())
    if count < 2:
        return [0.0] * values.size

    sample = values[finite]
    mean = float(np.mean(sample))
    deviations = sample - mean
    pop_std = float(np.sqrt(np.mean(deviations**2)))

    # Constant series (within float noise) have no outliers
    if pop_std <= _STD_EPSILON * max(1.0, abs(mean)):
        return [0.0] * values.size

    if method == "population" or count < 3:
        finite_scores = np.abs(deviations) / pop_std
    else:
        m = count
        sum_sq = float(np.sum(deviations**2))
        # Mean/variance of the other m-1 samples, expressed through the
        # deviations from the full mean
        others_var = (sum_sq - deviations**2) / (m - 1) - (deviations / (m - 1)) ** 2
        others_std = np.sqrt(np.clip(others_var, 0.0, None))
        others_std = np.where(
            others_std <= _STD_EPSILON * max(1.0, abs(mean)), pop_std, others_std
        )
        finite_scores = np.abs(deviations) * m / (m - 1) / others_std

    scores = np.zeros(values.size)
    scores[finite] = finite_scores
    return [float(s) for s in scores]


def detect_outliers(
    series: Sequence[float] | np.ndarray,
    threshold: float = DEFAULT_OUTLIER_THRESHOLD,
    method: ScoringMethod = DEFAULT_SCORING_METHOD,
) -> list[Outlier]:
    """Flag samples whose absolute z-score exceeds ``threshold``.

    Args:
        series: Metric values in chronological order.
        threshold: Minimum score (exclusive) for a sample to be reported.
        method: Scoring method, see ``score_series``.

    Returns:
        Outliers in index order. Empty for constant or too-short series.
    """
    values = _as_array(series)
    scores = score_series(values, method)

    outliers = [
        Outlier(index=i, value=float(values[i]), score=round(score, 4))
        for i, score in enumerate(scores)
        if score > threshold
    ]
    if outliers:
        logger.debug(
            f"Detected {len(outliers)} outliers in {values.size} samples "
            f"(threshold {threshold})"
        )
    return outliers


def detect_sudden_changes(
    series: Sequence[float] | np.ndarray,
    change_threshold: float = DEFAULT_CHANGE_THRESHOLD,
) -> list[SuddenChange]:
    """Flag step changes between consecutive samples.

    A change at index i is ``|x[i] - x[i-1]| / |x[i-1]|``. Pairs whose
    predecessor is zero (or either side non-finite) are skipped.

    Args:
        series: Metric values in chronological order.
        change_threshold: Minimum relative change (exclusive) to report.

    Returns:
        Sudden changes in index order.
    """
    values = _as_array(series)
    changes: list[SuddenChange] = []

    for i in range(1, values.size):
        prev = values[i - 1]
        curr = values[i]
        if prev == 0 or not (np.isfinite(prev) and np.isfinite(curr)):
            continue
        change = abs(curr - prev) / abs(prev)
        if change > change_threshold:
            changes.append(SuddenChange(index=i, change_percent=round(float(change), 4)))

    return changes


def detect_series_anomalies(
    series: MetricSeries,
    threshold: float = DEFAULT_OUTLIER_THRESHOLD,
    change_threshold: float = DEFAULT_CHANGE_THRESHOLD,
    method: ScoringMethod = DEFAULT_SCORING_METHOD,
) -> dict[str, Any]:
    """Run both detectors over a named series.

    Returns:
        Dict with the metric name, sample count, per-sample scores, outliers
        and sudden changes (timestamps attached for each flagged index).
    """
    values = series.values()
    timestamps = [s.timestamp.isoformat() for s in series.samples]

    outliers = detect_outliers(values, threshold, method)
    changes = detect_sudden_changes(values, change_threshold)

    return {
        "metric": series.name,
        "sample_count": len(values),
        "scores": [round(s, 4) for s in score_series(values, method)],
        "outliers": [
            {**o.to_dict(), "timestamp": timestamps[o.index]} for o in outliers
        ],
        "sudden_changes": [
            {**c.to_dict(), "timestamp": timestamps[c.index]} for c in changes
        ],
    }
