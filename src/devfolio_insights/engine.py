"""Cache-aware facade over the analytics components.

Each operation fingerprints its inputs into a deterministic cache key,
serves a fresh cached result when one exists, serves a stale one while it is
inside its strategy's stale-while-revalidate window (scheduling a refresh),
and otherwise computes, stores and returns the result. Results are the
JSON-safe dicts produced by the records' ``to_dict()``.

Cache failures never fail an operation: they are logged and treated as a
miss.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Executor
from typing import Any

from .cache.analytics_cache import AnalyticsCache
from .cache.strategies import CacheStrategy, generate_cache_key, get_cache_strategy
from .config import AnalyticsConfig
from .ml.anomaly_detector import detect_series_anomalies
from .ml.career_progression import analyze_progression
from .ml.match_scorer import filter_candidates, rank_candidates
from .ml.trend_forecaster import (
    extract_metric_values,
    forecast_metric,
    predict_career_milestones,
    predict_growth,
)
from .models import Candidate, CandidateSearch, JobPosting, MetricSeries, ProgressionData

logger = logging.getLogger(__name__)

# Bumping this intentionally invalidates every cached result
RESULT_VERSION = "v1"

ANONYMOUS_SUBJECT = "anonymous"


def fingerprint(payload: Any) -> str:
    """Short SHA256 of the canonical JSON form of ``payload``."""
    canonical_json = json.dumps(payload, sort_keys=True, ensure_ascii=True, default=str)
    return hashlib.sha256(canonical_json.encode()).hexdigest()[:16]


class AnalyticsEngine:
    """Runs analytics operations through an injected AnalyticsCache."""

    def __init__(
        self,
        cache: AnalyticsCache | None = None,
        config: AnalyticsConfig | None = None,
        executor: Executor | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            cache: Result cache; a private one sized from config if omitted.
            config: Engine settings (defaults if omitted).
            executor: Runs stale-while-revalidate refreshes in the
                background. Without one, refreshes run synchronously.
        """
        self.config = config if config is not None else AnalyticsConfig()
        if cache is None:
            cache = AnalyticsCache(max_entries=self.config.cache_max_entries)
        self.cache = cache
        self.executor = executor
        self._refreshing: set[str] = set()
        self._refresh_lock = threading.Lock()

    # Key and cache plumbing

    def _cache_key(self, operation: str, subject_id: str, payload: Any) -> str:
        return generate_cache_key(
            operation, subject_id, fingerprint([RESULT_VERSION, payload])
        )

    def _strategy(self, operation: str) -> CacheStrategy:
        return get_cache_strategy(self.config.strategy_for(operation))

    def _store(self, key: str, value: Any, strategy: CacheStrategy) -> None:
        try:
            self.cache.set_with_strategy(key, value, strategy)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def _refresh(self, key: str, compute: Callable[[], Any], strategy: CacheStrategy) -> None:
        try:
            self._store(key, compute(), strategy)
            logger.debug(f"Refreshed stale cache entry: {key}")
        except Exception as e:
            logger.warning(f"Background refresh failed for {key}: {type(e).__name__}: {e}")
        finally:
            with self._refresh_lock:
                self._refreshing.discard(key)

    def _schedule_refresh(
        self, key: str, compute: Callable[[], Any], strategy: CacheStrategy
    ) -> None:
        with self._refresh_lock:
            if key in self._refreshing:
                return
            self._refreshing.add(key)

        if self.executor is None:
            self._refresh(key, compute, strategy)
            return

        try:
            self.executor.submit(self._refresh, key, compute, strategy)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Could not schedule refresh for {key}: {e}")
            with self._refresh_lock:
                self._refreshing.discard(key)

    def _cached(
        self,
        operation: str,
        subject_id: str,
        payload: Any,
        compute: Callable[[], Any],
    ) -> Any:
        strategy = self._strategy(operation)
        key = self._cache_key(operation, subject_id, payload)

        try:
            entry = self.cache.peek(key)
            if entry is not None and self.cache.should_serve_stale(entry.timestamp, strategy):
                logger.debug(f"Serving stale result for {key}")
                self._schedule_refresh(key, compute, strategy)
                return entry.data

            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")

        logger.debug(f"Cache miss: {key}")
        result = compute()
        self._store(key, result, strategy)
        return result

    # Operations

    def growth_predictions(
        self,
        history: Sequence[Mapping[str, Any]],
        metric_names: Sequence[str],
        subject_id: str = ANONYMOUS_SUBJECT,
        periods: int | None = None,
    ) -> dict[str, Any]:
        """Next-period predictions plus multi-period forecasts per metric.

        Args:
            history: ``[{"date": ..., "metrics": {name: value}}]``.
            metric_names: Metrics to forecast.
            subject_id: Owner of the history, used for invalidation.
            periods: Forecast horizon (defaults to config.forecast_periods).
        """
        periods = periods or self.config.forecast_periods
        metric_names = list(metric_names)

        def compute() -> dict[str, Any]:
            predictions = predict_growth(history, metric_names)
            values = extract_metric_values(history, metric_names)
            return {
                "predictions": [p.to_dict() for p in predictions],
                "forecasts": {
                    metric: [pt.to_dict() for pt in forecast_metric(values[metric], periods)]
                    for metric in metric_names
                },
            }

        payload = {"history": list(history), "metrics": metric_names, "periods": periods}
        return self._cached("growth_predictions", subject_id, payload, compute)  # type: ignore[no-any-return]

    def series_anomalies(
        self, series: MetricSeries, subject_id: str = ANONYMOUS_SUBJECT
    ) -> dict[str, Any]:
        """Outliers and sudden changes in one metric series."""
        config = self.config

        def compute() -> dict[str, Any]:
            return detect_series_anomalies(
                series,
                threshold=config.outlier_threshold,
                change_threshold=config.change_threshold,
                method=config.outlier_method,  # type: ignore[arg-type]
            )

        payload = {
            "series": series.to_dict(),
            "threshold": config.outlier_threshold,
            "change_threshold": config.change_threshold,
            "method": config.outlier_method,
        }
        return self._cached("series_anomalies", subject_id, payload, compute)  # type: ignore[no-any-return]

    def career_trajectory(
        self, data: ProgressionData, subject_id: str = ANONYMOUS_SUBJECT
    ) -> dict[str, Any]:
        """Career stages, next-stage projection and strength analysis."""
        config = self.config

        def compute() -> dict[str, Any]:
            trajectory = analyze_progression(
                data,
                thresholds=config.stage_thresholds,
                sustain_periods=config.sustain_periods,
            )
            return trajectory.to_dict()

        payload = {
            "data": data.to_dict(),
            "thresholds": config.stage_thresholds,
            "sustain_periods": config.sustain_periods,
        }
        return self._cached("career_trajectory", subject_id, payload, compute)  # type: ignore[no-any-return]

    def career_milestones(
        self,
        current_metrics: Mapping[str, float],
        growth_rate_percent: float,
        current_stage: str,
        subject_id: str = ANONYMOUS_SUBJECT,
    ) -> dict[str, Any]:
        """Projected date of the next stage's metric requirements."""

        def compute() -> dict[str, Any]:
            return predict_career_milestones(
                current_metrics, growth_rate_percent, current_stage
            ).to_dict()

        payload = {
            "metrics": dict(current_metrics),
            "rate": growth_rate_percent,
            "stage": current_stage,
        }
        return self._cached("career_milestones", subject_id, payload, compute)  # type: ignore[no-any-return]

    def match_scores(
        self,
        job: JobPosting,
        candidates: Sequence[Candidate],
        search: CandidateSearch | None = None,
    ) -> dict[str, Any]:
        """Rank candidates for a job, optionally pre-filtered by a search.

        Results are keyed by the job id, so ``invalidate_subject(job.id)``
        drops them.
        """
        ideal = self.config.ideal_experience_years

        def compute() -> dict[str, Any]:
            pool = filter_candidates(candidates, search) if search else list(candidates)
            ranked = rank_candidates(pool, job, ideal_experience=ideal)
            return {
                "job_id": job.id,
                "considered": len(pool),
                "matches": [b.to_dict() for b in ranked],
            }

        payload = {
            "job": job.to_dict(),
            "candidates": [c.to_dict() for c in candidates],
            "search": vars(search) if search else None,
            "ideal_experience": ideal,
        }
        return self._cached("match_scores", job.id, payload, compute)  # type: ignore[no-any-return]

    def invalidate_subject(self, subject_id: str) -> int:
        """Drop every cached result belonging to ``subject_id``.

        Returns:
            Number of entries removed.
        """
        removed = self.cache.invalidate(f":{subject_id}:")
        logger.info(f"Invalidated {removed} cached results for {subject_id}")
        return removed
