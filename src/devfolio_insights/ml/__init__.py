"""Analytics models for developer activity data.

This package contains:
- anomaly_detector: outliers and sudden changes in a metric series
- trend_forecaster: linear growth predictions and stage-requirement ETAs
- career_progression: career stage state machine and milestone extraction
- match_scorer: weighted candidate-to-job compatibility

Every module is a set of pure functions over the records in
``devfolio_insights.models``; caching lives in ``devfolio_insights.engine``.
"""
