"""CLI entry point for devfolio-insights."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .config import AnalyticsConfig, ConfigurationError, load_config
from .engine import ANONYMOUS_SUBJECT, AnalyticsEngine
from .ml.anomaly_detector import SCORING_METHODS
from .models import STAGE_ORDER
from .serialization import (
    InputError,
    history_metric_names,
    load_json,
    parse_candidates,
    parse_history,
    parse_job,
    parse_progression_data,
    parse_search,
    parse_series,
    write_json,
)
from .utils.logging_config import LoggingConfig, setup_logging

if TYPE_CHECKING:
    from argparse import Namespace

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:  # pragma: no cover
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="devfolio-insights",
        description="Developer growth forecasts, anomaly detection, career "
        "trajectories and job matching from portfolio activity data.",
    )

    # Global options
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["console", "jsonl"],
        default="console",
        help="Log format: console (human-readable) or jsonl (structured)",
    )
    parser.add_argument(
        "--artifacts-dir",
        type=Path,
        default=Path("run_artifacts"),
        help="Directory for run artifacts (jsonl logs)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml file",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Growth command
    growth_parser = subparsers.add_parser(
        "growth",
        help="Predict next-period values of activity metrics",
    )
    growth_parser.add_argument(
        "--history",
        type=Path,
        required=True,
        help='JSON file: [{"date": ..., "metrics": {name: value}}]',
    )
    growth_parser.add_argument(
        "--metrics",
        type=str,
        help="Comma-separated metric names (default: every metric in the history)",
    )
    growth_parser.add_argument(
        "--periods",
        type=int,
        help="Forecast horizon in periods (default from config)",
    )
    _add_output_args(growth_parser)

    # Anomalies command
    anomalies_parser = subparsers.add_parser(
        "anomalies",
        help="Detect outliers and sudden changes in a metric series",
    )
    anomalies_parser.add_argument(
        "--series",
        type=Path,
        required=True,
        help='JSON file: {"name", "samples": [{"timestamp", "value"}]} or [numbers]',
    )
    anomalies_parser.add_argument("--name", type=str, help="Override the series name")
    anomalies_parser.add_argument(
        "--threshold",
        type=float,
        help="Outlier score threshold (default 2.5)",
    )
    anomalies_parser.add_argument(
        "--change-threshold",
        type=float,
        help="Relative change threshold (default 0.5)",
    )
    anomalies_parser.add_argument(
        "--method",
        type=str,
        choices=list(SCORING_METHODS),
        help="Outlier scoring method",
    )
    _add_output_args(anomalies_parser)

    # Career command
    career_parser = subparsers.add_parser(
        "career",
        help="Analyze career stage progression from activity history",
    )
    career_parser.add_argument(
        "--activity",
        type=Path,
        required=True,
        help='JSON file: {"commits", "prs", "repos", "skills"}',
    )
    _add_output_args(career_parser)

    # Milestones command
    milestones_parser = subparsers.add_parser(
        "milestones",
        help="Project when the next career stage's requirements are met",
    )
    milestones_parser.add_argument(
        "--metrics",
        type=Path,
        required=True,
        help='JSON file with current totals, e.g. {"commits": 420, "stars": 30}',
    )
    milestones_parser.add_argument(
        "--growth-rate",
        type=float,
        required=True,
        help="Monthly growth rate in percent",
    )
    milestones_parser.add_argument(
        "--stage",
        type=str,
        choices=list(STAGE_ORDER),
        default="junior",
        help="Current career stage",
    )
    _add_output_args(milestones_parser)

    # Match command
    match_parser = subparsers.add_parser(
        "match",
        help="Rank candidates for a job posting",
    )
    match_parser.add_argument(
        "--job",
        type=Path,
        required=True,
        help="JSON file with the job posting",
    )
    match_parser.add_argument(
        "--candidates",
        type=Path,
        required=True,
        help="JSON file with a list of candidates",
    )
    match_parser.add_argument(
        "--search",
        type=Path,
        help="JSON file with search filters applied before ranking",
    )
    match_parser.add_argument(
        "--ideal-experience",
        type=float,
        help="Years of experience that earn the full experience score",
    )
    _add_output_args(match_parser)

    return parser


def _add_output_args(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--subject",
        type=str,
        default=ANONYMOUS_SUBJECT,
        help="Subject (user) id the results belong to",
    )
    subparser.add_argument(
        "--output",
        type=Path,
        help="Write the JSON result to this file instead of stdout",
    )


def _build_engine(args: Namespace, **overrides: Any) -> AnalyticsEngine:
    config: AnalyticsConfig = load_config(getattr(args, "config", None), **overrides)
    logging.getLogger().setLevel(config.log_level)
    config.log_summary()
    return AnalyticsEngine(config=config)


def _emit(result: Any, output: Path | None) -> None:
    if output is None:
        write_json(result, sys.stdout)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as f:
        write_json(result, f)
    logger.info(f"Wrote result to {output}")


def cmd_growth(args: Namespace) -> int:
    """Execute the growth command."""
    logger.info(f"Forecasting growth from {args.history}")

    try:
        engine = _build_engine(args, forecast_periods=args.periods)
        history = parse_history(load_json(args.history))
        if args.metrics:
            metric_names = [m.strip() for m in args.metrics.split(",") if m.strip()]
        else:
            metric_names = history_metric_names(history)
        if not metric_names:
            logger.error("No metrics to forecast")
            return 1

        result = engine.growth_predictions(history, metric_names, subject_id=args.subject)
        for prediction in result["predictions"]:
            logger.info(
                f"  {prediction['metric']}: {prediction['trend']} "
                f"(confidence {prediction['confidence']:.2f})"
            )
        _emit(result, args.output)
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except InputError as e:
        logger.error(f"Input error: {e}")
        return 1


def cmd_anomalies(args: Namespace) -> int:
    """Execute the anomalies command."""
    logger.info(f"Detecting anomalies in {args.series}")

    try:
        engine = _build_engine(
            args,
            outlier_threshold=args.threshold,
            change_threshold=args.change_threshold,
            outlier_method=args.method,
        )
        series = parse_series(load_json(args.series), name=args.name)
        result = engine.series_anomalies(series, subject_id=args.subject)
        logger.info(
            f"  {len(result['outliers'])} outliers, "
            f"{len(result['sudden_changes'])} sudden changes in {result['sample_count']} samples"
        )
        _emit(result, args.output)
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except InputError as e:
        logger.error(f"Input error: {e}")
        return 1


def cmd_career(args: Namespace) -> int:
    """Execute the career command."""
    logger.info(f"Analyzing career progression from {args.activity}")

    try:
        engine = _build_engine(args)
        data = parse_progression_data(load_json(args.activity))
        result = engine.career_trajectory(data, subject_id=args.subject)
        logger.info(f"  Current stage: {result['current_stage']}")
        _emit(result, args.output)
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except InputError as e:
        logger.error(f"Input error: {e}")
        return 1


def cmd_milestones(args: Namespace) -> int:
    """Execute the milestones command."""
    try:
        engine = _build_engine(args)
        raw = load_json(args.metrics)
        if not isinstance(raw, dict):
            raise InputError("metrics file must contain an object of totals")
        metrics = {}
        for name, value in raw.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InputError(f"metric {name} must be a number, got {value!r}")
            metrics[str(name)] = float(value)

        result = engine.career_milestones(
            metrics, args.growth_rate, args.stage, subject_id=args.subject
        )
        logger.info(
            f"  Next stage: {result['next_stage'] or 'none'} "
            f"(ETA {result['estimated_date'] or 'unknown'})"
        )
        _emit(result, args.output)
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except InputError as e:
        logger.error(f"Input error: {e}")
        return 1


def cmd_match(args: Namespace) -> int:
    """Execute the match command."""
    try:
        engine = _build_engine(args, ideal_experience_years=args.ideal_experience)
        job = parse_job(load_json(args.job))
        candidates = parse_candidates(load_json(args.candidates))
        search = parse_search(load_json(args.search)) if args.search else None

        logger.info(f"Ranking {len(candidates)} candidates for job {job.id}")
        result = engine.match_scores(job, candidates, search)
        _emit(result, args.output)
        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except InputError as e:
        logger.error(f"Input error: {e}")
        return 1


COMMANDS = {
    "growth": cmd_growth,
    "anomalies": cmd_anomalies,
    "career": cmd_career,
    "milestones": cmd_milestones,
    "match": cmd_match,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Setup logging early
    log_config = LoggingConfig(
        format=getattr(args, "log_format", "console"),
        artifacts_dir=getattr(args, "artifacts_dir", Path("run_artifacts")),
    )
    setup_logging(log_config)

    try:
        command = COMMANDS.get(args.command)
        if command is None:
            parser.print_help()
            return 1
        return command(args)
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
