"""JSON input parsing and output helpers.

Parsers turn loosely-shaped JSON (as produced by the platform's API layer or
written by hand for the CLI) into the typed records in ``models``. Malformed
input raises ``InputError`` with a message naming the offending field.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import IO, Any

from .models import (
    Candidate,
    CandidateSearch,
    CommitRecord,
    JobPosting,
    MetricSample,
    MetricSeries,
    ProgressionData,
    PullRequestRecord,
    RepositoryRecord,
    SkillRecord,
)

# Start date for series given as bare values
SYNTHETIC_SERIES_START = datetime(2000, 1, 1, tzinfo=timezone.utc)


class InputError(Exception):
    """Input data is missing or malformed."""


def load_json(path: Path) -> Any:
    """Read a JSON file.

    Raises:
        InputError: If the file is missing or not valid JSON.
    """
    path = Path(path)
    if not path.exists():
        raise InputError(f"Input file not found: {path}")
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON in {path}: {e}") from e


def write_json(data: Any, stream: IO[str]) -> None:
    """Write ``data`` as stable, indented JSON followed by a newline."""
    json.dump(data, stream, indent=2, sort_keys=True, default=str)
    stream.write("\n")


def parse_datetime(value: Any, field_name: str = "date") -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise InputError(f"Invalid {field_name}: {value!r}") from e
    else:
        raise InputError(f"Missing or invalid {field_name}: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_optional_datetime(value: Any, field_name: str) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_datetime(value, field_name)


def _parse_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise InputError(f"{field_name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InputError(f"{field_name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InputError(f"{field_name} must be finite, got {value!r}")
    return number


def _parse_optional_number(value: Any, field_name: str) -> float | None:
    return None if value is None else _parse_number(value, field_name)


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise InputError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InputError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _unwrap(data: Any, key: str) -> Any:
    """Accept either a bare payload or ``{key: payload}``."""
    if isinstance(data, Mapping) and key in data:
        return data[key]
    return data


def parse_history(data: Any) -> list[dict[str, Any]]:
    """Parse ``[{"date": ..., "metrics": {name: number}}]``."""
    entries = _require_list(_unwrap(data, "history"), "history")
    history = []
    for i, entry in enumerate(entries):
        entry = _require_mapping(entry, f"history[{i}]")
        metrics = _require_mapping(entry.get("metrics") or {}, f"history[{i}].metrics")
        history.append(
            {
                "date": parse_datetime(entry.get("date"), f"history[{i}].date"),
                "metrics": {
                    str(k): _parse_optional_number(v, f"history[{i}].metrics.{k}")
                    for k, v in metrics.items()
                },
            }
        )
    return history


def history_metric_names(history: list[dict[str, Any]]) -> list[str]:
    """Metric names in first-seen order."""
    names: dict[str, None] = {}
    for entry in history:
        for name in entry["metrics"]:
            names.setdefault(name, None)
    return list(names)


def parse_series(data: Any, name: str | None = None) -> MetricSeries:
    """Parse a metric series.

    Accepts ``{"name": ..., "samples": [{"timestamp", "value"}]}`` or a bare
    list of numbers, which is given daily timestamps.
    """
    if isinstance(data, list) and all(not isinstance(v, Mapping) for v in data):
        samples = [
            MetricSample(
                timestamp=SYNTHETIC_SERIES_START + timedelta(days=i),
                value=_parse_number(v, f"values[{i}]"),
            )
            for i, v in enumerate(data)
        ]
        return MetricSeries(name=name or "series", samples=samples)

    if isinstance(data, list):
        data = {"samples": data}
    data = _require_mapping(data, "series")
    raw_samples = _require_list(data.get("samples"), "series.samples")

    samples = []
    for i, sample in enumerate(raw_samples):
        sample = _require_mapping(sample, f"samples[{i}]")
        samples.append(
            MetricSample(
                timestamp=parse_datetime(sample.get("timestamp"), f"samples[{i}].timestamp"),
                value=_parse_number(sample.get("value"), f"samples[{i}].value"),
            )
        )

    try:
        return MetricSeries(name=name or str(data.get("name") or "series"), samples=samples)
    except ValueError as e:
        raise InputError(str(e)) from e


def parse_progression_data(data: Any) -> ProgressionData:
    """Parse ``{"commits", "prs", "repos", "skills"}``; every list is optional."""
    data = _require_mapping(data or {}, "progression data")

    commits = [
        CommitRecord(
            date=parse_datetime(_require_mapping(c, f"commits[{i}]").get("date"), f"commits[{i}].date"),
            language=str(c.get("language") or ""),
        )
        for i, c in enumerate(_require_list(data.get("commits"), "commits"))
    ]
    prs = [
        PullRequestRecord(
            date=parse_datetime(_require_mapping(p, f"prs[{i}]").get("date"), f"prs[{i}].date"),
            reviews=int(_parse_number(p.get("reviews", 0), f"prs[{i}].reviews")),
        )
        for i, p in enumerate(_require_list(data.get("prs"), "prs"))
    ]
    repos = [
        RepositoryRecord(
            created=parse_datetime(
                _require_mapping(r, f"repos[{i}]").get("created"), f"repos[{i}].created"
            ),
            stars=int(_parse_number(r.get("stars", 0), f"repos[{i}].stars")),
            role=str(r.get("role") or "owner"),
        )
        for i, r in enumerate(_require_list(data.get("repos"), "repos"))
    ]
    skills = []
    for i, s in enumerate(_require_list(data.get("skills"), "skills")):
        s = _require_mapping(s, f"skills[{i}]")
        if not s.get("skill"):
            raise InputError(f"skills[{i}].skill is required")
        skills.append(
            SkillRecord(
                skill=str(s["skill"]),
                first_used=parse_datetime(s.get("first_used"), f"skills[{i}].first_used"),
                last_used=_parse_optional_datetime(s.get("last_used"), f"skills[{i}].last_used"),
            )
        )

    return ProgressionData(commits=commits, prs=prs, repos=repos, skills=skills)


def _parse_skills(value: Any, what: str) -> set[str]:
    return {str(s) for s in _require_list(value, what) if str(s).strip()}


def parse_candidate(data: Any, index: int = 0) -> Candidate:
    data = _require_mapping(data, f"candidates[{index}]")
    if data.get("id") in (None, ""):
        raise InputError(f"candidates[{index}].id is required")
    return Candidate(
        id=str(data["id"]),
        name=str(data.get("name") or ""),
        skills=_parse_skills(data.get("skills"), f"candidates[{index}].skills"),
        experience=_parse_number(data.get("experience", 0), f"candidates[{index}].experience"),
        talent_score=_parse_optional_number(
            data.get("talent_score"), f"candidates[{index}].talent_score"
        ),
    )


def parse_candidates(data: Any) -> list[Candidate]:
    entries = _require_list(_unwrap(data, "candidates"), "candidates")
    return [parse_candidate(entry, i) for i, entry in enumerate(entries)]


def parse_job(data: Any) -> JobPosting:
    data = _require_mapping(_unwrap(data, "job"), "job")
    if data.get("id") in (None, ""):
        raise InputError("job.id is required")
    return JobPosting(
        id=str(data["id"]),
        title=str(data.get("title") or ""),
        skills=_parse_skills(data.get("skills"), "job.skills"),
        experience=_parse_number(data.get("experience", 0), "job.experience"),
        talent_score=_parse_optional_number(data.get("talent_score"), "job.talent_score"),
    )


def parse_search(data: Any) -> CandidateSearch:
    data = _require_mapping(data or {}, "search")
    skills = data.get("skills")
    return CandidateSearch(
        skills=sorted(_parse_skills(skills, "search.skills")) if skills is not None else None,
        min_experience=_parse_optional_number(data.get("min_experience"), "search.min_experience"),
        max_experience=_parse_optional_number(data.get("max_experience"), "search.max_experience"),
        min_talent_score=_parse_optional_number(
            data.get("min_talent_score"), "search.min_talent_score"
        ),
    )
