"""Unit tests for JSON input parsing."""

from __future__ import annotations

import io
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from devfolio_insights.serialization import (
    SYNTHETIC_SERIES_START,
    InputError,
    history_metric_names,
    load_json,
    parse_candidates,
    parse_datetime,
    parse_history,
    parse_job,
    parse_progression_data,
    parse_search,
    parse_series,
    write_json,
)


class TestFiles:
    """Tests for load_json and write_json."""

    def test_load_json(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text('{"a": 1}', encoding="utf-8")

        assert load_json(path) == {"a": 1}

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(InputError, match="not found"):
            load_json(tmp_path / "nope.json")

    def test_load_invalid(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(InputError, match="Invalid JSON"):
            load_json(path)

    def test_write_json_stable(self) -> None:
        """Keys are sorted and datetimes stringified."""
        stream = io.StringIO()
        write_json({"b": 1, "a": datetime(2024, 1, 1, tzinfo=timezone.utc)}, stream)

        text = stream.getvalue()
        assert text.endswith("\n")
        assert text.index('"a"') < text.index('"b"')
        assert json.loads(text)["a"].startswith("2024-01-01")


class TestParseDatetime:
    """Tests for parse_datetime."""

    def test_zulu_suffix(self) -> None:
        assert parse_datetime("2024-03-01T12:00:00Z") == datetime(
            2024, 3, 1, 12, tzinfo=timezone.utc
        )

    def test_naive_is_utc(self) -> None:
        assert parse_datetime("2024-03-01").tzinfo == timezone.utc

    def test_offset_converted_to_utc(self) -> None:
        parsed = parse_datetime("2024-03-01T12:00:00+02:00")

        assert parsed.hour == 10
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, "", "yesterday", 42])
    def test_invalid(self, value: object) -> None:
        with pytest.raises(InputError):
            parse_datetime(value)


class TestParseHistory:
    """Tests for parse_history."""

    def test_wrapped_and_bare(self) -> None:
        """Both a bare list and {"history": [...]} are accepted."""
        entries = [{"date": "2024-01-01", "metrics": {"commits": 5, "stars": None}}]

        assert parse_history(entries) == parse_history({"history": entries})

    def test_values_parsed(self) -> None:
        history = parse_history(
            [
                {"date": "2024-01-01", "metrics": {"commits": "5", "stars": None}},
                {"date": "2024-02-01", "metrics": {"prs": 2}},
            ]
        )

        assert history[0]["metrics"] == {"commits": 5.0, "stars": None}
        assert history_metric_names(history) == ["commits", "stars", "prs"]

    def test_bad_metric_names_field(self) -> None:
        with pytest.raises(InputError, match=r"history\[0\]\.metrics\.commits"):
            parse_history([{"date": "2024-01-01", "metrics": {"commits": "lots"}}])

    def test_not_a_list(self) -> None:
        with pytest.raises(InputError, match="must be a list"):
            parse_history({"date": "2024-01-01"})


class TestParseSeries:
    """Tests for parse_series."""

    def test_bare_values_get_daily_timestamps(self) -> None:
        series = parse_series([1, 2, 3], name="commits")

        assert series.name == "commits"
        assert series.values() == [1.0, 2.0, 3.0]
        assert series.samples[2].timestamp == SYNTHETIC_SERIES_START + timedelta(days=2)

    def test_samples_sorted(self) -> None:
        series = parse_series(
            {
                "name": "stars",
                "samples": [
                    {"timestamp": "2024-01-02", "value": 2},
                    {"timestamp": "2024-01-01", "value": 1},
                ],
            }
        )

        assert series.name == "stars"
        assert series.values() == [1.0, 2.0]

    def test_duplicate_timestamp(self) -> None:
        with pytest.raises(InputError, match="Duplicate timestamp"):
            parse_series(
                [
                    {"timestamp": "2024-01-01", "value": 1},
                    {"timestamp": "2024-01-01", "value": 2},
                ]
            )

    def test_non_finite_value(self) -> None:
        with pytest.raises(InputError, match="finite"):
            parse_series([1, float("nan")])


class TestParseProgressionData:
    """Tests for parse_progression_data."""

    def test_full_payload(self) -> None:
        data = parse_progression_data(
            {
                "commits": [{"date": "2024-01-01", "language": "python"}],
                "prs": [{"date": "2024-01-05", "reviews": 3}],
                "repos": [{"created": "2023-06-01", "stars": 120, "role": "maintainer"}],
                "skills": [{"skill": "Docker", "first_used": "2023-01-01"}],
            }
        )

        assert data.commits[0].language == "python"
        assert data.prs[0].reviews == 3
        assert data.repos[0].role == "maintainer"
        assert data.skills[0].last_used is None

    def test_empty_payload(self) -> None:
        assert parse_progression_data({}).is_empty()

    def test_skill_name_required(self) -> None:
        with pytest.raises(InputError, match=r"skills\[0\]\.skill"):
            parse_progression_data({"skills": [{"first_used": "2023-01-01"}]})


class TestParseMatching:
    """Tests for candidate, job and search parsing."""

    def test_candidates(self) -> None:
        candidates = parse_candidates(
            {
                "candidates": [
                    {"id": 1, "skills": ["Python", " "], "experience": 4},
                    {"id": "b", "talent_score": 70},
                ]
            }
        )

        assert candidates[0].id == "1"
        assert candidates[0].skills == {"Python"}
        assert candidates[0].talent_score is None
        assert candidates[1].experience == 0.0

    def test_candidate_id_required(self) -> None:
        with pytest.raises(InputError, match=r"candidates\[0\]\.id"):
            parse_candidates([{"skills": []}])

    def test_job_wrapped(self) -> None:
        job = parse_job({"job": {"id": "j1", "title": "SRE", "skills": ["go"]}})

        assert (job.id, job.title, job.skills) == ("j1", "SRE", {"go"})

    def test_job_id_required(self) -> None:
        with pytest.raises(InputError, match="job.id"):
            parse_job({"title": "nobody"})

    def test_search(self) -> None:
        search = parse_search({"skills": ["python"], "min_experience": 2})

        assert search.skills == ["python"]
        assert search.min_experience == 2.0
        assert search.max_experience is None
        assert search.min_talent_score is None

    def test_empty_search(self) -> None:
        search = parse_search(None)

        assert search.skills is None
