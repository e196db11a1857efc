"""Unit tests for the career progression model."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from devfolio_insights.ml.career_progression import (
    DAYS_PER_PERIOD,
    analyze_progression,
    analyze_strengths,
    categorize_skill,
    compute_period_indicators,
    extract_milestones,
    get_current_stage,
    milestone_score,
    project_next_stage,
    track_skill_progression,
    weighted_score,
)
from devfolio_insights.models import (
    CareerMilestone,
    CommitRecord,
    ProgressionData,
    PullRequestRecord,
    RepositoryRecord,
    SkillRecord,
    StageIndicators,
    stage_rank,
)

START = datetime(2022, 1, 3, tzinfo=timezone.utc)
LANGUAGES = ["python", "typescript", "go", "rust", "java"]


@pytest.fixture
def active_developer() -> ProgressionData:
    """Two years of steady commits, reviews and a popular maintained repo."""
    commits = [
        CommitRecord(date=START + timedelta(days=i * 1.5), language=LANGUAGES[i % 5])
        for i in range(480)
    ]
    prs = [
        PullRequestRecord(date=START + timedelta(days=i * 45), reviews=20)
        for i in range(16)
    ]
    repos = [
        RepositoryRecord(created=START, stars=0),
        RepositoryRecord(created=START + timedelta(days=10), stars=5),
        RepositoryRecord(created=START + timedelta(days=400), stars=200, role="maintainer"),
    ]
    skills = [SkillRecord(skill="Docker", first_used=START + timedelta(days=30))]
    return ProgressionData(commits=commits, prs=prs, repos=repos, skills=skills)


def _busy_quarter(day: datetime) -> ProgressionData:
    """A thousand commits and a popular maintained repo, all on one day."""
    return ProgressionData(
        commits=[CommitRecord(date=day, language=LANGUAGES[i % 5]) for i in range(1000)],
        repos=[RepositoryRecord(created=day, stars=2000, role="maintainer")],
    )


class TestExtractMilestones:
    """Tests for milestone extraction."""

    def test_commit_milestones(self) -> None:
        """First commit and 100 commits are dated at the right commit."""
        commits = [CommitRecord(date=START + timedelta(days=i)) for i in range(120)]
        milestones = {m.id: m for m in extract_milestones(ProgressionData(commits=commits))}

        assert milestones["first-commit"].date == START
        assert milestones["commits-100"].date == START + timedelta(days=99)
        assert "commits-1000" not in milestones

    def test_popular_repo_impact(self) -> None:
        """Repos with 1000+ stars are critical, 100+ are high."""
        repos = [
            RepositoryRecord(created=START, stars=150),
            RepositoryRecord(created=START + timedelta(days=5), stars=1500),
        ]
        popular = [
            m for m in extract_milestones(ProgressionData(repos=repos))
            if m.id.startswith("popular-repo")
        ]

        assert [m.impact for m in popular] == ["high", "critical"]

    def test_review_maintainer_and_polyglot(self, active_developer: ProgressionData) -> None:
        """Reviews, maintainer role and five languages all count."""
        ids = {m.id for m in extract_milestones(active_developer)}

        assert {"first-review", "first-maintainer", "polyglot", "skill-docker"} <= ids

    def test_sorted_by_date(self, active_developer: ProgressionData) -> None:
        """Milestones come back in date order."""
        dates = [m.date for m in extract_milestones(active_developer)]

        assert dates == sorted(dates)

    def test_naive_dates_assumed_utc(self) -> None:
        """Naive datetimes are treated as UTC."""
        commits = [CommitRecord(date=datetime(2023, 5, 1, 12, 0))]
        [milestone] = extract_milestones(ProgressionData(commits=commits))

        assert milestone.date == datetime(2023, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestScoring:
    """Tests for indicator weighting and milestone scores."""

    def test_weighted_score_bounds(self) -> None:
        """Perfect indicators score 100; empty ones score 0."""
        assert weighted_score(StageIndicators(100, 100, 100, 100)) == pytest.approx(100.0)
        assert weighted_score(StageIndicators()) == 0.0

    def test_weighted_score_weights(self) -> None:
        """Technical skills weigh the most."""
        score = weighted_score(
            {"technical_skills": 100, "leadership": 0, "impact": 0, "communication": 0}
        )

        assert score == pytest.approx(35.0)

    def test_milestone_score(self) -> None:
        """Impact points are scaled by the milestone type."""
        milestone = CareerMilestone(
            id="lead", type="leadership", title="Lead", date=START, impact="high"
        )

        assert milestone_score(milestone) == pytest.approx(7.5)

    def test_analyze_strengths(self) -> None:
        """Indicators at or above 60 are strengths."""
        strengths, improvements = analyze_strengths(StageIndicators(60, 10, 80, 59.9))

        assert strengths == ["Technical Skills", "Impact & Influence"]
        assert improvements == ["Leadership", "Communication"]


class TestComputePeriodIndicators:
    """Tests for quarterly indicators."""

    def test_empty_data(self) -> None:
        """No activity gives an empty frame."""
        assert compute_period_indicators(ProgressionData()).empty

    def test_quarterly_cumulative(self, active_developer: ProgressionData) -> None:
        """One row per quarter; indicators never decrease."""
        frame = compute_period_indicators(active_developer)

        assert len(frame) == 8
        for column in ("technical_skills", "leadership", "impact", "communication"):
            values = frame[column].tolist()
            assert values == sorted(values)
            assert all(0 <= v <= 100 for v in values)


class TestAnalyzeProgression:
    """Tests for analyze_progression."""

    def test_empty_history_is_junior(self) -> None:
        """No activity yields one junior stage and no projection."""
        now = datetime(2024, 3, 1, tzinfo=timezone.utc)
        trajectory = analyze_progression(ProgressionData(), now=now)

        assert len(trajectory.stages) == 1
        assert trajectory.current_stage.stage == "junior"
        assert trajectory.current_stage.start_date == now
        assert trajectory.projected_next_stage is None
        assert trajectory.strength_areas == []

    def test_stages_never_decrease(self, active_developer: ProgressionData) -> None:
        """Stage ranks strictly increase and only the last is open."""
        trajectory = analyze_progression(active_developer)
        ranks = [stage_rank(s.stage) for s in trajectory.stages]

        assert ranks == sorted(set(ranks))
        assert ranks[0] == 0
        assert all(s.end_date is not None for s in trajectory.stages[:-1])
        assert trajectory.stages[-1].end_date is None

    def test_active_developer_progresses(self, active_developer: ProgressionData) -> None:
        """Sustained activity moves past junior."""
        trajectory = analyze_progression(active_developer)

        assert stage_rank(get_current_stage(trajectory).stage) >= 1
        assert trajectory.overall_growth_rate > 0
        assert trajectory.milestones

    def test_stage_dates_are_contiguous(self, active_developer: ProgressionData) -> None:
        """Each stage ends where the next begins."""
        stages = analyze_progression(active_developer).stages

        for prev, curr in zip(stages, stages[1:]):
            assert prev.end_date == curr.start_date
            assert prev.start_date < curr.start_date

    def test_sustain_requirement(self, active_developer: ProgressionData) -> None:
        """A transition needs the score sustained for the required periods."""
        trajectory = analyze_progression(active_developer, sustain_periods=100)

        assert [s.stage for s in trajectory.stages] == ["junior"]
        assert trajectory.projected_next_stage is not None
        assert trajectory.projected_next_stage.stage == "mid"

    def test_custom_thresholds(self, active_developer: ProgressionData) -> None:
        """Raising every threshold out of reach keeps the developer junior."""
        trajectory = analyze_progression(
            active_developer,
            thresholds={"mid": 96, "senior": 97, "lead": 98, "principal": 99},
        )

        assert trajectory.current_stage.stage == "junior"

    def test_single_busy_quarter_with_one_period_sustain(self) -> None:
        """A one-quarter history stays junior even when its score clears mid."""
        day = datetime(2023, 2, 1, tzinfo=timezone.utc)
        data = _busy_quarter(day)

        trajectory = analyze_progression(data, thresholds={"mid": 1.0}, sustain_periods=1)

        assert [s.stage for s in trajectory.stages] == ["junior"]
        assert trajectory.current_stage.start_date == day
        assert trajectory.current_stage.end_date is None
        assert trajectory.projected_next_stage is not None

    def test_one_period_sustain_transitions_in_second_quarter(self) -> None:
        """The first transition lands on the second quarter at the earliest."""
        day = datetime(2023, 2, 1, tzinfo=timezone.utc)
        data = _busy_quarter(day)
        data.commits.append(CommitRecord(date=datetime(2023, 5, 2, tzinfo=timezone.utc)))

        stages = analyze_progression(data, thresholds={"mid": 1.0}, sustain_periods=1).stages

        assert len(stages) == 2
        assert stages[0].stage == "junior"
        assert stages[0].start_date == day
        assert stages[0].end_date == stages[1].start_date
        assert (stages[1].start_date.year, stages[1].start_date.month) == (2023, 4)

    def test_sparse_records_do_not_raise(self) -> None:
        """A single PR without reviews is enough input."""
        data = ProgressionData(prs=[PullRequestRecord(date=START)])
        trajectory = analyze_progression(data)

        assert trajectory.current_stage.stage == "junior"


class TestProjectNextStage:
    """Tests for next-stage projection."""

    def test_top_stage_has_no_projection(self) -> None:
        """Principal has nowhere to go."""
        assert project_next_stage(4, StageIndicators(), 90.0, 1.0, START) is None

    def test_growing_score_gets_date(self) -> None:
        """A positive slope is extrapolated to the next threshold."""
        projection = project_next_stage(1, StageIndicators(), 40.0, 5.0, START)

        assert projection is not None
        assert projection.stage == "senior"
        assert projection.progress == pytest.approx(0.5)
        assert projection.estimated_date == START + timedelta(days=DAYS_PER_PERIOD * 2)

    def test_flat_score_has_no_date(self) -> None:
        """Without growth there is no estimated date."""
        projection = project_next_stage(1, StageIndicators(), 40.0, 0.0, START)

        assert projection is not None
        assert projection.estimated_date is None
        assert any("Weighted score" in r for r in projection.requirements)


class TestSkills:
    """Tests for skill categorization and progression."""

    @pytest.mark.parametrize(
        ("skill", "category"),
        [
            ("TypeScript", "Language"),
            ("React", "Framework"),
            ("PostgreSQL", "Database"),
            ("Docker", "DevOps"),
            ("Cypress", "Testing"),
            ("Figma", "Other"),
        ],
    )
    def test_categorize_skill(self, skill: str, category: str) -> None:
        """Skills map to their category by name."""
        assert categorize_skill(skill) == category

    def test_no_activity_is_beginner(self) -> None:
        """No activity means beginner with zero proficiency."""
        progression = track_skill_progression("Rust", [])

        assert progression.current_level == "beginner"
        assert progression.proficiency_score == 0

    def test_intermediate_after_ten_uses(self) -> None:
        """Ten contributions reach intermediate."""
        activities = [
            {"date": START + timedelta(days=i * 30), "type": "commit", "complexity": 3}
            for i in range(12)
        ]
        progression = track_skill_progression("Python", activities)

        assert progression.current_level == "intermediate"
        assert progression.category == "Language"
        assert 0 < progression.proficiency_score <= 100
