"""Career stage progression model.

Derives quarterly indicator scores (technical skills, leadership, impact,
communication) from raw activity, runs a forward-only state machine over
junior -> mid -> senior -> lead -> principal, and projects the next stage
from the recent growth of the weighted indicator score.

A transition requires the weighted score to stay at or above the stage
threshold for SUSTAIN_PERIODS consecutive quarters, so a single good quarter
does not promote a developer.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import numpy as np
import pandas as pd

from ..models import (
    STAGE_ORDER,
    CareerMilestone,
    CareerStage,
    CareerTrajectory,
    ProgressionData,
    ProjectedStage,
    SkillProgression,
    StageIndicators,
)
from .trend_forecaster import fit_linear_trend

logger = logging.getLogger(__name__)

# Weighted-score thresholds for entering each stage
STAGE_THRESHOLDS: dict[str, float] = {
    "junior": 0.0,
    "mid": 30.0,
    "senior": 50.0,
    "lead": 65.0,
    "principal": 80.0,
}

INDICATOR_WEIGHTS: dict[str, float] = {
    "technical_skills": 0.35,
    "leadership": 0.25,
    "impact": 0.25,
    "communication": 0.15,
}

INDICATOR_LABELS: dict[str, str] = {
    "technical_skills": "Technical Skills",
    "leadership": "Leadership",
    "impact": "Impact & Influence",
    "communication": "Communication",
}

STAGE_NARRATIVE_REQUIREMENTS: dict[str, list[str]] = {
    "mid": ["500+ commits", "50+ code reviews", "Team collaboration"],
    "senior": ["Maintainer of projects", "100+ GitHub stars", "Mentorship activity"],
    "lead": [
        "Multiple popular projects",
        "Team leadership experience",
        "Technical writing/speaking",
    ],
    "principal": [
        "Industry recognition",
        "Significant OSS contributions",
        "Strategic technical vision",
    ],
}

SUSTAIN_PERIODS = 2
PERIOD_FREQ = "Q"
DAYS_PER_PERIOD = 91
RECENT_PERIODS = 8
STRENGTH_THRESHOLD = 60.0

IMPACT_POINTS = {"low": 1, "medium": 2, "high": 3, "critical": 5}
TYPE_MULTIPLIERS = {
    "skill": 1.0,
    "achievement": 1.5,
    "contribution": 1.2,
    "recognition": 2.0,
    "leadership": 2.5,
}

SKILL_CATEGORIES: dict[str, list[str]] = {
    "Language": ["javascript", "typescript", "python", "java", "go", "rust", "c++"],
    "Framework": ["react", "vue", "angular", "nextjs", "express", "django"],
    "Database": ["postgresql", "mongodb", "redis", "mysql"],
    "DevOps": ["docker", "kubernetes", "aws", "azure", "gcp"],
    "Testing": ["jest", "cypress", "playwright", "junit"],
}


def _aware(value: datetime) -> datetime:
    """Return the datetime in UTC, assuming UTC for naive values."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _naive(value: datetime) -> pd.Timestamp:
    return pd.Timestamp(_aware(value)).tz_convert("UTC").tz_localize(None)


def _from_timestamp(value: pd.Timestamp) -> datetime:
    return value.to_pydatetime().replace(tzinfo=timezone.utc)


def milestone_score(milestone: CareerMilestone) -> float:
    """Impact points scaled by the milestone type."""
    return IMPACT_POINTS.get(milestone.impact, 1) * TYPE_MULTIPLIERS.get(
        milestone.type, 1.0
    )


def extract_milestones(data: ProgressionData) -> list[CareerMilestone]:
    """Identify career milestones from activity records.

    Args:
        data: Activity history.

    Returns:
        Milestones sorted by date ascending.
    """
    milestones: list[CareerMilestone] = []

    commits = sorted(data.commits, key=lambda c: _aware(c.date))
    if commits:
        milestones.append(
            CareerMilestone(
                id="first-commit",
                type="contribution",
                title="First Contribution",
                description="Made first commit to version control",
                date=_aware(commits[0].date),
                impact="low",
                category="Getting Started",
            )
        )
    if len(commits) >= 100:
        milestones.append(
            CareerMilestone(
                id="commits-100",
                type="achievement",
                title="100 Commits",
                description="Reached 100 commits milestone",
                date=_aware(commits[99].date),
                impact="medium",
                category="Consistency",
            )
        )
    if len(commits) >= 1000:
        milestones.append(
            CareerMilestone(
                id="commits-1000",
                type="achievement",
                title="1000+ Commits",
                description="Reached 1000 commits milestone",
                date=_aware(commits[999].date),
                impact="high",
                category="Contribution",
            )
        )

    repos = sorted(data.repos, key=lambda r: _aware(r.created))
    starred = [r for r in repos if r.stars > 0]
    if starred:
        milestones.append(
            CareerMilestone(
                id="first-star",
                type="recognition",
                title="First GitHub Star",
                description="Created first repository that received community recognition",
                date=_aware(starred[0].created),
                impact="medium",
                category="Impact",
            )
        )
    for repo in repos:
        if repo.stars >= 100:
            created = _aware(repo.created)
            milestones.append(
                CareerMilestone(
                    id=f"popular-repo-{int(created.timestamp())}",
                    type="recognition",
                    title="Popular Open Source Project",
                    description=f"Created repository with {repo.stars}+ stars",
                    date=created,
                    impact="critical" if repo.stars >= 1000 else "high",
                    category="Community Impact",
                )
            )

    reviewed = sorted((p for p in data.prs if p.reviews > 0), key=lambda p: _aware(p.date))
    if reviewed:
        milestones.append(
            CareerMilestone(
                id="first-review",
                type="leadership",
                title="First Code Review",
                description="Started contributing to code reviews",
                date=_aware(reviewed[0].date),
                impact="medium",
                category="Collaboration",
            )
        )

    maintained = [r for r in repos if r.role.lower() == "maintainer"]
    if maintained:
        milestones.append(
            CareerMilestone(
                id="first-maintainer",
                type="leadership",
                title="Repository Maintainer",
                description="Became maintainer of an open source project",
                date=_aware(maintained[0].created),
                impact="high",
                category="Leadership",
            )
        )

    # Polyglot: dated at the commit that introduced the fifth language
    seen_languages: set[str] = set()
    for commit in commits:
        if commit.language:
            seen_languages.add(commit.language.lower())
        if len(seen_languages) >= 5:
            milestones.append(
                CareerMilestone(
                    id="polyglot",
                    type="skill",
                    title="Polyglot Developer",
                    description="Proficient in 5+ programming languages",
                    date=_aware(commit.date),
                    impact="high",
                    category="Technical Skills",
                )
            )
            break

    for skill in data.skills:
        milestones.append(
            CareerMilestone(
                id=f"skill-{skill.skill.lower()}",
                type="skill",
                title=f"Learned {skill.skill}",
                description=f"Started working with {skill.skill}",
                date=_aware(skill.first_used),
                impact="medium",
                category="Skill Acquisition",
            )
        )

    return sorted(milestones, key=lambda m: m.date)


def weighted_score(indicators: Mapping[str, float] | StageIndicators) -> float:
    """Weighted combination of the four indicators (0-100)."""
    if isinstance(indicators, StageIndicators):
        indicators = indicators.as_mapping()
    return sum(
        INDICATOR_WEIGHTS[name] * float(indicators.get(name, 0.0))
        for name in INDICATOR_WEIGHTS
    )


def _activity_dates(data: ProgressionData) -> list[pd.Timestamp]:
    dates = [_naive(c.date) for c in data.commits]
    dates += [_naive(p.date) for p in data.prs]
    dates += [_naive(r.created) for r in data.repos]
    dates += [_naive(s.first_used) for s in data.skills]
    return dates


def compute_period_indicators(
    data: ProgressionData,
    milestones: Sequence[CareerMilestone] | None = None,
    freq: str = PERIOD_FREQ,
) -> pd.DataFrame:
    """Compute cumulative indicators at the end of every period.

    Args:
        data: Activity history.
        milestones: Milestones already extracted from ``data`` (recomputed
            when omitted).
        freq: pandas period frequency, quarterly by default.

    Returns:
        DataFrame indexed by period with columns period_start, period_end,
        the four indicators (0-100) and the weighted ``score``. Empty when
        there is no activity.
    """
    columns = ["period_start", "period_end", *INDICATOR_WEIGHTS, "score"]
    dates = _activity_dates(data)
    if not dates:
        return pd.DataFrame(columns=columns)

    if milestones is None:
        milestones = extract_milestones(data)

    periods = pd.period_range(min(dates), max(dates), freq=freq)

    commits = pd.DataFrame(
        {
            "date": [_naive(c.date) for c in data.commits],
            "language": [c.language.lower() for c in data.commits],
        }
    )
    prs = pd.DataFrame(
        {
            "date": [_naive(p.date) for p in data.prs],
            "reviews": [max(0, int(p.reviews)) for p in data.prs],
        }
    )
    repos = pd.DataFrame(
        {
            "created": [_naive(r.created) for r in data.repos],
            "stars": [max(0, int(r.stars)) for r in data.repos],
        }
    )
    skills = pd.DataFrame(
        {
            "first_used": [_naive(s.first_used) for s in data.skills],
            "skill": [s.skill.lower() for s in data.skills],
        }
    )
    ms = pd.DataFrame(
        {
            "date": [_naive(m.date) for m in milestones],
            "type": [m.type for m in milestones],
            "points": [IMPACT_POINTS.get(m.impact, 1) for m in milestones],
        }
    )

    rows = []
    for period in periods:
        end = period.end_time

        period_commits = commits[commits["date"] <= end] if len(commits) else commits
        known_skills = set(skills.loc[skills["first_used"] <= end, "skill"]) if len(skills) else set()
        if len(period_commits):
            known_skills |= {lang for lang in period_commits["language"] if lang}
        period_repos = repos[repos["created"] <= end] if len(repos) else repos
        total_reviews = int(prs.loc[prs["date"] <= end, "reviews"].sum()) if len(prs) else 0
        period_ms = ms[ms["date"] <= end] if len(ms) else ms

        total_stars = int(period_repos["stars"].sum()) if len(period_repos) else 0
        leadership_count = int((period_ms["type"] == "leadership").sum()) if len(period_ms) else 0
        recognition_count = int((period_ms["type"] == "recognition").sum()) if len(period_ms) else 0
        impact_points = int(period_ms["points"].sum()) if len(period_ms) else 0

        technical = (
            len(known_skills) * 5
            + min(len(period_commits) / 10, 50)
            + len(period_repos) * 2
        )
        leadership = leadership_count * 15 + recognition_count * 10
        impact = impact_points * 2 + min(total_stars / 10, 50)
        communication = min(total_reviews * 2, 100)

        indicators = {
            "technical_skills": float(min(100, technical)),
            "leadership": float(min(100, leadership)),
            "impact": float(min(100, impact)),
            "communication": float(min(100, communication)),
        }
        rows.append(
            {
                "period_start": period.start_time,
                "period_end": end,
                **indicators,
                "score": round(weighted_score(indicators), 4),
            }
        )

    return pd.DataFrame(rows, index=periods, columns=columns)


def _indicators_at(frame: pd.DataFrame, position: int) -> StageIndicators:
    row = frame.iloc[position]
    return StageIndicators(
        technical_skills=float(row["technical_skills"]),
        leadership=float(row["leadership"]),
        impact=float(row["impact"]),
        communication=float(row["communication"]),
    )


def _identify_stages(
    frame: pd.DataFrame,
    first_activity: datetime,
    thresholds: Mapping[str, float],
    sustain_periods: int,
) -> list[dict[str, Any]]:
    """Run the forward-only stage machine over the period scores.

    Returns:
        Ordered stage spans as dicts with rank, start (datetime) and
        start_position / end_position into ``frame``.
    """
    scores = frame["score"].to_numpy(dtype=float)
    streak = [0] * len(STAGE_ORDER)
    streak_start = [0] * len(STAGE_ORDER)

    spans: list[dict[str, Any]] = [
        {"rank": 0, "start": first_activity, "start_position": 0}
    ]
    current_rank = 0

    for position, score in enumerate(scores):
        for rank in range(1, len(STAGE_ORDER)):
            if score >= thresholds[STAGE_ORDER[rank]]:
                if streak[rank] == 0:
                    streak_start[rank] = position
                streak[rank] += 1
            else:
                streak[rank] = 0

        sustained = [
            rank
            for rank in range(current_rank + 1, len(STAGE_ORDER))
            if streak[rank] >= sustain_periods
        ]
        if not sustained:
            continue

        target = max(sustained)
        start_position = max(streak_start[target], spans[-1]["start_position"] + 1)
        if start_position > position:
            # The first period always belongs to the opening junior span
            continue
        start =_from_timestamp(frame["period_start"].iloc[start_position])
        start = max(start, spans[-1]["start"] + timedelta(seconds=1))

        spans[-1]["end"] = start
        spans[-1]["end_position"] = start_position - 1
        spans.append({"rank": target, "start": start, "start_position": start_position})
        logger.debug(
            f"Stage transition to {STAGE_ORDER[target]} at period {frame.index[start_position]} "
            f"(score {score:.1f})"
        )
        current_rank = target

    spans[-1]["end"] = None
    spans[-1]["end_position"] = len(scores) - 1
    return spans


def _growth_slope(scores: np.ndarray, recent: int = RECENT_PERIODS) -> float:
    window = scores[-recent:] if recent > 0 else scores
    if len(window) < 2:
        return 0.0
    slope = fit_linear_trend(window).slope
    return slope if math.isfinite(slope) else 0.0


def _stage_requirements(
    next_stage: str, indicators: StageIndicators, score: float, threshold: float
) -> list[str]:
    requirements = []
    if score < threshold:
        requirements.append(f"Weighted score: {threshold:g}+ (currently {score:.1f})")
    for name, value in indicators.as_mapping().items():
        if value < threshold:
            requirements.append(f"{INDICATOR_LABELS[name]}: {threshold:g}+")
    requirements.extend(STAGE_NARRATIVE_REQUIREMENTS.get(next_stage, []))
    return requirements


def project_next_stage(
    current_rank: int,
    indicators: StageIndicators,
    score: float,
    slope: float,
    last_period_end: datetime,
    thresholds: Mapping[str, float] | None = None,
) -> ProjectedStage | None:
    """Extrapolate the weighted score to the next stage threshold.

    Args:
        current_rank: Rank of the current stage.
        indicators: Latest indicator snapshot.
        score: Latest weighted score.
        slope: Weighted-score growth per period.
        last_period_end: End of the latest period.
        thresholds: Stage thresholds (defaults to STAGE_THRESHOLDS).

    Returns:
        ProjectedStage, or None when already at the top stage. The estimated
        date is None when the score is below the threshold and not growing.
    """
    thresholds = thresholds or STAGE_THRESHOLDS
    if current_rank >= len(STAGE_ORDER) - 1:
        return None

    next_stage = STAGE_ORDER[current_rank + 1]
    current_threshold = thresholds[STAGE_ORDER[current_rank]]
    next_threshold = thresholds[next_stage]

    span = next_threshold - current_threshold
    progress = (score - current_threshold) / span if span > 0 else 1.0
    progress = min(1.0, max(0.0, progress))

    estimated_date: datetime | None = None
    if score >= next_threshold:
        estimated_date = last_period_end + timedelta(days=DAYS_PER_PERIOD)
    elif slope > 0:
        periods_needed = math.ceil((next_threshold - score) / slope)
        estimated_date = last_period_end + timedelta(days=DAYS_PER_PERIOD * periods_needed)

    return ProjectedStage(
        stage=next_stage,  # type: ignore[arg-type]
        estimated_date=estimated_date,
        requirements=_stage_requirements(next_stage, indicators, score, next_threshold),
        progress=round(progress, 4),
    )


def analyze_strengths(indicators: StageIndicators) -> tuple[list[str], list[str]]:
    """Split indicators into strength and improvement areas."""
    strengths: list[str] = []
    improvements: list[str] = []
    for name, value in indicators.as_mapping().items():
        if value >= STRENGTH_THRESHOLD:
            strengths.append(INDICATOR_LABELS[name])
        else:
            improvements.append(INDICATOR_LABELS[name])
    return strengths, improvements


def analyze_progression(
    data: ProgressionData,
    thresholds: Mapping[str, float] | None = None,
    sustain_periods: int = SUSTAIN_PERIODS,
    now: datetime | None = None,
) -> CareerTrajectory:
    """Analyze career progression from activity history.

    Args:
        data: Activity history.
        thresholds: Weighted-score threshold per stage (defaults to
            STAGE_THRESHOLDS). Must increase with stage rank.
        sustain_periods: Consecutive periods required for a transition.
        now: Start date of the default junior stage when there is no
            history (defaults to current UTC time).

    Returns:
        CareerTrajectory whose stages never decrease in rank.
    """
    thresholds = {**STAGE_THRESHOLDS, **(thresholds or {})}
    sustain_periods = max(1, int(sustain_periods))

    if data.is_empty():
        start = _aware(now) if now else datetime.now(timezone.utc)
        _, improvements = analyze_strengths(StageIndicators())
        return CareerTrajectory(
            stages=[CareerStage(stage="junior", start_date=start)],
            projected_next_stage=None,
            overall_growth_rate=0.0,
            strength_areas=[],
            improvement_areas=improvements,
            milestones=[],
        )

    milestones = extract_milestones(data)
    frame = compute_period_indicators(data, milestones)
    first_activity = _from_timestamp(min(_activity_dates(data)))

    spans = _identify_stages(frame, first_activity, thresholds, sustain_periods)

    stages: list[CareerStage] = []
    for span in spans:
        start, end = span["start"], span["end"]
        achievements = [
            m for m in milestones if m.date >= start and (end is None or m.date < end)
        ]
        stages.append(
            CareerStage(
                stage=STAGE_ORDER[span["rank"]],  # type: ignore[arg-type]
                start_date=start,
                end_date=end,
                indicators=_indicators_at(frame, max(span["end_position"], 0)),
                achievements=achievements,
            )
        )

    scores = frame["score"].to_numpy(dtype=float)
    latest = _indicators_at(frame, len(frame) - 1)
    recent_slope = _growth_slope(scores)
    overall_slope = _growth_slope(scores, recent=0)

    projection = project_next_stage(
        current_rank=spans[-1]["rank"],
        indicators=latest,
        score=float(scores[-1]),
        slope=recent_slope,
        last_period_end=_from_timestamp(frame["period_end"].iloc[-1]),
        thresholds=thresholds,
    )
    strengths, improvements = analyze_strengths(latest)

    logger.info(
        f"Career analysis: {len(stages)} stages over {len(frame)} periods, "
        f"current stage {stages[-1].stage}"
    )
    return CareerTrajectory(
        stages=stages,
        projected_next_stage=projection,
        overall_growth_rate=round(overall_slope, 4),
        strength_areas=strengths,
        improvement_areas=improvements,
        milestones=milestones,
    )


def get_current_stage(trajectory: CareerTrajectory) -> CareerStage:
    """Return the last stage without an end date."""
    return trajectory.current_stage


def categorize_skill(skill: str) -> str:
    lowered = skill.lower()
    for category, names in SKILL_CATEGORIES.items():
        if any(name in lowered for name in names):
            return category
    return "Other"


def track_skill_progression(
    skill: str, activities: Sequence[Mapping[str, Any]]
) -> SkillProgression:
    """Track proficiency levels reached for one skill.

    Args:
        skill: Skill name.
        activities: ``[{"date": datetime, "type": "commit"|"pr"|"review"|
            "project", "complexity": 0-10}]``.

    Returns:
        SkillProgression with the levels reached and a 0-100 proficiency score.
    """
    ordered = sorted(activities, key=lambda a: _aware(a["date"]))
    count = len(ordered)

    if count == 0:
        return SkillProgression(
            skill=skill,
            category=categorize_skill(skill),
            current_level="beginner",
            milestones=[],
            proficiency_score=0,
            years_of_experience=0.0,
            projects_completed=0,
        )

    first_use = _aware(ordered[0]["date"])
    last_use = _aware(ordered[-1]["date"])
    years = (last_use - first_use).total_seconds() / (365 * 24 * 3600)
    complexities = [float(a.get("complexity", 0) or 0) for a in ordered]

    levels: list[dict[str, Any]] = [
        {
            "level": "beginner",
            "achieved_date": first_use.isoformat(),
            "evidence": ["First use of skill"],
        }
    ]
    if count >= 10:
        levels.append(
            {
                "level": "intermediate",
                "achieved_date": _aware(ordered[9]["date"]).isoformat(),
                "evidence": ["10+ contributions", "Consistent usage"],
            }
        )
    if count >= 50 and sum(c > 5 for c in complexities) >= 10:
        levels.append(
            {
                "level": "advanced",
                "achieved_date": _aware(ordered[49]["date"]).isoformat(),
                "evidence": ["50+ contributions", "Complex projects completed"],
            }
        )
    if count >= 100 and sum(c > 7 for c in complexities) >= 20:
        levels.append(
            {
                "level": "expert",
                "achieved_date": _aware(ordered[99]["date"]).isoformat(),
                "evidence": ["100+ contributions", "High-complexity projects"],
            }
        )

    activity_score = min(50.0, count / 2)
    complexity_score = min(30.0, sum(complexities) / count)
    experience_score = min(20.0, years * 5)
    projects = {
        _aware(a["date"]).date() for a in ordered if a.get("type") == "project"
    }

    return SkillProgression(
        skill=skill,
        category=categorize_skill(skill),
        current_level=levels[-1]["level"],
        milestones=levels,
        proficiency_score=int(round(activity_score + complexity_score + experience_score)),
        years_of_experience=round(years, 2),
        projects_completed=len(projects),
    )
