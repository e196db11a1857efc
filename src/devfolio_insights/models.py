"""Plain records exchanged between the analytics components and their callers.

Every record exposes ``to_dict()`` returning JSON-safe values so results can
cross a process boundary (HTTP response, CLI output) without custom encoders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

Trend = Literal["increasing", "stable", "decreasing"]
DataQuality = Literal["insufficient", "low_confidence", "normal"]
MilestoneType = Literal[
    "skill", "achievement", "contribution", "recognition", "leadership"
]
Impact = Literal["low", "medium", "high", "critical"]
StageName = Literal["junior", "mid", "senior", "lead", "principal"]

# Ordered lowest to highest; index is the stage rank
STAGE_ORDER: tuple[str, ...] = ("junior", "mid", "senior", "lead", "principal")


def stage_rank(stage: str) -> int:
    """Return the rank of a stage name, or -1 if it is unknown."""
    try:
        return STAGE_ORDER.index(stage.lower())
    except ValueError:
        return -1


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class MetricSample:
    timestamp: datetime
    value: float


@dataclass
class MetricSeries:
    """Append-only, timestamp-ordered samples for one named metric."""

    name: str
    samples: list[MetricSample] = field(default_factory=list)

    def __post_init__(self) -> None:
        ordered = sorted(self.samples, key=lambda s: s.timestamp)
        for prev, curr in zip(ordered, ordered[1:]):
            if curr.timestamp == prev.timestamp:
                raise ValueError(
                    f"Duplicate timestamp {curr.timestamp.isoformat()} in series {self.name}"
                )
        self.samples = ordered

    def append(self, timestamp: datetime, value: float) -> None:
        """Append a sample; timestamps must be strictly increasing.

        Raises:
            ValueError: If the timestamp is not after the last sample.
        """
        if self.samples and timestamp <= self.samples[-1].timestamp:
            raise ValueError(
                f"Sample at {timestamp.isoformat()} is not after the last sample "
                f"of series {self.name}"
            )
        self.samples.append(MetricSample(timestamp=timestamp, value=float(value)))

    def values(self) -> list[float]:
        return [s.value for s in self.samples]

    def __len__(self) -> int:
        return len(self.samples)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "samples": [
                {"timestamp": s.timestamp.isoformat(), "value": s.value}
                for s in self.samples
            ],
        }


@dataclass(frozen=True)
class Outlier:
    index: int
    value: float
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "value": self.value, "score": self.score}


@dataclass(frozen=True)
class SuddenChange:
    index: int
    change_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "change_percent": self.change_percent}


@dataclass
class GrowthPrediction:
    """Forecast for one metric, one period past the last observation."""

    metric: str
    current_value: float
    predicted_value: float
    confidence: float  # 0.0 - 1.0
    trend: Trend
    slope: float = 0.0
    data_quality: DataQuality = "insufficient"
    sample_count: int = 0
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "current_value": self.current_value,
            "predicted_value": self.predicted_value,
            "confidence": self.confidence,
            "trend": self.trend,
            "slope": self.slope,
            "data_quality": self.data_quality,
            "sample_count": self.sample_count,
            "factors": list(self.factors),
        }


@dataclass(frozen=True)
class ForecastPoint:
    period_index: int
    predicted: float
    lower_bound: float
    upper_bound: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_index": self.period_index,
            "predicted": self.predicted,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
        }


@dataclass(frozen=True)
class CareerMilestone:
    id: str
    type: MilestoneType
    title: str
    date: datetime
    impact: Impact
    description: str = ""
    category: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "date": self.date.isoformat(),
            "impact": self.impact,
            "description": self.description,
            "category": self.category,
        }


@dataclass(frozen=True)
class StageIndicators:
    technical_skills: float = 0.0
    leadership: float = 0.0
    impact: float = 0.0
    communication: float = 0.0

    def as_mapping(self) -> dict[str, float]:
        return {
            "technical_skills": self.technical_skills,
            "leadership": self.leadership,
            "impact": self.impact,
            "communication": self.communication,
        }

    def to_dict(self) -> dict[str, Any]:
        return self.as_mapping()


@dataclass
class CareerStage:
    stage: StageName
    start_date: datetime
    end_date: datetime | None = None
    indicators: StageIndicators = field(default_factory=StageIndicators)
    achievements: list[CareerMilestone] = field(default_factory=list)

    @property
    def is_current(self) -> bool:
        return self.end_date is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "start_date": self.start_date.isoformat(),
            "end_date": _iso(self.end_date),
            "indicators": self.indicators.to_dict(),
            "achievements": [m.to_dict() for m in self.achievements],
        }


@dataclass
class ProjectedStage:
    stage: StageName
    estimated_date: datetime | None
    requirements: list[str]
    progress: float  # 0.0 - 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "estimated_date": _iso(self.estimated_date),
            "requirements": list(self.requirements),
            "progress": self.progress,
        }


@dataclass
class CareerTrajectory:
    """Derived view over a developer's stages; recomputed on demand."""

    stages: list[CareerStage]
    projected_next_stage: ProjectedStage | None = None
    overall_growth_rate: float = 0.0
    strength_areas: list[str] = field(default_factory=list)
    improvement_areas: list[str] = field(default_factory=list)
    milestones: list[CareerMilestone] = field(default_factory=list)

    @property
    def current_stage(self) -> CareerStage:
        for stage in reversed(self.stages):
            if stage.end_date is None:
                return stage
        return self.stages[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "stages": [s.to_dict() for s in self.stages],
            "current_stage": self.current_stage.stage,
            "projected_next_stage": (
                self.projected_next_stage.to_dict()
                if self.projected_next_stage
                else None
            ),
            "overall_growth_rate": self.overall_growth_rate,
            "strength_areas": list(self.strength_areas),
            "improvement_areas": list(self.improvement_areas),
            "milestones": [m.to_dict() for m in self.milestones],
        }


@dataclass
class MilestoneProjection:
    """When the requirements of the next career stage are expected to be met."""

    current_stage: str
    next_stage: str | None
    estimated_date: datetime | None
    months_to_next_stage: float | None
    unmet_requirements: list[str] = field(default_factory=list)
    requirement_progress: dict[str, float] = field(default_factory=dict)
    probability: float = 0.0
    next_milestone: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_stage": self.current_stage,
            "next_stage": self.next_stage,
            "estimated_date": _iso(self.estimated_date),
            "months_to_next_stage": self.months_to_next_stage,
            "unmet_requirements": list(self.unmet_requirements),
            "requirement_progress": dict(self.requirement_progress),
            "probability": self.probability,
            "next_milestone": self.next_milestone,
        }


@dataclass
class SkillProgression:
    skill: str
    category: str
    current_level: str
    milestones: list[dict[str, Any]]
    proficiency_score: int
    years_of_experience: float
    projects_completed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill,
            "category": self.category,
            "current_level": self.current_level,
            "milestones": self.milestones,
            "proficiency_score": self.proficiency_score,
            "years_of_experience": self.years_of_experience,
            "projects_completed": self.projects_completed,
        }


# Raw activity records consumed by the career model


@dataclass(frozen=True)
class CommitRecord:
    date: datetime
    language: str = ""


@dataclass(frozen=True)
class PullRequestRecord:
    date: datetime
    reviews: int = 0


@dataclass(frozen=True)
class RepositoryRecord:
    created: datetime
    stars: int = 0
    role: str = "owner"


@dataclass(frozen=True)
class SkillRecord:
    skill: str
    first_used: datetime
    last_used: datetime | None = None


@dataclass
class ProgressionData:
    """Activity history feeding career analysis; every list may be empty."""

    commits: list[CommitRecord] = field(default_factory=list)
    prs: list[PullRequestRecord] = field(default_factory=list)
    repos: list[RepositoryRecord] = field(default_factory=list)
    skills: list[SkillRecord] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.commits or self.prs or self.repos or self.skills)

    def to_dict(self) -> dict[str, Any]:
        return {
            "commits": [
                {"date": c.date.isoformat(), "language": c.language}
                for c in self.commits
            ],
            "prs": [
                {"date": p.date.isoformat(), "reviews": p.reviews} for p in self.prs
            ],
            "repos": [
                {"created": r.created.isoformat(), "stars": r.stars, "role": r.role}
                for r in self.repos
            ],
            "skills": [
                {
                    "skill": s.skill,
                    "first_used": s.first_used.isoformat(),
                    "last_used": _iso(s.last_used),
                }
                for s in self.skills
            ],
        }


@dataclass
class Candidate:
    id: str
    skills: set[str] = field(default_factory=set)
    experience: float = 0.0
    talent_score: float | None = None
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "skills": sorted(self.skills),
            "experience": self.experience,
            "talent_score": self.talent_score,
        }


@dataclass
class JobPosting:
    id: str
    skills: set[str] = field(default_factory=set)
    experience: float = 0.0
    talent_score: float | None = None
    title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "skills": sorted(self.skills),
            "experience": self.experience,
            "talent_score": self.talent_score,
        }


@dataclass
class CandidateSearch:
    skills: list[str] | None = None
    min_experience: float | None = None
    max_experience: float | None = None
    min_talent_score: float | None = None


@dataclass(frozen=True)
class MatchBreakdown:
    candidate_id: str
    job_id: str
    skill_score: float
    experience_score: float
    talent_score: float
    total: int
    recommendation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "job_id": self.job_id,
            "skill_score": self.skill_score,
            "experience_score": self.experience_score,
            "talent_score": self.talent_score,
            "total": self.total,
            "recommendation": self.recommendation,
        }
