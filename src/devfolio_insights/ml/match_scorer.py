"""Candidate-to-job compatibility scoring.

Score components (each clamped to its weight before summation):
- Skills (50): share of the job's skills the candidate has
- Experience (30): 5 points lost per year away from the ideal level
- Talent score (20): the candidate's 0-100 talent score, scaled

Skill comparison is case-insensitive. All functions are pure.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from ..models import Candidate, CandidateSearch, JobPosting, MatchBreakdown

logger = logging.getLogger(__name__)

SKILL_WEIGHT = 50.0
EXPERIENCE_WEIGHT = 30.0
TALENT_WEIGHT = 20.0

IDEAL_EXPERIENCE_YEARS = 3.0
EXPERIENCE_PENALTY_PER_YEAR = 5.0

MAX_SCORE = 100


def _normalize_skills(skills: Iterable[str] | None) -> set[str]:
    return {s.strip().lower() for s in (skills or ()) if s and s.strip()}


def _clamp(value: float, upper: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(upper, max(0.0, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def skill_score(candidate: Candidate, job: JobPosting) -> float:
    job_skills = _normalize_skills(job.skills)
    if not job_skills:
        return 0.0
    matching = _normalize_skills(candidate.skills) & job_skills
    return _clamp(len(matching) / len(job_skills) * SKILL_WEIGHT, SKILL_WEIGHT)


def experience_score(
    candidate: Candidate, ideal_experience: float = IDEAL_EXPERIENCE_YEARS
) -> float:
    experience = float(candidate.experience)
    if not math.isfinite(experience) or experience < 0:
        return 0.0
    deviation = abs(experience - ideal_experience)
    return _clamp(EXPERIENCE_WEIGHT - deviation * EXPERIENCE_PENALTY_PER_YEAR, EXPERIENCE_WEIGHT)


def talent_score(candidate: Candidate) -> float:
    if candidate.talent_score is None:
        return 0.0
    return _clamp(float(candidate.talent_score) / 100 * TALENT_WEIGHT, TALENT_WEIGHT)


def match_candidate_to_job(
    candidate: Candidate,
    job: JobPosting,
    ideal_experience: float = IDEAL_EXPERIENCE_YEARS,
) -> int:
    """Compute a 0-100 compatibility score.

    Args:
        candidate: Candidate profile.
        job: Job posting.
        ideal_experience: Experience (years) that earns the full 30 points.

    Returns:
        Integer score, rounded half-up and clamped to [0, 100].
    """
    total = (
        skill_score(candidate, job)
        + experience_score(candidate, ideal_experience)
        + talent_score(candidate)
    )
    return min(MAX_SCORE, max(0, _round_half_up(total)))


def recommendation_for(total: float, skills: float) -> str:
    if total >= 80:
        return "Excellent match! Apply with confidence"
    if total >= 60:
        return "Good fit! Consider applying"
    if skills >= 0.7 * SKILL_WEIGHT:
        return "Skills match but need more experience"
    return "Consider building more relevant experience first"


def score_breakdown(
    candidate: Candidate,
    job: JobPosting,
    ideal_experience: float = IDEAL_EXPERIENCE_YEARS,
) -> MatchBreakdown:
    """Match score with its components and a recommendation."""
    skills = skill_score(candidate, job)
    experience = experience_score(candidate, ideal_experience)
    talent = talent_score(candidate)
    total = min(MAX_SCORE, max(0, _round_half_up(skills + experience + talent)))

    return MatchBreakdown(
        candidate_id=candidate.id,
        job_id=job.id,
        skill_score=round(skills, 2),
        experience_score=round(experience, 2),
        talent_score=round(talent, 2),
        total=total,
        recommendation=recommendation_for(total, skills),
    )


def rank_candidates(
    candidates: Sequence[Candidate],
    job: JobPosting,
    ideal_experience: float = IDEAL_EXPERIENCE_YEARS,
) -> list[MatchBreakdown]:
    """Score every candidate for a job, best first (ties keep input order)."""
    breakdowns = [score_breakdown(c, job, ideal_experience) for c in candidates]
    return sorted(breakdowns, key=lambda b: b.total, reverse=True)


def filter_candidates(
    candidates: Sequence[Candidate], search: CandidateSearch
) -> list[Candidate]:
    """Keep candidates that pass every supplied search criterion.

    Criteria: any-match on skills, inclusive experience range, minimum talent
    score. A supplied minimum talent score excludes candidates without one.
    Absent criteria impose no constraint.
    """
    wanted = _normalize_skills(search.skills)
    results = []

    for candidate in candidates:
        if wanted and not (_normalize_skills(candidate.skills) & wanted):
            continue
        if search.min_experience is not None and candidate.experience < search.min_experience:
            continue
        if search.max_experience is not None and candidate.experience > search.max_experience:
            continue
        if search.min_talent_score is not None and (
            candidate.talent_score is None
            or candidate.talent_score < search.min_talent_score
        ):
            continue
        results.append(candidate)

    logger.debug(f"Filtered {len(candidates)} candidates down to {len(results)}")
    return results
