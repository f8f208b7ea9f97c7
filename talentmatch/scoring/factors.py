"""Per-factor scoring functions.

Two families live here:

* Budgeted factors used by the comprehensive algorithm. Each takes the
  factor's point budget (100 * weight) and returns points in [0, budget].
* Ratio heuristics used by the weighted and content-based algorithms. Each
  returns a fraction in [0, 1].

All recency factors take an explicit ``as_of`` so that results are
reproducible.
"""

from datetime import datetime
from typing import Optional

from talentmatch.domain.models import CandidateProfile, JobPosting
from talentmatch.utils.timestamps import days_between

from .text import (
    exact_skill_matches,
    extract_years_requirement,
    normalize_skill,
    semantic_skill_matches,
    substring_skill_matches,
)

# Share of the skills budget for each component; required, preferred and
# proficiency together fill the budget exactly
REQUIRED_SKILLS_SHARE = 23 / 35
REQUIRED_SKILLS_BASELINE_SHARE = 15 / 35
PREFERRED_SKILLS_SHARE = 10 / 35
PROFICIENCY_SHARE = 2 / 35
DEFAULT_PROFICIENCY = 3

DEGREE_LEVELS = [
    (("phd", "ph.d", "doctor"), 1.0),
    (("master", "msc", "m.s.", "mba"), 0.8),
    (("bachelor", "bsc", "b.s.", "b.a."), 0.6),
    (("associate",), 0.4),
]


def _clamp(value: float, upper: float) -> float:
    return max(0.0, min(upper, value))


def _level_distance(candidate: CandidateProfile, job: JobPosting) -> Optional[int]:
    if candidate.experience_level is None or job.experience_level is None:
        return None
    return abs(job.experience_level.rank - candidate.experience_level.rank)


def _location_overlap(candidate: CandidateProfile, job: JobPosting) -> bool:
    if not candidate.location or not job.location:
        return False
    return job.location.lower() in candidate.location.lower()


def degree_level(degree: str) -> float:
    """Relative level of a degree name (PhD 1.0 ... Associate 0.4, unknown 0)."""
    lowered = degree.lower()
    for keywords, level in DEGREE_LEVELS:
        if any(keyword in lowered for keyword in keywords):
            return level
    return 0.0


# Comprehensive (budgeted) factors

def skills_points(candidate: CandidateProfile, job: JobPosting, budget: float) -> float:
    """Required exact coverage, preferred semantic coverage and a proficiency bonus."""
    required = job.required_skills
    preferred = job.preferred_skills

    if not required and not preferred:
        return budget

    names = candidate.skill_names

    if required:
        exact = exact_skill_matches(names, required)
        required_points = budget * REQUIRED_SKILLS_SHARE * len(exact) / len(required)
    else:
        exact = []
        required_points = budget * REQUIRED_SKILLS_BASELINE_SHARE

    if preferred:
        semantic = semantic_skill_matches(names, preferred)
        preferred_points = budget * PREFERRED_SKILLS_SHARE * len(semantic) / len(preferred)
    else:
        preferred_points = budget * PREFERRED_SKILLS_SHARE

    proficiency_points = 0.0
    if exact:
        matched = {normalize_skill(skill) for skill in exact}
        levels = [
            (skill.proficiency or DEFAULT_PROFICIENCY) / 5
            for skill in candidate.skills
            if normalize_skill(skill.name) in matched
        ]
        proficiency_points = budget * PROFICIENCY_SHARE * sum(levels) / len(levels)

    return _clamp(required_points + preferred_points + proficiency_points, budget)


def experience_points(candidate: CandidateProfile, job: JobPosting, budget: float) -> float:
    """Seniority distance plus years measured against the description's stated range."""
    distance = _level_distance(candidate, job)
    if distance is None:
        points = 0.375 * budget
    else:
        points = max(0.0, 0.75 - 0.15 * distance) * budget

    min_years, ideal_years = extract_years_requirement(job.description)
    years = candidate.years_experience

    if min_years is None:
        points += 0.15 * budget
    elif years >= min_years:
        if abs(years - ideal_years) <= 2:
            points += 0.25 * budget
        elif years > ideal_years + 5:
            points += 0.10 * budget
        else:
            points += 0.15 * budget
    else:
        points -= min(0.25, 0.05 * (min_years - years)) * budget

    return _clamp(points, budget)


def location_points(candidate: CandidateProfile, job: JobPosting, budget: float) -> float:
    """Tiered remote/location/relocation fit."""
    overlap = _location_overlap(candidate, job)

    if job.remote and candidate.remote:
        fraction = 1.0
    elif not job.remote and overlap:
        fraction = 1.0
    elif job.remote and candidate.willing_to_relocate:
        fraction = 0.8
    elif overlap:
        fraction = 0.9
    elif job.remote:
        fraction = 0.6
    elif candidate.willing_to_relocate:
        fraction = 0.5
    else:
        fraction = 0.2

    return budget * fraction


def education_points(candidate: CandidateProfile, job: JobPosting, budget: float) -> float:
    """Requirement keywords plus the level of the highest degree held."""
    if not candidate.education:
        return 0.0

    required = (job.required_education or "").lower()
    preferred = (job.preferred_education or "").lower()

    points = 0.0
    highest = 0.0
    for entry in candidate.education:
        text = f"{entry.degree} {entry.field or ''}".lower()
        if required and required in text:
            points += 0.8 * budget
        if preferred and preferred in text:
            points += 0.5 * budget
        highest = max(highest, degree_level(entry.degree))

    return _clamp(points + highest * budget, budget)


def availability_points(candidate: CandidateProfile, as_of: datetime, budget: float) -> float:
    """Active status plus how recently the candidate was seen."""
    points = 0.6 * budget if candidate.is_active else 0.0

    days = days_between(candidate.last_seen_at, as_of)
    if days <= 7:
        points += 0.4 * budget
    elif days <= 30:
        points += 0.2 * budget
    elif days <= 90:
        points += 0.1 * budget

    return _clamp(points, budget)


def activity_points(candidate: CandidateProfile, as_of: datetime, budget: float) -> float:
    """Profile completeness plus login recency."""
    points = 0.4 * budget if candidate.profile_complete else 0.0

    days = days_between(candidate.last_login_at, as_of)
    if days is not None:
        if days <= 1:
            points += 0.6 * budget
        elif days <= 7:
            points += 0.4 * budget
        elif days <= 30:
            points += 0.2 * budget

    return _clamp(points, budget)


# Ratio heuristics

def skills_ratio(candidate: CandidateProfile, job: JobPosting) -> float:
    if not job.required_skills:
        return 0.8
    matched = substring_skill_matches(candidate.skill_names, job.required_skills)
    return len(matched) / len(job.required_skills)


def experience_ratio(candidate: CandidateProfile, job: JobPosting) -> float:
    distance = _level_distance(candidate, job)
    if distance is None:
        return 0.5
    return max(0.0, 1.0 - 0.25 * distance)


def location_ratio(candidate: CandidateProfile, job: JobPosting) -> float:
    if job.remote and candidate.remote:
        return 1.0
    if _location_overlap(candidate, job):
        return 1.0
    if job.remote and candidate.willing_to_relocate:
        return 0.8
    return 0.2


def education_ratio(candidate: CandidateProfile) -> float:
    if not candidate.education:
        return 0.3
    has_degree = any(degree_level(entry.degree) >= 0.6 for entry in candidate.education)
    return 0.8 if has_degree else 0.5


def availability_ratio(candidate: CandidateProfile) -> float:
    return 1.0 if candidate.is_active else 0.2


def activity_ratio(candidate: CandidateProfile, as_of: datetime) -> float:
    days = days_between(candidate.last_seen_at, as_of)
    if days <= 7:
        return 1.0
    if days <= 30:
        return 0.7
    if days <= 90:
        return 0.4
    return 0.1
