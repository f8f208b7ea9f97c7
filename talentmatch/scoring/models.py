"""Data models for the scoring engine.

Inputs (weights, employer preferences, match context) are pydantic models so
that dict payloads are validated at the engine boundary. Outputs are plain
dataclasses.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from talentmatch.utils.timestamps import ensure_utc


class MatchingAlgorithm(str, Enum):
    """Scoring variants selectable per request."""

    COMPREHENSIVE = "comprehensive"
    WEIGHTED = "weighted"
    ML_ENHANCED = "ml_enhanced"
    COLLABORATIVE = "collaborative"
    CONTENT_BASED = "content_based"


DEFAULT_WEIGHTS: Dict[str, float] = {
    "skills": 0.35,
    "experience": 0.20,
    "location": 0.15,
    "education": 0.10,
    "availability": 0.10,
    "activity": 0.05,
    "compensation": 0.05,
}


class ScoringWeights(BaseModel):
    """Relative weight per factor.

    Weights are linear multipliers of each factor's point budget
    (budget = 100 * weight) and need not sum to 1. The candidate breakdown has
    no compensation factor, so with the defaults a perfect candidate tops out
    at 95 under the comprehensive algorithm.
    """

    skills: float = Field(DEFAULT_WEIGHTS["skills"], ge=0)
    experience: float = Field(DEFAULT_WEIGHTS["experience"], ge=0)
    location: float = Field(DEFAULT_WEIGHTS["location"], ge=0)
    education: float = Field(DEFAULT_WEIGHTS["education"], ge=0)
    availability: float = Field(DEFAULT_WEIGHTS["availability"], ge=0)
    activity: float = Field(DEFAULT_WEIGHTS["activity"], ge=0)
    compensation: float = Field(DEFAULT_WEIGHTS["compensation"], ge=0)

    model_config = {"extra": "forbid"}

    def with_overrides(self, overrides: Optional[Dict[str, float]]) -> "ScoringWeights":
        """Return a copy with some factors replaced (validated)."""
        if not overrides:
            return self
        return ScoringWeights.model_validate({**self.model_dump(), **overrides})


class EmployerPreferences(BaseModel):
    """Employer-side tuning applied on top of the request weights."""

    preferred_skills: List[str] = Field(default_factory=list)
    weight_overrides: Optional[Dict[str, float]] = Field(None)

    @field_validator("preferred_skills")
    @classmethod
    def clean_skills(cls, v: List[str]) -> List[str]:
        return [skill.strip() for skill in v if skill and skill.strip()]


class MatchContext(BaseModel):
    """Per-request scoring options.

    ``as_of`` is the reference time for recency factors. It defaults to the
    current time; passing it makes every algorithm reproducible.
    """

    algorithm: MatchingAlgorithm = Field(MatchingAlgorithm.COMPREHENSIVE)
    weights: Optional[ScoringWeights] = Field(None)
    employer_preferences: Optional[EmployerPreferences] = Field(None)
    as_of: Optional[datetime] = Field(None)

    @field_validator("as_of")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def effective_weights(self) -> ScoringWeights:
        """Request weights (or defaults) with employer overrides applied."""
        weights = self.weights or ScoringWeights()
        if self.employer_preferences is not None:
            weights = weights.with_overrides(self.employer_preferences.weight_overrides)
        return weights


@dataclass
class ScoreAdjustment:
    """Multipliers and success estimate returned by an adjustment provider."""

    skills_multiplier: float = 1.0
    experience_multiplier: float = 1.0
    location_multiplier: float = 1.0
    education_multiplier: float = 1.0
    success_probability: float = 0.5


@dataclass
class CandidateScoreBreakdown:
    """How well a candidate fits a job, factor by factor (0-100 scale).

    Attributes:
        overall_score: Capped total in [0, 100]
        skills_match: Points from required/preferred skill coverage
        experience_match: Points from level and years fit
        location_match: Points from remote/location/relocation fit
        education_match: Points from degree level and requirement keywords
        availability_match: Points from active status and recency
        recent_activity: Points from profile completeness and login recency
        algorithm: Algorithm that produced the numbers
        degraded: True when an augmentation step failed and the comprehensive
            baseline was returned instead
    """

    overall_score: float
    skills_match: float
    experience_match: float
    location_match: float
    education_match: float
    availability_match: float
    recent_activity: float
    algorithm: str = MatchingAlgorithm.COMPREHENSIVE.value
    degraded: bool = False

    def factor_total(self) -> float:
        return (
            self.skills_match
            + self.experience_match
            + self.location_match
            + self.education_match
            + self.availability_match
            + self.recent_activity
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class JobScoreBreakdown:
    """How attractive a job is for a candidate (0-100 scale)."""

    overall_score: float
    requirements_match: float
    candidate_fit: float
    compensation_fit: float
    culture_fit: float
    growth_potential: float
    market_demand: float
    algorithm: str = MatchingAlgorithm.COMPREHENSIVE.value
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
