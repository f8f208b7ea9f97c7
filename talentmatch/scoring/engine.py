"""Scoring engine: multi-factor candidate/job fit under five algorithms.

The engine is a pure function of (candidate, job, context) apart from the
optional augmentation providers. Dict inputs are validated into domain models
at the boundary, so malformed payloads raise pydantic.ValidationError before
any scoring happens.
"""

import math
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from talentmatch.domain.models import CandidateProfile, JobPosting
from talentmatch.logging import get_logger
from talentmatch.utils.timestamps import utc_now

from . import factors
from .adjustments import (
    CollaborativeSignalProvider,
    InteractionHistory,
    ScoreAdjustmentProvider,
    StaticAdjustmentProvider,
)
from .models import (
    CandidateScoreBreakdown,
    JobScoreBreakdown,
    MatchContext,
    MatchingAlgorithm,
    ScoreAdjustment,
    ScoringWeights,
)
from .text import normalize_skill, tokenize

logger = get_logger(__name__, component="scoring")

# Fixed factor distribution of the content-based algorithm
CONTENT_WEIGHTS = {
    "skills": 40,
    "experience": 25,
    "location": 15,
    "education": 10,
    "availability": 5,
    "activity": 5,
}
CONTENT_ALIGNMENT_POINTS = 10

EMPLOYER_SKILL_BOOST = 2
NEUTRAL_FACTOR = 50.0
MARKET_DEMAND_PIVOT = 50

CandidateInput = Union[CandidateProfile, Dict[str, Any]]
JobInput = Union[JobPosting, Dict[str, Any]]
ContextInput = Union[MatchContext, Dict[str, Any], None]


class ScoringEngine:
    """Scores candidates against jobs and jobs against candidates.

    Attributes:
        adjustment_provider: Multipliers for the ML-enhanced algorithm
        collaborative_provider: Signal source for the collaborative algorithm
        default_algorithm: Used when a request carries no context
        default_weights: Used when a context carries no weights
    """

    def __init__(
        self,
        adjustment_provider: Optional[ScoreAdjustmentProvider] = None,
        collaborative_provider: Optional[CollaborativeSignalProvider] = None,
        default_algorithm: MatchingAlgorithm = MatchingAlgorithm.COMPREHENSIVE,
        default_weights: Optional[ScoringWeights] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.adjustment_provider = (
            adjustment_provider if adjustment_provider is not None else StaticAdjustmentProvider()
        )
        self.collaborative_provider = (
            collaborative_provider if collaborative_provider is not None else InteractionHistory()
        )
        self.default_algorithm = MatchingAlgorithm(default_algorithm)
        self.default_weights = default_weights or ScoringWeights()
        self._clock = clock
        self._algorithms = {
            MatchingAlgorithm.COMPREHENSIVE: self._comprehensive,
            MatchingAlgorithm.WEIGHTED: self._weighted,
            MatchingAlgorithm.ML_ENHANCED: self._ml_enhanced,
            MatchingAlgorithm.COLLABORATIVE: self._collaborative,
            MatchingAlgorithm.CONTENT_BASED: self._content_based,
        }

    def score(
        self,
        candidate: CandidateInput,
        job: JobInput,
        context: ContextInput = None,
    ) -> CandidateScoreBreakdown:
        """Score how well a candidate fits a job.

        Args:
            candidate: CandidateProfile or a dict validated into one
            job: JobPosting or a dict validated into one
            context: MatchContext, dict, or None for the engine defaults

        Returns:
            CandidateScoreBreakdown with overall_score in [0, 100]

        Raises:
            pydantic.ValidationError: If any input is malformed
        """
        candidate = _coerce(CandidateProfile, candidate)
        job = _coerce(JobPosting, job)
        context = self._resolve_context(context)

        algorithm = MatchingAlgorithm(context.algorithm)
        breakdown = self._algorithms[algorithm](candidate, job, context)
        return _rounded(breakdown)

    score_candidate = score

    def score_job(
        self,
        job: JobInput,
        candidate: CandidateInput,
        context: ContextInput = None,
    ) -> JobScoreBreakdown:
        """Score how attractive a job is for a candidate.

        Reuses the candidate-side score of the selected algorithm and blends
        it (70%) with four job-only factors (30%).

        Raises:
            pydantic.ValidationError: If any input is malformed
        """
        candidate = _coerce(CandidateProfile, candidate)
        job = _coerce(JobPosting, job)
        context = self._resolve_context(context)

        candidate_side = self.score(candidate, job, context)

        job_factors = [
            compensation_fit(candidate, job),
            culture_fit(candidate, job),
            growth_potential(candidate, job),
            market_demand(job),
        ]
        overall = 0.7 * candidate_side.overall_score + 0.3 * sum(job_factors) / len(job_factors)

        return JobScoreBreakdown(
            overall_score=round(_clamp(overall), 2),
            requirements_match=candidate_side.skills_match,
            candidate_fit=candidate_side.experience_match,
            compensation_fit=round(job_factors[0], 2),
            culture_fit=round(job_factors[1], 2),
            growth_potential=round(job_factors[2], 2),
            market_demand=round(job_factors[3], 2),
            algorithm=candidate_side.algorithm,
            degraded=candidate_side.degraded,
        )

    def _resolve_context(self, context: ContextInput) -> MatchContext:
        if context is None:
            context = MatchContext(algorithm=self.default_algorithm)
        elif isinstance(context, dict):
            context = MatchContext.model_validate(
                {"algorithm": self.default_algorithm, **context}
            )

        if context.weights is None:
            context = context.model_copy(update={"weights": self.default_weights})
        if context.as_of is None:
            context = context.model_copy(update={"as_of": self._clock()})
        return context

    # Algorithms

    def _comprehensive(
        self, candidate: CandidateProfile, job: JobPosting, context: MatchContext
    ) -> CandidateScoreBreakdown:
        weights = context.effective_weights()
        as_of = context.as_of

        breakdown = CandidateScoreBreakdown(
            overall_score=0.0,
            skills_match=factors.skills_points(candidate, job, 100 * weights.skills),
            experience_match=factors.experience_points(candidate, job, 100 * weights.experience),
            location_match=factors.location_points(candidate, job, 100 * weights.location),
            education_match=factors.education_points(candidate, job, 100 * weights.education),
            availability_match=factors.availability_points(
                candidate, as_of, 100 * weights.availability
            ),
            recent_activity=factors.activity_points(candidate, as_of, 100 * weights.activity),
            algorithm=MatchingAlgorithm.COMPREHENSIVE.value,
        )
        breakdown.overall_score = _clamp(breakdown.factor_total())
        return breakdown

    def _weighted(
        self, candidate: CandidateProfile, job: JobPosting, context: MatchContext
    ) -> CandidateScoreBreakdown:
        weights = context.effective_weights()

        skills = factors.skills_ratio(candidate, job) * 100 * weights.skills
        preferences = context.employer_preferences
        if preferences is not None and preferences.preferred_skills:
            wanted = {normalize_skill(skill) for skill in preferences.preferred_skills}
            overlap = sum(1 for name in candidate.skill_names if normalize_skill(name) in wanted)
            skills += overlap * EMPLOYER_SKILL_BOOST

        breakdown = CandidateScoreBreakdown(
            overall_score=0.0,
            skills_match=_clamp(skills),
            experience_match=_clamp(
                factors.experience_ratio(candidate, job) * 100 * weights.experience
            ),
            location_match=_clamp(factors.location_ratio(candidate, job) * 100 * weights.location),
            education_match=_clamp(factors.education_ratio(candidate) * 100 * weights.education),
            availability_match=_clamp(
                factors.availability_ratio(candidate) * 100 * weights.availability
            ),
            recent_activity=_clamp(
                factors.activity_ratio(candidate, context.as_of) * 100 * weights.activity
            ),
            algorithm=MatchingAlgorithm.WEIGHTED.value,
        )
        breakdown.overall_score = _clamp(breakdown.factor_total())
        return breakdown

    def _ml_enhanced(
        self, candidate: CandidateProfile, job: JobPosting, context: MatchContext
    ) -> CandidateScoreBreakdown:
        base = self._comprehensive(candidate, job, context)

        try:
            adjustment = self.adjustment_provider.adjust(candidate, job)
            _validate_adjustment(adjustment)
        except Exception as e:
            return self._degrade(base, candidate, job, MatchingAlgorithm.ML_ENHANCED, e)

        weights = context.effective_weights()
        base.skills_match = min(100 * weights.skills, base.skills_match * adjustment.skills_multiplier)
        base.experience_match = min(
            100 * weights.experience, base.experience_match * adjustment.experience_multiplier
        )
        base.location_match = min(
            100 * weights.location, base.location_match * adjustment.location_multiplier
        )
        base.education_match = min(
            100 * weights.education, base.education_match * adjustment.education_multiplier
        )
        base.overall_score = _clamp(
            0.7 * base.factor_total() + 30 * adjustment.success_probability
        )
        base.algorithm = MatchingAlgorithm.ML_ENHANCED.value
        return base

    def _collaborative(
        self, candidate: CandidateProfile, job: JobPosting, context: MatchContext
    ) -> CandidateScoreBreakdown:
        base = self._comprehensive(candidate, job, context)

        try:
            signal = self.collaborative_provider.signal(candidate, job)
            if not _is_fraction(signal):
                raise ValueError(f"Collaborative signal out of range: {signal!r}")
        except Exception as e:
            return self._degrade(base, candidate, job, MatchingAlgorithm.COLLABORATIVE, e)

        base.overall_score = _clamp(0.8 * base.overall_score + 20 * signal)
        base.algorithm = MatchingAlgorithm.COLLABORATIVE.value
        return base

    def _content_based(
        self, candidate: CandidateProfile, job: JobPosting, context: MatchContext
    ) -> CandidateScoreBreakdown:
        breakdown = CandidateScoreBreakdown(
            overall_score=0.0,
            skills_match=factors.skills_ratio(candidate, job) * CONTENT_WEIGHTS["skills"],
            experience_match=factors.experience_ratio(candidate, job) * CONTENT_WEIGHTS["experience"],
            location_match=factors.location_ratio(candidate, job) * CONTENT_WEIGHTS["location"],
            education_match=factors.education_ratio(candidate) * CONTENT_WEIGHTS["education"],
            availability_match=factors.availability_ratio(candidate) * CONTENT_WEIGHTS["availability"],
            recent_activity=factors.activity_ratio(candidate, context.as_of) * CONTENT_WEIGHTS["activity"],
            algorithm=MatchingAlgorithm.CONTENT_BASED.value,
        )
        alignment = content_alignment(candidate, job)
        breakdown.overall_score = _clamp(
            breakdown.factor_total() + alignment * CONTENT_ALIGNMENT_POINTS
        )
        return breakdown

    def _degrade(
        self,
        base: CandidateScoreBreakdown,
        candidate: CandidateProfile,
        job: JobPosting,
        algorithm: MatchingAlgorithm,
        error: Exception,
    ) -> CandidateScoreBreakdown:
        logger.warning(
            f"{algorithm.value} scoring failed, falling back to comprehensive",
            extra={
                "event": "scoring.degraded",
                "algorithm": algorithm.value,
                "candidate_id": candidate.id,
                "job_id": job.id,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
        base.degraded = True
        return base


# Job-only factors (0-100)

def compensation_fit(candidate: CandidateProfile, job: JobPosting) -> float:
    """100 when the expectation fits the range, falling linearly above the top."""
    expectation = candidate.salary_expectation
    top = job.salary_max if job.salary_max is not None else job.salary_min
    if expectation is None or top is None:
        return NEUTRAL_FACTOR
    if expectation <= top:
        return 100.0
    if top <= 0:
        return 0.0
    return _clamp(100 - 100 * (expectation - top) / top)


def culture_fit(candidate: CandidateProfile, job: JobPosting) -> float:
    """Share of the company's values the candidate also lists."""
    if not candidate.work_values or not job.company_values:
        return NEUTRAL_FACTOR
    have = {value.lower() for value in candidate.work_values}
    wanted = {value.lower() for value in job.company_values}
    return 100 * len(have & wanted) / len(wanted)


def growth_potential(candidate: CandidateProfile, job: JobPosting) -> float:
    """Career step the job represents: one level up is ideal."""
    if candidate.experience_level is None or job.experience_level is None:
        return NEUTRAL_FACTOR
    step = job.experience_level.rank - candidate.experience_level.rank
    if step == 1:
        return 100.0
    if step == 0:
        return 70.0
    if step > 1:
        return 50.0
    return 40.0


def market_demand(job: JobPosting) -> float:
    """Less competition means higher demand for the candidate: 100 / (1 + applicants / 50)."""
    if job.applicant_count is None:
        return NEUTRAL_FACTOR
    return 100 / (1 + job.applicant_count / MARKET_DEMAND_PIVOT)


def content_alignment(candidate: CandidateProfile, job: JobPosting) -> float:
    """Share of the job's content terms that appear in the candidate's profile."""
    job_terms = tokenize(job.title, job.description, *job.required_skills, *job.preferred_skills)
    if not job_terms:
        return 0.0
    candidate_terms = tokenize(candidate.headline, candidate.summary, *candidate.skill_names)
    return len(job_terms & candidate_terms) / len(job_terms)


def _coerce(model, value):
    if isinstance(value, model):
        return value
    return model.model_validate(value)


def _clamp(value: float, upper: float = 100.0) -> float:
    return max(0.0, min(upper, value))


def _is_fraction(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and 0 <= value <= 1
    )


def _validate_adjustment(adjustment: ScoreAdjustment) -> None:
    multipliers = [
        adjustment.skills_multiplier,
        adjustment.experience_multiplier,
        adjustment.location_multiplier,
        adjustment.education_multiplier,
    ]
    for value in multipliers:
        if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
            raise ValueError(f"Invalid score multiplier: {value!r}")
    if not _is_fraction(adjustment.success_probability):
        raise ValueError(f"Invalid success probability: {adjustment.success_probability!r}")


def _rounded(breakdown: CandidateScoreBreakdown) -> CandidateScoreBreakdown:
    for name in (
        "overall_score",
        "skills_match",
        "experience_match",
        "location_match",
        "education_match",
        "availability_match",
        "recent_activity",
    ):
        setattr(breakdown, name, round(getattr(breakdown, name), 2))
    return breakdown
