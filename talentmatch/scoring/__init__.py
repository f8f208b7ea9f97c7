"""Candidate/job scoring."""

from .adjustments import (
    CollaborativeSignalProvider,
    InteractionHistory,
    ScoreAdjustmentProvider,
    StaticAdjustmentProvider,
)
from .engine import ScoringEngine
from .models import (
    DEFAULT_WEIGHTS,
    CandidateScoreBreakdown,
    EmployerPreferences,
    JobScoreBreakdown,
    MatchContext,
    MatchingAlgorithm,
    ScoreAdjustment,
    ScoringWeights,
)

__all__ = [
    "ScoringEngine",
    "MatchingAlgorithm",
    "MatchContext",
    "ScoringWeights",
    "EmployerPreferences",
    "ScoreAdjustment",
    "CandidateScoreBreakdown",
    "JobScoreBreakdown",
    "ScoreAdjustmentProvider",
    "StaticAdjustmentProvider",
    "CollaborativeSignalProvider",
    "InteractionHistory",
    "DEFAULT_WEIGHTS",
]
