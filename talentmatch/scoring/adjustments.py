"""Pluggable augmentation sources for the ML-enhanced and collaborative algorithms."""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Set, Tuple

from talentmatch.domain.models import CandidateProfile, JobPosting

from .models import ScoreAdjustment
from .text import canonical_skill

MIN_SIMILARITY = 0.2
NEUTRAL_SIGNAL = 0.5


class ScoreAdjustmentProvider(ABC):
    """Source of per-factor multipliers and a success probability."""

    @abstractmethod
    def adjust(self, candidate: CandidateProfile, job: JobPosting) -> ScoreAdjustment:
        """Return adjustments for one candidate/job pair.

        Implementations may raise; the engine then falls back to the
        comprehensive score and flags the result as degraded.
        """


class StaticAdjustmentProvider(ScoreAdjustmentProvider):
    """Returns the same adjustment for every pair.

    The defaults slightly favour skills and experience and predict a 0.75
    success probability. Used until a trained model is plugged in.
    """

    def __init__(self, adjustment: ScoreAdjustment = None):
        self.adjustment = adjustment or ScoreAdjustment(
            skills_multiplier=1.1,
            experience_multiplier=1.05,
            location_multiplier=1.0,
            education_multiplier=1.02,
            success_probability=0.75,
        )

    def adjust(self, candidate: CandidateProfile, job: JobPosting) -> ScoreAdjustment:
        return self.adjustment


class CollaborativeSignalProvider(ABC):
    """Source of a [0, 1] signal derived from how similar candidates fared."""

    @abstractmethod
    def signal(self, candidate: CandidateProfile, job: JobPosting) -> float:
        """Return the collaborative signal for one candidate/job pair."""


def skill_set(candidate: CandidateProfile) -> Set[str]:
    return {canonical_skill(name) for name in candidate.skill_names}


def jaccard(left: Set[str], right: Set[str]) -> float:
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


class InteractionHistory(CollaborativeSignalProvider):
    """In-memory record of candidate/job outcomes used for collaborative scoring.

    The signal for (candidate, job) is the similarity-weighted positive
    outcome rate among other candidates who interacted with the same job and
    whose skill sets overlap the candidate's (Jaccard >= 0.2). With no such
    evidence the signal is a neutral 0.5.

    Safe to record from and query across worker threads.
    """

    def __init__(self, min_similarity: float = MIN_SIMILARITY):
        self.min_similarity = min_similarity
        self._lock = threading.Lock()
        self._skills: Dict[str, Set[str]] = {}
        self._outcomes: Dict[str, List[Tuple[str, bool]]] = defaultdict(list)

    def record(self, candidate: CandidateProfile, job_id: str, positive: bool) -> None:
        """Record that ``candidate`` interacted with ``job_id`` (e.g. applied, was hired)."""
        with self._lock:
            self._skills[candidate.id] = skill_set(candidate)
            self._outcomes[job_id].append((candidate.id, positive))

    def record_many(self, events: Iterable[Tuple[CandidateProfile, str, bool]]) -> None:
        for candidate, job_id, positive in events:
            self.record(candidate, job_id, positive)

    def signal(self, candidate: CandidateProfile, job: JobPosting) -> float:
        target = skill_set(candidate)

        with self._lock:
            outcomes = list(self._outcomes.get(job.id, ()))
            skills = dict(self._skills)

        weighted = 0.0
        total = 0.0
        for other_id, positive in outcomes:
            if other_id == candidate.id:
                continue
            similarity = jaccard(target, skills.get(other_id, set()))
            if similarity < self.min_similarity:
                continue
            total += similarity
            if positive:
                weighted += similarity

        if total == 0:
            return NEUTRAL_SIGNAL
        return weighted / total
