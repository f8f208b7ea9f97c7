"""Collaborators used by the batch orchestrator's executors.

- ProfileProvider: read access to candidates and job postings
- MatchStore: where match and recommendation records are written
- EmbeddingService: vector index kept in sync with profiles

Each contract ships with an in-memory implementation; SQL-backed stores live
in talentmatch.persistence.
"""

import math
import threading
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from talentmatch.domain.models import CandidateProfile, JobPosting
from talentmatch.scoring.text import canonical_skill, tokenize
from talentmatch.utils.timestamps import utc_now

MATCH = "match"
RECOMMENDATION = "recommendation"
RECORD_KINDS = (MATCH, RECOMMENDATION)


@dataclass
class MatchRecord:
    """A stored scoring outcome for one candidate/job pair.

    Attributes:
        kind: "match" (candidate scored for a job) or "recommendation"
            (job recommended to a candidate)
        score: Overall score of the breakdown
        breakdown: Full breakdown as a dict
        batch_job_id: Job that produced the record, if any
    """

    candidate_id: str
    job_id: str
    score: float
    kind: str = MATCH
    algorithm: str = "comprehensive"
    breakdown: Dict[str, Any] = field(default_factory=dict)
    batch_job_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def pair_key(self) -> tuple:
        return (self.kind, self.candidate_id, self.job_id)


class ProfileProvider(ABC):
    """Read access to candidates and job postings."""

    @abstractmethod
    def get_candidates(self, ids: Optional[Iterable[str]] = None) -> List[CandidateProfile]:
        """Candidates with the given ids (unknown ids skipped), or all when ids is None."""

    @abstractmethod
    def get_jobs(self, ids: Optional[Iterable[str]] = None) -> List[JobPosting]:
        """Job postings with the given ids (unknown ids skipped), or all when ids is None."""

    def get_candidate(self, candidate_id: str) -> Optional[CandidateProfile]:
        found = self.get_candidates([candidate_id])
        return found[0] if found else None

    def get_job(self, job_id: str) -> Optional[JobPosting]:
        found = self.get_jobs([job_id])
        return found[0] if found else None


class InMemoryProfileProvider(ProfileProvider):
    """Thread-safe ProfileProvider backed by dicts."""

    def __init__(
        self,
        candidates: Iterable[CandidateProfile] = (),
        jobs: Iterable[JobPosting] = (),
    ):
        self._lock = threading.Lock()
        self._candidates: Dict[str, CandidateProfile] = {c.id: c for c in candidates}
        self._jobs: Dict[str, JobPosting] = {j.id: j for j in jobs}

    def add_candidate(self, candidate: CandidateProfile) -> None:
        with self._lock:
            self._candidates[candidate.id] = candidate

    def add_job(self, job: JobPosting) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def remove_candidate(self, candidate_id: str) -> bool:
        with self._lock:
            return self._candidates.pop(candidate_id, None) is not None

    def remove_job(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def get_candidates(self, ids: Optional[Iterable[str]] = None) -> List[CandidateProfile]:
        with self._lock:
            if ids is None:
                return list(self._candidates.values())
            return [self._candidates[i] for i in ids if i in self._candidates]

    def get_jobs(self, ids: Optional[Iterable[str]] = None) -> List[JobPosting]:
        with self._lock:
            if ids is None:
                return list(self._jobs.values())
            return [self._jobs[i] for i in ids if i in self._jobs]


class MatchStore(ABC):
    """Storage for match and recommendation records."""

    @abstractmethod
    def save_records(self, records: List[MatchRecord]) -> None:
        """Insert records."""

    @abstractmethod
    def list_records(
        self,
        kind: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[MatchRecord]:
        """Records filtered by kind and by created_at in [since, until]."""

    @abstractmethod
    def delete_records(self, record_ids: List[str]) -> int:
        """Delete records by id; returns how many existed."""


class InMemoryMatchStore(MatchStore):
    """Thread-safe MatchStore backed by a dict."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, MatchRecord] = {}

    def save_records(self, records: List[MatchRecord]) -> None:
        with self._lock:
            for record in records:
                self._records[record.id] = record

    def list_records(
        self,
        kind: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[MatchRecord]:
        with self._lock:
            records = list(self._records.values())
        return [
            record
            for record in records
            if (kind is None or record.kind == kind)
            and (since is None or record.created_at >= since)
            and (until is None or record.created_at <= until)
        ]

    def delete_records(self, record_ids: List[str]) -> int:
        with self._lock:
            return sum(1 for rid in record_ids if self._records.pop(rid, None) is not None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class EmbeddingService(ABC):
    """Vector index for candidates and jobs."""

    @abstractmethod
    def upsert(self, item_type: str, item_id: str, text: str) -> None:
        """Create or replace the embedding of an item from its text."""

    @abstractmethod
    def delete(self, item_type: str, item_id: str) -> bool:
        """Remove an item's embedding; False if it had none."""


class InMemoryEmbeddingIndex(EmbeddingService):
    """Term-frequency vectors with cosine similarity.

    Stands in for a model-backed embedding service; vectors are sparse dicts
    of normalized term counts.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._vectors: Dict[tuple, Dict[str, float]] = {}

    def upsert(self, item_type: str, item_id: str, text: str) -> None:
        vector = _term_vector(text)
        with self._lock:
            self._vectors[(item_type, item_id)] = vector

    def delete(self, item_type: str, item_id: str) -> bool:
        with self._lock:
            return self._vectors.pop((item_type, item_id), None) is not None

    def get(self, item_type: str, item_id: str) -> Optional[Dict[str, float]]:
        with self._lock:
            vector = self._vectors.get((item_type, item_id))
        return dict(vector) if vector is not None else None

    def similarity(self, left: tuple, right: tuple) -> float:
        """Cosine similarity of two stored items given as (item_type, item_id)."""
        with self._lock:
            a = self._vectors.get(left)
            b = self._vectors.get(right)
        if not a or not b:
            return 0.0
        return sum(weight * b.get(term, 0.0) for term, weight in a.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._vectors)


def _term_vector(text: str) -> Dict[str, float]:
    counts = Counter(canonical_skill(term) for term in tokenize(text))
    norm = math.sqrt(sum(count * count for count in counts.values()))
    if norm == 0:
        return {}
    return {term: count / norm for term, count in counts.items()}


def candidate_text(candidate: CandidateProfile) -> str:
    """Text a candidate's embedding is built from."""
    parts = [candidate.headline or "", candidate.summary or ""]
    parts.extend(candidate.skill_names)
    parts.extend(f"{e.degree} {e.field or ''}" for e in candidate.education)
    return " ".join(part for part in parts if part)


def job_text(job: JobPosting) -> str:
    """Text a job's embedding is built from."""
    parts = [job.title, job.description]
    parts.extend(job.required_skills)
    parts.extend(job.preferred_skills)
    return " ".join(part for part in parts if part)
