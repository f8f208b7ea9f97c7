"""Domain entry points for batch work and the executors behind them.

The orchestrator registers one job definition per kind of work on the
scheduler it is given, then exposes a ``process_*`` method per kind. Each
method validates its parameters, picks the definition name and default
priority, and queues a job. The executors run later on scheduler worker
threads and report progress in units of work (candidate/job pairs, users,
items or records).
"""

from collections import Counter
from dataclasses import asdict
from datetime import datetime, timedelta
from itertools import product
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from talentmatch.config.models import BatchConfig
from talentmatch.domain.models import CandidateProfile, JobPosting
from talentmatch.logging import get_logger
from talentmatch.scoring.engine import ScoringEngine
from talentmatch.scoring.models import MatchContext, MatchingAlgorithm
from talentmatch.scoring.text import is_semantic_match
from talentmatch.utils.timestamps import ensure_utc, format_timestamp, utc_now

from .collaborators import (
    MATCH,
    RECOMMENDATION,
    EmbeddingService,
    InMemoryEmbeddingIndex,
    InMemoryMatchStore,
    MatchRecord,
    MatchStore,
    ProfileProvider,
    candidate_text,
    job_text,
)
from .exceptions import JobValidationError
from .executors import JobDefinition, ProgressReporter
from .models import BatchJob, JobOptions, JobPriority, JobResults, JobType
from .scheduler import BatchScheduler
from .utils import chunked

logger = get_logger(__name__, component="orchestrator")

MATCHING_JOB = "Large Scale Matching"
RECOMMENDATIONS_JOB = "Batch Recommendations"
EMBEDDINGS_JOB = "Embedding Updates"

CLEANUP_TYPES = ("expired", "orphaned", "duplicate")
ANALYTICS_TYPES = ("matching", "recommendations", "user_behavior", "system_performance")
RECOMMENDATION_TYPES = ("jobs", "skills")

ACTIVE_WINDOW_DAYS = 30
SCORE_BUCKETS = ((0, 20), (20, 40), (40, 60), (60, 80), (80, 100))

PriorityInput = Union[JobPriority, str]


def cleanup_job_name(cleanup_type: str) -> str:
    return f"Data Cleanup - {cleanup_type}"


def analytics_job_name(analytics_type: str) -> str:
    return f"Analytics - {analytics_type}"


# Parameter models


class MatchFilters(BaseModel):
    """Optional narrowing of a matching run."""

    active_only: bool = Field(False, description="Skip candidates that are not looking")
    min_score: float = Field(0.0, ge=0, le=100, description="Only store matches at or above")

    model_config = {"extra": "forbid"}


class MatchingParameters(BaseModel):
    candidate_ids: Optional[List[str]] = Field(None, description="None means all candidates")
    job_ids: Optional[List[str]] = Field(None, description="None means all jobs")
    algorithm: Optional[MatchingAlgorithm] = Field(None)
    batch_size: Optional[int] = Field(None, ge=1, le=10000)
    filters: MatchFilters = Field(default_factory=MatchFilters)

    model_config = {"use_enum_values": True}


class RecommendationParameters(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    recommendation_types: List[Literal["jobs", "skills"]] = Field(
        default_factory=lambda: ["jobs"], min_length=1
    )
    limit: Optional[int] = Field(None, ge=1, le=500)

    @field_validator("recommendation_types")
    @classmethod
    def dedupe_types(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


class EmbeddingParameters(BaseModel):
    item_ids: List[str] = Field(..., min_length=1)
    item_type: Literal["candidate", "job"]
    update_type: Literal["create", "update", "delete"] = "update"


class CleanupParameters(BaseModel):
    cleanup_type: Literal["expired", "orphaned", "duplicate"]
    dry_run: bool = False
    retention_days: Optional[int] = Field(None, ge=1)


class DateRange(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_order(self):
        if self.start > self.end:
            raise ValueError("date_range start must not be after end")
        return self


class AnalyticsParameters(BaseModel):
    analytics_type: Literal["matching", "recommendations", "user_behavior", "system_performance"]
    date_range: Optional[DateRange] = None


def _validate(model, values: Dict[str, Any]):
    try:
        return model.model_validate(values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'parameters'}: {error['msg']}"
            for error in e.errors()
        )
        raise JobValidationError(f"Invalid job parameters: {problems}") from None


class BatchOrchestrator:
    """
    Queues domain batch work on a BatchScheduler.

    Construction registers the default executors; the scheduler itself is
    owned (started and shut down) by the caller.
    """

    def __init__(
        self,
        scheduler: BatchScheduler,
        engine: ScoringEngine,
        profile_provider: ProfileProvider,
        match_store: Optional[MatchStore] = None,
        embedding_service: Optional[EmbeddingService] = None,
        batch_config: Optional[BatchConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the orchestrator and register its job definitions.

        Args:
            scheduler: Scheduler the jobs are queued on
            engine: Scoring engine used by matching and recommendations
            profile_provider: Source of candidates and jobs
            match_store: Destination of match/recommendation records
            embedding_service: Index kept in sync by embedding updates
            batch_config: Chunk size, recommendation limit, retention
            clock: Reference time for scoring, retention and analytics
        """
        self.scheduler = scheduler
        self.engine = engine
        self.profiles = profile_provider
        self.match_store = match_store if match_store is not None else InMemoryMatchStore()
        self.embeddings = (
            embedding_service if embedding_service is not None else InMemoryEmbeddingIndex()
        )
        self.config = batch_config or BatchConfig()
        self._clock = clock
        self._register_definitions()

    def _register_definitions(self) -> None:
        definitions = [
            JobDefinition(
                type=JobType.MATCHING,
                name=MATCHING_JOB,
                executor=self._run_matching,
                description="Process matches for large volume of candidates and jobs",
                default_priority=JobPriority.HIGH,
            ),
            JobDefinition(
                type=JobType.RECOMMENDATIONS,
                name=RECOMMENDATIONS_JOB,
                executor=self._run_recommendations,
                description="Generate recommendations for multiple users",
                default_priority=JobPriority.MEDIUM,
            ),
            JobDefinition(
                type=JobType.EMBEDDINGS,
                name=EMBEDDINGS_JOB,
                executor=self._run_embedding_updates,
                description="Update embeddings for candidates or jobs",
                default_priority=JobPriority.MEDIUM,
            ),
        ]
        definitions.extend(
            JobDefinition(
                type=JobType.CLEANUP,
                name=cleanup_job_name(cleanup_type),
                executor=self._run_cleanup,
                description=f"Clean up {cleanup_type} data",
                default_priority=JobPriority.LOW,
            )
            for cleanup_type in CLEANUP_TYPES
        )
        definitions.extend(
            JobDefinition(
                type=JobType.ANALYTICS,
                name=analytics_job_name(analytics_type),
                executor=self._run_analytics,
                description=f"Generate {analytics_type} analytics",
                default_priority=JobPriority.LOW,
            )
            for analytics_type in ANALYTICS_TYPES
        )

        for definition in definitions:
            self.scheduler.register_job_definition(definition)

    # Entry points

    def process_large_scale_matching(
        self,
        candidate_ids: Optional[Iterable[str]] = None,
        job_ids: Optional[Iterable[str]] = None,
        algorithm: Union[MatchingAlgorithm, str, None] = None,
        batch_size: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
        priority: PriorityInput = JobPriority.HIGH,
        **options: Any,
    ) -> str:
        """
        Queue scoring of every candidate against every job.

        Args:
            candidate_ids: Candidates to score (None means all)
            job_ids: Jobs to score against (None means all)
            algorithm: Scoring algorithm (engine default when None)
            batch_size: Pairs per chunk (config chunk_size when None)
            filters: ``active_only`` and ``min_score`` narrowing
            priority: Dispatch priority
            **options: Extra JobOptions fields (max_retries, tags, created_by)

        Returns:
            Job id

        Raises:
            JobValidationError: If any argument is invalid
        """
        params = _validate(
            MatchingParameters,
            {
                "candidate_ids": list(candidate_ids) if candidate_ids is not None else None,
                "job_ids": list(job_ids) if job_ids is not None else None,
                "algorithm": algorithm,
                "batch_size": batch_size,
                "filters": filters or {},
            },
        )
        return self._submit(JobType.MATCHING, MATCHING_JOB, params, priority, options)

    def process_batch_recommendations(
        self,
        user_ids: Iterable[str],
        recommendation_types: Iterable[str] = ("jobs",),
        limit: Optional[int] = None,
        priority: PriorityInput = JobPriority.MEDIUM,
        **options: Any,
    ) -> str:
        """Queue job and skill-gap recommendations for a set of candidates."""
        params = _validate(
            RecommendationParameters,
            {
                "user_ids": list(user_ids),
                "recommendation_types": list(recommendation_types),
                "limit": limit,
            },
        )
        return self._submit(JobType.RECOMMENDATIONS, RECOMMENDATIONS_JOB, params, priority, options)

    def process_embedding_updates(
        self,
        item_ids: Iterable[str],
        item_type: str,
        update_type: str = "update",
        priority: PriorityInput = JobPriority.MEDIUM,
        **options: Any,
    ) -> str:
        """Queue an embedding refresh (create/update) or removal (delete)."""
        params = _validate(
            EmbeddingParameters,
            {"item_ids": list(item_ids), "item_type": item_type, "update_type": update_type},
        )
        return self._submit(JobType.EMBEDDINGS, EMBEDDINGS_JOB, params, priority, options)

    def process_data_cleanup(
        self,
        cleanup_type: str,
        dry_run: bool = False,
        retention_days: Optional[int] = None,
        priority: PriorityInput = JobPriority.LOW,
        **options: Any,
    ) -> str:
        """
        Queue removal of stale match records.

        - expired: records older than the retention window
        - orphaned: records whose candidate or job no longer exists
        - duplicate: repeated candidate/job pairs (newest record kept)

        With ``dry_run`` the job only counts what it would delete.
        """
        params = _validate(
            CleanupParameters,
            {"cleanup_type": cleanup_type, "dry_run": dry_run, "retention_days": retention_days},
        )
        return self._submit(
            JobType.CLEANUP, cleanup_job_name(params.cleanup_type), params, priority, options
        )

    def process_analytics_generation(
        self,
        analytics_type: str,
        date_range: Optional[Dict[str, Any]] = None,
        priority: PriorityInput = JobPriority.LOW,
        **options: Any,
    ) -> str:
        """Queue an analytics report; the report lands in ``results.data``."""
        params = _validate(
            AnalyticsParameters, {"analytics_type": analytics_type, "date_range": date_range}
        )
        return self._submit(
            JobType.ANALYTICS, analytics_job_name(params.analytics_type), params, priority, options
        )

    def _submit(
        self,
        job_type: JobType,
        name: str,
        params: BaseModel,
        priority: PriorityInput,
        options: Dict[str, Any],
    ) -> str:
        try:
            job_options = JobOptions(priority=priority, **options)
        except TypeError as e:
            raise JobValidationError(f"Invalid job options: {e}") from None

        return self.scheduler.create_job(
            job_type,
            name,
            parameters=params.model_dump(mode="json"),
            options=job_options,
        )

    # Executors

    def _run_matching(self, job: BatchJob, progress: ProgressReporter) -> JobResults:
        params = MatchingParameters.model_validate(job.parameters)
        results = JobResults()

        candidates = self.profiles.get_candidates(params.candidate_ids)
        postings = self.profiles.get_jobs(params.job_ids)
        _warn_unknown(results, "candidate", params.candidate_ids, candidates)
        _warn_unknown(results, "job", params.job_ids, postings)

        if params.filters.active_only:
            inactive = [c.id for c in candidates if not c.is_active]
            if inactive:
                results.warnings.append(f"Skipped {len(inactive)} inactive candidates")
            candidates = [c for c in candidates if c.is_active]

        total = len(candidates) * len(postings)
        progress.set_total(total)
        batch_size = params.batch_size or self.config.chunk_size
        algorithm = MatchingAlgorithm(params.algorithm or self.engine.default_algorithm)
        context = MatchContext(algorithm=algorithm, as_of=self._clock())

        logger.info(
            f"Matching {len(candidates)} candidates against {len(postings)} jobs",
            extra={
                "event": "orchestrator.matching.started",
                "candidates": len(candidates),
                "jobs": len(postings),
                "pairs": total,
                "batch_size": batch_size,
                "algorithm": algorithm.value,
            },
        )

        stored = 0
        score_sum = 0.0
        for chunk in chunked(product(candidates, postings), batch_size):
            if progress.cancelled:
                results.warnings.append(f"Cancelled after {results.processed} of {total} pairs")
                break

            records = []
            for candidate, posting in chunk:
                try:
                    breakdown = self.engine.score(candidate, posting, context)
                except Exception as e:
                    results.record_failure(f"{candidate.id}:{posting.id}", str(e))
                    continue

                results.record_success()
                score_sum += breakdown.overall_score
                if breakdown.overall_score >= params.filters.min_score:
                    records.append(
                        MatchRecord(
                            candidate_id=candidate.id,
                            job_id=posting.id,
                            score=breakdown.overall_score,
                            kind=MATCH,
                            algorithm=breakdown.algorithm,
                            breakdown=breakdown.to_dict(),
                            batch_job_id=job.id,
                        )
                    )

            if records:
                self.match_store.save_records(records)
                stored += len(records)
            progress.advance(len(chunk))

        results.data = {
            "candidates": len(candidates),
            "jobs": len(postings),
            "pairs": total,
            "stored_matches": stored,
            "algorithm": algorithm.value,
            "average_score": round(score_sum / results.successful, 2) if results.successful else 0.0,
        }
        return results

    def _run_recommendations(self, job: BatchJob, progress: ProgressReporter) -> JobResults:
        params = RecommendationParameters.model_validate(job.parameters)
        limit = params.limit or self.config.recommendation_limit
        results = JobResults()
        progress.set_total(len(params.user_ids) * len(params.recommendation_types))

        postings = self.profiles.get_jobs()
        context = MatchContext(algorithm=self.engine.default_algorithm, as_of=self._clock())
        recommendations: Dict[str, List[Dict[str, Any]]] = {}
        skill_gaps: Dict[str, List[Dict[str, Any]]] = {}

        for user_id in params.user_ids:
            if progress.cancelled:
                results.warnings.append(
                    f"Cancelled after {results.processed} recommendation units"
                )
                break

            candidate = self.profiles.get_candidate(user_id)
            ranked = None
            for rec_type in params.recommendation_types:
                item = f"{user_id}:{rec_type}"
                if candidate is None:
                    results.record_failure(item, f"Unknown candidate: {user_id}")
                    progress.advance()
                    continue

                try:
                    if ranked is None:
                        ranked = self._rank_jobs(candidate, postings, context)
                    top = ranked[:limit]
                    if rec_type == "jobs":
                        recommendations[user_id] = self._store_recommendations(
                            job.id, candidate, top
                        )
                    else:
                        skill_gaps[user_id] = _skill_gaps(candidate, [posting for posting, _ in top])
                except Exception as e:
                    results.record_failure(item, str(e))
                else:
                    results.record_success()
                progress.advance()

        results.data = {"limit": limit}
        if "jobs" in params.recommendation_types:
            results.data["recommendations"] = recommendations
        if "skills" in params.recommendation_types:
            results.data["skill_gaps"] = skill_gaps
        return results

    def _rank_jobs(self, candidate: CandidateProfile, postings: List[JobPosting], context):
        scored = [
            (posting, self.engine.score_job(posting, candidate, context)) for posting in postings
        ]
        scored.sort(key=lambda pair: (-pair[1].overall_score, pair[0].id))
        return scored

    def _store_recommendations(self, batch_job_id: str, candidate: CandidateProfile, top) -> list:
        records = [
            MatchRecord(
                candidate_id=candidate.id,
                job_id=posting.id,
                score=breakdown.overall_score,
                kind=RECOMMENDATION,
                algorithm=breakdown.algorithm,
                breakdown=breakdown.to_dict(),
                batch_job_id=batch_job_id,
            )
            for posting, breakdown in top
        ]
        if records:
            self.match_store.save_records(records)
        return [{"job_id": r.job_id, "score": r.score} for r in records]

    def _run_embedding_updates(self, job: BatchJob, progress: ProgressReporter) -> JobResults:
        params = EmbeddingParameters.model_validate(job.parameters)
        results = JobResults()
        progress.set_total(len(params.item_ids))

        for chunk in chunked(params.item_ids, self.config.chunk_size):
            if progress.cancelled:
                results.warnings.append(f"Cancelled after {results.processed} items")
                break

            if params.update_type == "delete":
                for item_id in chunk:
                    if not self.embeddings.delete(params.item_type, item_id):
                        results.warnings.append(f"No embedding stored for {item_id}")
                    results.record_success()
            else:
                profiles = self._load_items(params.item_type, chunk)
                for item_id in chunk:
                    profile = profiles.get(item_id)
                    if profile is None:
                        results.record_failure(item_id, f"Unknown {params.item_type}: {item_id}")
                        continue
                    try:
                        text = (
                            candidate_text(profile)
                            if params.item_type == "candidate"
                            else job_text(profile)
                        )
                        self.embeddings.upsert(params.item_type, item_id, text)
                    except Exception as e:
                        results.record_failure(item_id, str(e))
                    else:
                        results.record_success()
            progress.advance(len(chunk))

        results.data = {"item_type": params.item_type, "update_type": params.update_type}
        return results

    def _load_items(self, item_type: str, ids: List[str]) -> Dict[str, Any]:
        if item_type == "candidate":
            return {c.id: c for c in self.profiles.get_candidates(ids)}
        return {j.id: j for j in self.profiles.get_jobs(ids)}

    def _run_cleanup(self, job: BatchJob, progress: ProgressReporter) -> JobResults:
        params = CleanupParameters.model_validate(job.parameters)
        results = JobResults()
        records = self.match_store.list_records()

        if params.cleanup_type == "expired":
            retention_days = params.retention_days or self.config.retention_days
            cutoff = self._clock() - timedelta(days=retention_days)
            doomed = [r.id for r in records if r.created_at < cutoff]
            results.data["cutoff"] = format_timestamp(cutoff)
        elif params.cleanup_type == "orphaned":
            candidate_ids = {c.id for c in self.profiles.get_candidates()}
            job_ids = {j.id for j in self.profiles.get_jobs()}
            doomed = [
                r.id
                for r in records
                if r.candidate_id not in candidate_ids or r.job_id not in job_ids
            ]
        else:
            doomed = _duplicate_record_ids(records)

        results.data.update(
            {
                "cleanup_type": params.cleanup_type,
                "dry_run": params.dry_run,
                "examined": len(records),
                "matched": len(doomed),
                "deleted": 0,
            }
        )

        if params.dry_run:
            progress.update(len(doomed), len(doomed))
            results.warnings.append(f"Dry run: {len(doomed)} records would be deleted")
            return results

        progress.set_total(len(doomed))
        for chunk in chunked(doomed, self.config.chunk_size):
            if progress.cancelled:
                results.warnings.append(
                    f"Cancelled after deleting {results.data['deleted']} of {len(doomed)} records"
                )
                break
            deleted = self.match_store.delete_records(chunk)
            results.record_success(deleted)
            results.data["deleted"] += deleted
            progress.advance(len(chunk))

        logger.info(
            f"Cleanup removed {results.data['deleted']} {params.cleanup_type} records",
            extra={
                "event": "orchestrator.cleanup.completed",
                "cleanup_type": params.cleanup_type,
                "deleted": results.data["deleted"],
            },
        )
        return results

    def _run_analytics(self, job: BatchJob, progress: ProgressReporter) -> JobResults:
        params = AnalyticsParameters.model_validate(job.parameters)
        since = params.date_range.start if params.date_range else None
        until = params.date_range.end if params.date_range else None
        progress.set_total(1)

        if params.analytics_type == "matching":
            metrics = _record_metrics(self.match_store.list_records(MATCH, since, until))
        elif params.analytics_type == "recommendations":
            metrics = _record_metrics(self.match_store.list_records(RECOMMENDATION, since, until))
        elif params.analytics_type == "user_behavior":
            metrics = self._user_behavior(since, until)
        else:
            metrics = asdict(self.scheduler.get_stats())

        progress.advance()
        results = JobResults()
        results.record_success()
        results.data = {
            "analytics_type": params.analytics_type,
            "generated_at": format_timestamp(self._clock()),
            "date_range": (
                {"start": format_timestamp(since), "end": format_timestamp(until)}
                if params.date_range
                else None
            ),
            "metrics": metrics,
        }
        return results

    def _user_behavior(self, since: Optional[datetime], until: Optional[datetime]) -> Dict[str, Any]:
        now = self._clock()
        since = since or now - timedelta(days=ACTIVE_WINDOW_DAYS)
        until = until or now
        candidates = self.profiles.get_candidates()

        levels = Counter(
            (c.experience_level.value if c.experience_level else "unknown") for c in candidates
        )
        return {
            "total_candidates": len(candidates),
            "looking": sum(1 for c in candidates if c.is_active),
            "complete_profiles": sum(1 for c in candidates if c.profile_complete),
            "seen_in_range": sum(1 for c in candidates if since <= c.last_seen_at <= until),
            "experience_levels": dict(sorted(levels.items())),
        }


def _warn_unknown(results: JobResults, kind: str, requested, found) -> None:
    if requested is None:
        return
    known = {item.id for item in found}
    missing = [item_id for item_id in requested if item_id not in known]
    if missing:
        results.warnings.append(f"Unknown {kind} ids skipped: {', '.join(missing)}")


def _skill_gaps(candidate: CandidateProfile, postings: List[JobPosting]) -> List[Dict[str, Any]]:
    """Required skills of the postings the candidate lacks, most frequent first."""
    have = candidate.skill_names
    gaps: Counter = Counter()
    for posting in postings:
        for skill in posting.required_skills:
            if not any(is_semantic_match(own, skill) for own in have):
                gaps[skill.lower()] += 1
    return [
        {"skill": skill, "jobs": count}
        for skill, count in sorted(gaps.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def _duplicate_record_ids(records: List[MatchRecord]) -> List[str]:
    """Ids of every record except the newest per (kind, candidate, job)."""
    newest: Dict[tuple, MatchRecord] = {}
    doomed = []
    for record in sorted(records, key=lambda r: (r.created_at, r.id), reverse=True):
        if record.pair_key in newest:
            doomed.append(record.id)
        else:
            newest[record.pair_key] = record
    return doomed


def _record_metrics(records: List[MatchRecord]) -> Dict[str, Any]:
    scores = [record.score for record in records]
    distribution = {f"{low}-{high}": 0 for low, high in SCORE_BUCKETS}
    for score in scores:
        for low, high in SCORE_BUCKETS:
            if low <= score < high or (high == 100 and score == 100):
                distribution[f"{low}-{high}"] += 1
                break

    return {
        "total_records": len(records),
        "unique_candidates": len({r.candidate_id for r in records}),
        "unique_jobs": len({r.job_id for r in records}),
        "average_score": round(sum(scores) / len(scores), 2) if scores else 0.0,
        "max_score": max(scores) if scores else 0.0,
        "score_distribution": distribution,
        "by_algorithm": dict(Counter(r.algorithm for r in records)),
    }
