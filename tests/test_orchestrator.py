"""Unit tests for the batch orchestrator entry points and executors."""

from datetime import timedelta

import pytest

from talentmatch.batch import (
    BatchOrchestrator,
    InMemoryEmbeddingIndex,
    InMemoryMatchStore,
    InMemoryProfileProvider,
    JobPriority,
    JobStatus,
    JobType,
    JobValidationError,
    MatchRecord,
)
from talentmatch.batch.utils import chunked
from talentmatch.config.models import BatchConfig
from talentmatch.scoring import ScoringEngine

WAIT = 5


@pytest.fixture
def profiles(make_candidate, make_job):
    return InMemoryProfileProvider(
        candidates=[
            make_candidate("c-1"),
            make_candidate("c-2", skills=["Python", "SQL"], is_active=False),
            make_candidate("c-3", skills=["JavaScript", "Node", "React"]),
        ],
        jobs=[
            make_job("j-1"),
            make_job("j-2", title="Data Engineer", required_skills=["Python", "SQL", "Spark"]),
        ],
    )


@pytest.fixture
def match_store():
    return InMemoryMatchStore()


@pytest.fixture
def embeddings():
    return InMemoryEmbeddingIndex()


@pytest.fixture
def orchestrator(scheduler, profiles, match_store, embeddings, as_of):
    return BatchOrchestrator(
        scheduler=scheduler,
        engine=ScoringEngine(clock=lambda: as_of),
        profile_provider=profiles,
        match_store=match_store,
        embedding_service=embeddings,
        batch_config=BatchConfig(chunk_size=2, recommendation_limit=1, retention_days=30),
        clock=lambda: as_of,
    )


def run(scheduler, job_id):
    scheduler.dispatch_pending()
    job = scheduler.wait_for_job(job_id, timeout=WAIT)
    assert job.is_terminal
    return job


class TestChunked:
    def test_splits_into_fixed_size_chunks(self):
        assert list(chunked(range(5), 2)) == [[0, 1], [2, 3], [4]]
        assert list(chunked([], 3)) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestEntryPoints:
    """Tests for job creation through the orchestrator."""

    def test_definitions_registered_with_default_priorities(self, orchestrator, scheduler):
        matching = scheduler.get_job(orchestrator.process_large_scale_matching())
        recommendations = scheduler.get_job(orchestrator.process_batch_recommendations(["c-1"]))
        embeddings = scheduler.get_job(orchestrator.process_embedding_updates(["c-1"], "candidate"))
        cleanup = scheduler.get_job(orchestrator.process_data_cleanup("expired"))
        analytics = scheduler.get_job(orchestrator.process_analytics_generation("matching"))

        assert (matching.type, matching.name, matching.priority) == (
            JobType.MATCHING, "Large Scale Matching", JobPriority.HIGH
        )
        assert recommendations.priority == JobPriority.MEDIUM
        assert embeddings.priority == JobPriority.MEDIUM
        assert (cleanup.name, cleanup.priority) == ("Data Cleanup - expired", JobPriority.LOW)
        assert cleanup.description == "Clean up expired data"
        assert (analytics.name, analytics.priority) == ("Analytics - matching", JobPriority.LOW)
        assert analytics.description == "Generate matching analytics"

    def test_priority_and_options_override(self, orchestrator, scheduler):
        job_id = orchestrator.process_data_cleanup(
            "duplicate", priority="critical", max_retries=0, created_by="ops"
        )
        job = scheduler.get_job(job_id)

        assert job.priority == JobPriority.CRITICAL
        assert job.metadata.max_retries == 0
        assert job.metadata.created_by == "ops"

    def test_parameters_stored_as_json(self, orchestrator, scheduler):
        job_id = orchestrator.process_analytics_generation(
            "recommendations",
            date_range={"start": "2025-05-01T00:00:00Z", "end": "2025-06-01T00:00:00Z"},
        )
        params = scheduler.get_job(job_id).parameters

        assert params["analytics_type"] == "recommendations"
        assert params["date_range"]["start"].startswith("2025-05-01T00:00:00")

    @pytest.mark.parametrize(
        "call",
        [
            lambda o: o.process_large_scale_matching(algorithm="magic"),
            lambda o: o.process_large_scale_matching(batch_size=0),
            lambda o: o.process_large_scale_matching(filters={"min_score": 101}),
            lambda o: o.process_large_scale_matching(filters={"country": "DE"}),
            lambda o: o.process_batch_recommendations([]),
            lambda o: o.process_batch_recommendations(["c-1"], ["movies"]),
            lambda o: o.process_embedding_updates(["c-1"], "company"),
            lambda o: o.process_embedding_updates(["c-1"], "job", "rebuild"),
            lambda o: o.process_data_cleanup("everything"),
            lambda o: o.process_data_cleanup("expired", retention_days=0),
            lambda o: o.process_analytics_generation("revenue"),
            lambda o: o.process_analytics_generation(
                "matching", {"start": "2025-06-01", "end": "2025-05-01"}
            ),
            lambda o: o.process_data_cleanup("expired", priority="urgent"),
            lambda o: o.process_data_cleanup("expired", colour="blue"),
        ],
    )
    def test_invalid_arguments_raise_validation_error(self, orchestrator, call):
        with pytest.raises(JobValidationError):
            call(orchestrator)


class TestCollaborators:
    def test_empty_stores_are_kept(self, scheduler, profiles):
        match_store = InMemoryMatchStore()
        embeddings = InMemoryEmbeddingIndex()

        orchestrator = BatchOrchestrator(
            scheduler=scheduler,
            engine=ScoringEngine(),
            profile_provider=profiles,
            match_store=match_store,
            embedding_service=embeddings,
        )

        assert orchestrator.match_store is match_store
        assert orchestrator.embeddings is embeddings

    def test_defaults_when_omitted(self, scheduler, profiles):
        orchestrator = BatchOrchestrator(
            scheduler=scheduler, engine=ScoringEngine(), profile_provider=profiles
        )

        assert isinstance(orchestrator.match_store, InMemoryMatchStore)
        assert isinstance(orchestrator.embeddings, InMemoryEmbeddingIndex)


class TestMatching:
    """Tests for the large-scale matching executor."""

    def test_scores_every_pair_and_stores_matches(self, orchestrator, scheduler, match_store):
        job = run(scheduler, orchestrator.process_large_scale_matching())

        assert job.status == JobStatus.COMPLETED
        assert job.results.processed == 6
        assert job.results.successful == 6
        assert job.progress.total == 6
        assert job.progress.current == 6
        assert job.results.data["pairs"] == 6
        assert job.results.data["stored_matches"] == 6

        records = match_store.list_records("match")
        assert {(r.candidate_id, r.job_id) for r in records} == {
            (c, j) for c in ("c-1", "c-2", "c-3") for j in ("j-1", "j-2")
        }
        assert all(r.batch_job_id == job.id for r in records)
        assert all(0 <= r.score <= 100 for r in records)

    def test_filters_and_subsets(self, orchestrator, scheduler, match_store):
        job_id = orchestrator.process_large_scale_matching(
            candidate_ids=["c-1", "c-2", "c-404"],
            job_ids=["j-1"],
            algorithm="weighted",
            filters={"active_only": True, "min_score": 0},
        )
        job = run(scheduler, job_id)

        assert job.results.processed == 1
        assert job.results.data["algorithm"] == "weighted"
        assert any("c-404" in warning for warning in job.results.warnings)
        assert any("inactive" in warning for warning in job.results.warnings)
        assert [r.algorithm for r in match_store.list_records()] == ["weighted"]

    def test_min_score_limits_stored_matches(self, orchestrator, scheduler, match_store):
        job = run(scheduler, orchestrator.process_large_scale_matching(filters={"min_score": 100}))

        assert job.results.successful == 6
        assert job.results.data["stored_matches"] == 0
        assert len(match_store) == 0

    def test_item_failures_are_recorded_and_job_completes(
        self, orchestrator, scheduler, monkeypatch
    ):
        real_score = orchestrator.engine.score

        def flaky_score(candidate, job, context=None):
            if candidate.id == "c-2" and job.id == "j-1":
                raise RuntimeError("feature store timeout")
            return real_score(candidate, job, context)

        monkeypatch.setattr(orchestrator.engine, "score", flaky_score)
        job = run(scheduler, orchestrator.process_large_scale_matching())

        assert job.status == JobStatus.COMPLETED
        assert job.results.failed == 1
        assert job.results.successful == 5
        assert [(e.item, e.error) for e in job.results.errors] == [
            ("c-2:j-1", "feature store timeout")
        ]

    def test_empty_inputs_complete_with_no_work(self, scheduler, as_of):
        orchestrator = BatchOrchestrator(
            scheduler=scheduler,
            engine=ScoringEngine(),
            profile_provider=InMemoryProfileProvider(),
        )
        job = run(scheduler, orchestrator.process_large_scale_matching())

        assert job.status == JobStatus.COMPLETED
        assert job.results.processed == 0
        assert job.results.data["average_score"] == 0.0


class TestRecommendations:
    """Tests for the batch recommendations executor."""

    def test_jobs_and_skill_gaps(self, orchestrator, scheduler, match_store):
        job_id = orchestrator.process_batch_recommendations(
            ["c-1", "c-404"], recommendation_types=["jobs", "skills"]
        )
        job = run(scheduler, job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.progress.total == 4
        assert job.results.successful == 2
        assert job.results.failed == 2
        assert {e.item for e in job.results.errors} == {"c-404:jobs", "c-404:skills"}

        top = job.results.data["recommendations"]["c-1"]
        assert [entry["job_id"] for entry in top] == ["j-1"]
        assert [r.job_id for r in match_store.list_records("recommendation")] == ["j-1"]

        gaps = job.results.data["skill_gaps"]["c-1"]
        assert gaps == [{"skill": "node", "jobs": 1}]

    def test_limit_argument_overrides_config(self, orchestrator, scheduler):
        job = run(scheduler, orchestrator.process_batch_recommendations(["c-2"], limit=2))

        assert job.results.data["limit"] == 2
        top = job.results.data["recommendations"]["c-2"]
        assert [entry["job_id"] for entry in top] == ["j-2", "j-1"]
        assert "skill_gaps" not in job.results.data


class TestEmbeddingUpdates:
    """Tests for the embedding updates executor."""

    def test_create_and_delete_embeddings(self, orchestrator, scheduler, embeddings):
        job = run(
            scheduler, orchestrator.process_embedding_updates(["j-1", "j-2", "j-404"], "job", "create")
        )

        assert job.results.successful == 2
        assert [e.item for e in job.results.errors] == ["j-404"]
        assert len(embeddings) == 2
        assert embeddings.get("job", "j-1")["react"] > 0
        assert embeddings.similarity(("job", "j-1"), ("job", "j-1")) == pytest.approx(1.0)

        job = run(scheduler, orchestrator.process_embedding_updates(["j-1", "j-9"], "job", "delete"))
        assert job.results.successful == 2
        assert job.results.warnings == ["No embedding stored for j-9"]
        assert embeddings.get("job", "j-1") is None


class TestCleanup:
    """Tests for the data cleanup executors."""

    def _record(self, candidate_id, job_id, created_at, kind="match"):
        return MatchRecord(
            candidate_id=candidate_id, job_id=job_id, score=50.0, kind=kind, created_at=created_at
        )

    def test_expired_cleanup_respects_retention(self, orchestrator, scheduler, match_store, as_of):
        old = self._record("c-1", "j-1", as_of - timedelta(days=45))
        recent = self._record("c-1", "j-2", as_of - timedelta(days=5))
        match_store.save_records([old, recent])

        job = run(scheduler, orchestrator.process_data_cleanup("expired"))

        assert job.results.data["deleted"] == 1
        assert [r.id for r in match_store.list_records()] == [recent.id]

        job = run(scheduler, orchestrator.process_data_cleanup("expired", retention_days=1))
        assert job.results.data["deleted"] == 1
        assert len(match_store) == 0

    def test_dry_run_deletes_nothing(self, orchestrator, scheduler, match_store, as_of):
        match_store.save_records([self._record("c-1", "j-1", as_of - timedelta(days=400))])

        job = run(scheduler, orchestrator.process_data_cleanup("expired", dry_run=True))

        assert job.results.data["matched"] == 1
        assert job.results.data["deleted"] == 0
        assert job.results.warnings == ["Dry run: 1 records would be deleted"]
        assert len(match_store) == 1

    def test_orphaned_cleanup(self, orchestrator, scheduler, match_store, as_of):
        kept = self._record("c-1", "j-1", as_of)
        match_store.save_records(
            [kept, self._record("c-gone", "j-1", as_of), self._record("c-1", "j-gone", as_of)]
        )

        job = run(scheduler, orchestrator.process_data_cleanup("orphaned"))

        assert job.results.data["deleted"] == 2
        assert [r.id for r in match_store.list_records()] == [kept.id]

    def test_duplicate_cleanup_keeps_newest(self, orchestrator, scheduler, match_store, as_of):
        newest = self._record("c-1", "j-1", as_of)
        match_store.save_records(
            [
                self._record("c-1", "j-1", as_of - timedelta(days=2)),
                newest,
                self._record("c-1", "j-1", as_of - timedelta(days=1)),
                self._record("c-1", "j-1", as_of, kind="recommendation"),
            ]
        )

        job = run(scheduler, orchestrator.process_data_cleanup("duplicate"))

        assert job.results.data["deleted"] == 2
        remaining = match_store.list_records("match")
        assert [r.id for r in remaining] == [newest.id]
        assert len(match_store.list_records("recommendation")) == 1


class TestAnalytics:
    """Tests for the analytics generation executors."""

    def test_matching_analytics(self, orchestrator, scheduler):
        run(scheduler, orchestrator.process_large_scale_matching())
        job = run(scheduler, orchestrator.process_analytics_generation("matching"))

        metrics = job.results.data["metrics"]
        assert job.results.data["analytics_type"] == "matching"
        assert metrics["total_records"] == 6
        assert metrics["unique_candidates"] == 3
        assert metrics["unique_jobs"] == 2
        assert sum(metrics["score_distribution"].values()) == 6
        assert metrics["by_algorithm"] == {"comprehensive": 6}

    def test_date_range_filters_records(self, orchestrator, scheduler, match_store, as_of):
        match_store.save_records(
            [
                MatchRecord(candidate_id="c-1", job_id="j-1", score=80, created_at=as_of),
                MatchRecord(
                    candidate_id="c-1", job_id="j-2", score=20,
                    created_at=as_of - timedelta(days=60),
                ),
            ]
        )
        job_id = orchestrator.process_analytics_generation(
            "matching",
            date_range={"start": as_of - timedelta(days=1), "end": as_of + timedelta(days=1)},
        )
        metrics = run(scheduler, job_id).results.data["metrics"]

        assert metrics["total_records"] == 1
        assert metrics["average_score"] == 80
        assert metrics["score_distribution"]["80-100"] == 1

    def test_user_behavior_analytics(self, orchestrator, scheduler):
        job = run(scheduler, orchestrator.process_analytics_generation("user_behavior"))
        metrics = job.results.data["metrics"]

        assert metrics["total_candidates"] == 3
        assert metrics["looking"] == 2
        assert metrics["seen_in_range"] == 3
        assert metrics["experience_levels"] == {"mid": 3}

    def test_system_performance_reads_scheduler_stats(self, orchestrator, scheduler):
        run(scheduler, orchestrator.process_data_cleanup("duplicate"))
        job = run(scheduler, orchestrator.process_analytics_generation("system_performance"))
        metrics = job.results.data["metrics"]

        assert metrics["completed_jobs"] >= 1
        assert metrics["jobs_by_type"]["cleanup"] == 1
        assert metrics["jobs_by_type"]["analytics"] == 1
