"""Shared pytest fixtures."""

from datetime import datetime, timezone

import pytest

from talentmatch.batch import BatchScheduler, InMemoryJobStore
from talentmatch.config.models import SchedulerConfig
from talentmatch.domain.models import CandidateProfile, JobPosting

AS_OF = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def make_candidate():
    """Factory for CandidateProfile with sensible defaults."""

    def _make(candidate_id="c-1", **overrides):
        data = {
            "id": candidate_id,
            "headline": "Frontend engineer",
            "skills": ["JavaScript", "React"],
            "experience_level": "mid",
            "years_experience": 4,
            "location": "Berlin",
            "remote": True,
            "is_active": True,
            "profile_complete": True,
            "last_login_at": datetime(2025, 5, 30, tzinfo=timezone.utc),
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        data.update(overrides)
        return CandidateProfile.model_validate(data)

    return _make


@pytest.fixture
def make_job():
    """Factory for JobPosting with sensible defaults."""

    def _make(job_id="j-1", **overrides):
        data = {
            "id": job_id,
            "title": "Frontend Developer",
            "company": "Acme",
            "description": "We need 3+ years of experience building web apps.",
            "required_skills": ["JavaScript", "React", "Node"],
            "experience_level": "mid",
            "location": "Berlin",
            "remote": True,
        }
        data.update(overrides)
        return JobPosting.model_validate(data)

    return _make


@pytest.fixture
def fast_config():
    """Scheduler settings that keep threaded tests quick."""
    return SchedulerConfig(
        max_concurrent_jobs=2,
        dispatch_interval="20ms",
        job_timeout="5s",
        progress_update_interval="50ms",
        retry_attempts=3,
        retry_delay="20ms",
        backoff_multiplier=1.0,
        shutdown_timeout="2s",
    )


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def scheduler(fast_config, job_store):
    """A scheduler that is not started; tests dispatch by hand or call start()."""
    instance = BatchScheduler(config=fast_config, job_store=job_store)
    yield instance
    instance.shutdown(wait=False)


@pytest.fixture
def clean_env(monkeypatch):
    """Unset every environment variable the configuration layer reads."""
    for name in ("DATABASE_URL", "LOG_LEVEL", "ENVIRONMENT", "MAX_CONCURRENT_JOBS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
