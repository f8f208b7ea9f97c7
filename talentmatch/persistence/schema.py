"""Database schema definition and ORM models.

Timestamps are stored as ISO 8601 UTC strings with microseconds, so string
comparison orders them correctly. Nested job state (parameters, results,
tags) and score breakdowns are stored as JSON text.
"""

import json
import logging

from sqlalchemy import Column, Float, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from talentmatch.batch.collaborators import MatchRecord
from talentmatch.batch.models import BatchJob
from talentmatch.utils.timestamps import format_timestamp, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

Base = declarative_base()


class BatchJobModel(Base):
    """ORM model for the batch_jobs table."""

    __tablename__ = "batch_jobs"

    id = Column(String(36), primary_key=True, nullable=False)
    job_type = Column(String(32), nullable=False)
    name = Column(String(255), nullable=False)
    priority = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    description = Column(Text, nullable=True)
    parameters = Column(Text, nullable=False, default="{}")

    progress_current = Column(Integer, nullable=False, default=0)
    progress_total = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    results = Column(Text, nullable=False, default="{}")

    created_at = Column(String(50), nullable=False)
    started_at = Column(String(50), nullable=True)
    completed_at = Column(String(50), nullable=True)
    estimated_duration = Column(Float, nullable=True)
    actual_duration = Column(Float, nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    tags = Column(Text, nullable=False, default="[]")
    created_by = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_batch_jobs_status", "status"),
        Index("idx_batch_jobs_type_created", "job_type", "created_at"),
    )

    def to_domain(self) -> BatchJob:
        return BatchJob.from_dict(
            {
                "id": self.id,
                "type": self.job_type,
                "name": self.name,
                "priority": self.priority,
                "status": self.status,
                "parameters": json.loads(self.parameters or "{}"),
                "description": self.description,
                "progress": {
                    "current": self.progress_current,
                    "total": self.progress_total,
                    "percentage": self.progress_percentage,
                },
                "results": json.loads(self.results or "{}"),
                "timing": {
                    "created_at": self.created_at,
                    "started_at": self.started_at,
                    "completed_at": self.completed_at,
                    "estimated_duration": self.estimated_duration,
                    "actual_duration": self.actual_duration,
                },
                "metadata": {
                    "retry_count": self.retry_count,
                    "max_retries": self.max_retries,
                    "tags": json.loads(self.tags or "[]"),
                    "created_by": self.created_by,
                },
            }
        )

    @classmethod
    def from_domain(cls, job: BatchJob) -> "BatchJobModel":
        model = cls(id=job.id)
        model.apply(job)
        return model

    def apply(self, job: BatchJob) -> None:
        """Copy every mutable field of ``job`` onto this row."""
        data = job.to_dict()
        self.job_type = data["type"]
        self.name = data["name"]
        self.priority = data["priority"]
        self.status = data["status"]
        self.description = data["description"]
        self.parameters = json.dumps(data["parameters"], default=str)
        self.progress_current = data["progress"]["current"]
        self.progress_total = data["progress"]["total"]
        self.progress_percentage = data["progress"]["percentage"]
        self.results = json.dumps(data["results"], default=str)
        self.created_at = data["timing"]["created_at"]
        self.started_at = data["timing"]["started_at"]
        self.completed_at = data["timing"]["completed_at"]
        self.estimated_duration = data["timing"]["estimated_duration"]
        self.actual_duration = data["timing"]["actual_duration"]
        self.retry_count = data["metadata"]["retry_count"]
        self.max_retries = data["metadata"]["max_retries"]
        self.tags = json.dumps(data["metadata"]["tags"])
        self.created_by = data["metadata"]["created_by"]


class MatchRecordModel(Base):
    """ORM model for the match_records table (matches and recommendations)."""

    __tablename__ = "match_records"

    id = Column(String(64), primary_key=True, nullable=False)
    kind = Column(String(32), nullable=False)
    candidate_id = Column(String(255), nullable=False)
    job_id = Column(String(255), nullable=False)
    score = Column(Float, nullable=False)
    algorithm = Column(String(32), nullable=False)
    breakdown = Column(Text, nullable=False, default="{}")
    batch_job_id = Column(String(36), nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_match_records_kind_created", "kind", "created_at"),
        Index("idx_match_records_pair", "candidate_id", "job_id"),
    )

    def to_domain(self) -> MatchRecord:
        return MatchRecord(
            id=self.id,
            kind=self.kind,
            candidate_id=self.candidate_id,
            job_id=self.job_id,
            score=self.score,
            algorithm=self.algorithm,
            breakdown=json.loads(self.breakdown or "{}"),
            batch_job_id=self.batch_job_id,
            created_at=parse_iso_datetime(self.created_at) or utc_now(),
        )

    @classmethod
    def from_domain(cls, record: MatchRecord) -> "MatchRecordModel":
        return cls(
            id=record.id,
            kind=record.kind,
            candidate_id=record.candidate_id,
            job_id=record.job_id,
            score=record.score,
            algorithm=record.algorithm,
            breakdown=json.dumps(record.breakdown, default=str),
            batch_job_id=record.batch_job_id,
            created_at=format_timestamp(record.created_at),
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
