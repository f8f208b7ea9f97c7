"""Data access layer (repositories) for batch jobs and match records.

Repositories take an open session, return domain objects rather than ORM rows,
and convert SQLAlchemy errors into PersistenceError subclasses.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from talentmatch.batch.collaborators import MatchRecord
from talentmatch.batch.models import BatchJob
from talentmatch.utils.timestamps import format_timestamp

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import BatchJobModel, MatchRecordModel

logger = logging.getLogger(__name__)

UNFINISHED = ("pending", "running", "failed")


class BatchJobRepository:
    """Repository for batch job state."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, job: BatchJob) -> None:
        """Insert a new job.

        Raises:
            DataIntegrityError: If a job with the same id exists
            PersistenceError: If database error occurs
        """
        try:
            self.session.add(BatchJobModel.from_domain(job))
            self.session.flush()
        except IntegrityError as e:
            logger.error(f"Integrity error inserting batch job {job.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Batch job {job.id} already exists: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting batch job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert batch job: {e}") from e

    def update(self, job: BatchJob) -> None:
        """Overwrite the stored state of a job.

        Raises:
            RecordNotFoundError: If the job was never inserted
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(BatchJobModel, job.id)
            if existing is None:
                raise RecordNotFoundError(f"Batch job {job.id} not found")
            existing.apply(job)
            self.session.flush()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating batch job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update batch job: {e}") from e

    def get(self, job_id: str) -> Optional[BatchJob]:
        try:
            model = self.session.get(BatchJobModel, job_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving batch job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve batch job: {e}") from e

    def list_unfinished(self) -> List[BatchJob]:
        """Pending, running and failed jobs, oldest first."""
        try:
            stmt = (
                select(BatchJobModel)
                .where(BatchJobModel.status.in_(UNFINISHED))
                .order_by(BatchJobModel.created_at)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing unfinished batch jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list unfinished batch jobs: {e}") from e


class MatchRecordRepository:
    """Repository for match and recommendation records."""

    def __init__(self, session: Session):
        self.session = session

    def add_many(self, records: List[MatchRecord]) -> int:
        """Insert records in the current transaction.

        Raises:
            DataIntegrityError: If a record id already exists
            PersistenceError: If database error occurs
        """
        try:
            self.session.add_all([MatchRecordModel.from_domain(r) for r in records])
            self.session.flush()
            return len(records)
        except IntegrityError as e:
            logger.error(f"Integrity error inserting match records: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to insert match records: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting match records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert match records: {e}") from e

    def list(
        self,
        kind: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[MatchRecord]:
        try:
            stmt = select(MatchRecordModel).order_by(MatchRecordModel.created_at)
            if kind is not None:
                stmt = stmt.where(MatchRecordModel.kind == kind)
            if since is not None:
                stmt = stmt.where(MatchRecordModel.created_at >= format_timestamp(since))
            if until is not None:
                stmt = stmt.where(MatchRecordModel.created_at <= format_timestamp(until))
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing match records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list match records: {e}") from e

    def delete_many(self, record_ids: List[str]) -> int:
        if not record_ids:
            return 0
        try:
            stmt = delete(MatchRecordModel).where(MatchRecordModel.id.in_(record_ids))
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error deleting match records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete match records: {e}") from e
