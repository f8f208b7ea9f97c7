"""SQLAlchemy-backed JobStore and MatchStore.

Each call runs in its own session (one transaction), so the stores are safe
to share between scheduler worker threads. ``init_database`` must have been
called first.
"""

from datetime import datetime
from typing import List, Optional

from talentmatch.batch.collaborators import MatchRecord, MatchStore
from talentmatch.batch.models import BatchJob
from talentmatch.batch.store import JobStore

from .database import get_session
from .repositories import BatchJobRepository, MatchRecordRepository


class SqlJobStore(JobStore):
    def persist_job(self, job: BatchJob) -> None:
        with get_session() as session:
            BatchJobRepository(session).create(job)

    def update_persisted_job(self, job: BatchJob) -> None:
        with get_session() as session:
            BatchJobRepository(session).update(job)

    def load_unfinished_jobs(self) -> List[BatchJob]:
        with get_session() as session:
            return BatchJobRepository(session).list_unfinished()

    def get(self, job_id: str) -> Optional[BatchJob]:
        with get_session() as session:
            return BatchJobRepository(session).get(job_id)


class SqlMatchStore(MatchStore):
    def save_records(self, records: List[MatchRecord]) -> None:
        if not records:
            return
        with get_session() as session:
            MatchRecordRepository(session).add_many(records)

    def list_records(
        self,
        kind: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[MatchRecord]:
        with get_session() as session:
            return MatchRecordRepository(session).list(kind, since, until)

    def delete_records(self, record_ids: List[str]) -> int:
        with get_session() as session:
            return MatchRecordRepository(session).delete_many(record_ids)
