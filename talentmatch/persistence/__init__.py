"""SQLAlchemy persistence for batch jobs and match records.

The ORM models, repositories and stores live in their own modules
(``talentmatch.persistence.stores`` etc.) and are imported from there.
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)

__all__ = [
    "init_database",
    "get_session",
    "get_engine",
    "close_database",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
