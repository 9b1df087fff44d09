import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from splitstats.core.errors import StorageFailure

log = logging.getLogger(__name__)


class BaseRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    @contextmanager
    def storage_errors(self, action: str):
        """Roll back and re-raise database errors as StorageFailure."""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error("Database error while %s: %s", action, e)
            raise StorageFailure(f"Database error while {action}: {e}") from e
