from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from splitstats.models.orm.result import ResultORM

from .base import BaseRepository


class ResultRepository(BaseRepository):
    def get(self, experiment: str, event: str) -> Optional[ResultORM]:
        with self.storage_errors("fetching result"):
            stmt = select(ResultORM).where(
                ResultORM.experiment == experiment, ResultORM.event == event
            )
            return self.db.scalars(stmt).one_or_none()

    def get_or_create(self, experiment: str, event: str) -> ResultORM:
        """Loads the stored result, creating an empty one on first use."""
        db_result = self.get(experiment, event)
        if db_result is not None:
            return db_result

        with self.storage_errors("creating result"):
            db_result = ResultORM(
                experiment=experiment,
                event=event,
                variations=[],
                total_participants=0,
                total_conversions=0,
            )
            self.db.add(db_result)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return self.get(experiment, event)
            return db_result

    def save(self, db_result: ResultORM) -> ResultORM:
        with self.storage_errors("saving result"):
            self.db.add(db_result)
            self.db.commit()
            return db_result
