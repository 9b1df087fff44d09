from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from splitstats.models.orm.cache import (
    CumulativeConversionORM,
    DayEventUserListORM,
    DayParticipantListORM,
)

from .base import BaseRepository


class DayEventUserListRepository(BaseRepository):
    def get(self, event: str, day: datetime) -> Optional[DayEventUserListORM]:
        with self.storage_errors("fetching day event users"):
            stmt = select(DayEventUserListORM).where(
                DayEventUserListORM.event == event, DayEventUserListORM.day == day
            )
            return self.db.scalars(stmt).one_or_none()

    def create(self, event: str, day: datetime, users: list[dict]) -> bool:
        """Stores a day bucket. Returns False if it was already stored."""
        with self.storage_errors("storing day event users"):
            self.db.add(DayEventUserListORM(event=event, day=day, users=users))
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return False
            return True


class DayParticipantListRepository(BaseRepository):
    def get(self, experiment: str, variation: str, day: datetime) -> Optional[DayParticipantListORM]:
        with self.storage_errors("fetching day participants"):
            stmt = select(DayParticipantListORM).where(
                DayParticipantListORM.experiment == experiment,
                DayParticipantListORM.variation == variation,
                DayParticipantListORM.day == day,
            )
            return self.db.scalars(stmt).one_or_none()

    def create(self, experiment: str, variation: str, day: datetime, users: list[str]) -> bool:
        """Stores a day bucket. Returns False if it was already stored."""
        with self.storage_errors("storing day participants"):
            self.db.add(
                DayParticipantListORM(experiment=experiment, variation=variation, day=day, users=users)
            )
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return False
            return True


class CumulativeConversionRepository(BaseRepository):
    def get(self, experiment: str, variation: str, event: str) -> Optional[CumulativeConversionORM]:
        with self.storage_errors("fetching cumulative conversions"):
            stmt = select(CumulativeConversionORM).where(
                CumulativeConversionORM.experiment == experiment,
                CumulativeConversionORM.variation == variation,
                CumulativeConversionORM.event == event,
            )
            return self.db.scalars(stmt).one_or_none()

    def create(
        self,
        experiment: str,
        variation: str,
        event: str,
        start_date: datetime,
        end_date: datetime,
        participants: list[str],
        converted_users: dict[str, int],
    ) -> bool:
        """Stores a new checkpoint. Returns False if another writer stored one first."""
        with self.storage_errors("storing cumulative conversions"):
            self.db.add(
                CumulativeConversionORM(
                    experiment=experiment,
                    variation=variation,
                    event=event,
                    start_date=start_date,
                    end_date=end_date,
                    participants=participants,
                    converted_users=converted_users,
                )
            )
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return False
            return True

    def advance(
        self,
        checkpoint_id: int,
        expected_end_date: datetime,
        start_date: datetime,
        end_date: datetime,
        participants: list[str],
        converted_users: dict[str, int],
    ) -> bool:
        """
        Replaces the checkpoint contents, provided its ``end_date`` still equals
        ``expected_end_date`` (compare-and-swap). Returns False when another
        writer moved it in the meantime.
        """
        with self.storage_errors("advancing cumulative conversions"):
            stmt = (
                update(CumulativeConversionORM)
                .where(
                    CumulativeConversionORM.id == checkpoint_id,
                    CumulativeConversionORM.end_date == expected_end_date,
                )
                .values(
                    start_date=start_date,
                    end_date=end_date,
                    participants=participants,
                    converted_users=converted_users,
                )
                .execution_options(synchronize_session="fetch")
            )
            swapped = self.db.execute(stmt).rowcount == 1
            self.db.commit()
            return swapped
