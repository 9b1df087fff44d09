from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from splitstats.core.utils import day_id_range, id_floor, new_record_id
from splitstats.models.orm.participant import ParticipantORM

from .base import BaseRepository

# Keep IN (...) clauses well below database parameter limits
CHUNK_SIZE = 500


class ParticipantRepository(BaseRepository):
    def get(self, experiment: str, user: str) -> Optional[ParticipantORM]:
        """Retrieves the participant record of a user in a specific experiment."""
        with self.storage_errors("fetching participant"):
            stmt = select(ParticipantORM).where(
                ParticipantORM.experiment == experiment,
                ParticipantORM.user == user,
            ).execution_options(populate_existing=True)
            return self.db.scalars(stmt).one_or_none()

    def create_if_absent(
        self,
        experiment: str,
        user: str,
        ip: Optional[str] = None,
        variation: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> tuple[ParticipantORM, bool]:
        """
        Creates a participant record. If another writer created it first, the
        stored record is returned instead; the flag tells which happened.
        """
        with self.storage_errors("creating participant"):
            db_participant = ParticipantORM(
                id=new_record_id(created_at),
                experiment=experiment,
                user=user,
                ip=ip,
                variation=variation,
                opted_out=False,
            )
            self.db.add(db_participant)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return self.get(experiment, user), False
            return db_participant, True

    def set_variation(self, participant: ParticipantORM, variation: str) -> bool:
        """Stores the variation unless one is already set. Returns True if stored."""
        with self.storage_errors("assigning variation"):
            stmt = (
                update(ParticipantORM)
                .where(ParticipantORM.id == participant.id, ParticipantORM.variation.is_(None))
                .values(variation=variation)
            )
            stored = self.db.execute(stmt).rowcount == 1
            self.db.commit()
            return stored

    def opt_out_user(self, user: str) -> int:
        """Marks every participation of the user as opted out."""
        with self.storage_errors("opting out user"):
            stmt = update(ParticipantORM).where(ParticipantORM.user == user).values(opted_out=True)
            count = self.db.execute(stmt).rowcount
            self.db.commit()
            return count

    def find_for_result(
        self, experiment: str, since: datetime, excluded_ips: Iterable[str] = ()
    ) -> list[ParticipantORM]:
        """
        Participants created at or after ``since`` that have a variation and did
        not opt out, in creation order.
        """
        with self.storage_errors("fetching participants"):
            stmt = select(ParticipantORM).where(
                ParticipantORM.experiment == experiment,
                ParticipantORM.opted_out.is_(False),
                ParticipantORM.variation.is_not(None),
                ParticipantORM.id >= id_floor(since),
            )
            stmt = self._exclude_ips(stmt, excluded_ips).order_by(ParticipantORM.id)
            return list(self.db.scalars(stmt))

    def find_for_day(
        self, experiment: str, variation: str, day: datetime, excluded_ips: Iterable[str] = ()
    ) -> list[tuple[str, Optional[str]]]:
        """(user, ip) of participants created on ``day``, in creation order."""
        low, high = day_id_range(day)
        with self.storage_errors("fetching participants for day"):
            stmt = select(ParticipantORM.user, ParticipantORM.ip).where(
                ParticipantORM.experiment == experiment,
                ParticipantORM.variation == variation,
                ParticipantORM.id >= low,
                ParticipantORM.id < high,
            )
            stmt = self._exclude_ips(stmt, excluded_ips).order_by(ParticipantORM.id)
            return [(row.user, row.ip) for row in self.db.execute(stmt)]

    def opted_out_users(self, experiment: str, users: Iterable[str]) -> set[str]:
        """The subset of ``users`` that opted out of ``experiment``."""
        users = list(users)
        opted_out = set()
        with self.storage_errors("fetching opted out users"):
            for i in range(0, len(users), CHUNK_SIZE):
                stmt = select(ParticipantORM.user).where(
                    ParticipantORM.experiment == experiment,
                    ParticipantORM.opted_out.is_(True),
                    ParticipantORM.user.in_(users[i:i + CHUNK_SIZE]),
                )
                opted_out.update(self.db.scalars(stmt))
        return opted_out

    @staticmethod
    def _exclude_ips(stmt, excluded_ips):
        excluded_ips = list(excluded_ips)
        if not excluded_ips:
            return stmt
        # NOT IN never matches NULL, keep participants without an IP
        return stmt.where(
            or_(ParticipantORM.ip.is_(None), ParticipantORM.ip.not_in(excluded_ips))
        )
