from datetime import datetime
from typing import Optional

from sqlalchemy import func, select

from splitstats.core.utils import day_id_range, new_record_id
from splitstats.models.orm.event import EventORM

from .base import BaseRepository


class EventRepository(BaseRepository):
    def create(
        self,
        name: str,
        user: str,
        ip: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> EventORM:
        """
        Appends an event record.

        ``created_at`` is encoded in the record id; it defaults to now.
        """
        db_event = EventORM(id=new_record_id(created_at), name=name, user=user, ip=ip)
        with self.storage_errors("creating event"):
            self.db.add(db_event)
            self.db.commit()
        return db_event

    def count_for_user_since(
        self, name: str, user: str, after_id: str, limit: Optional[int] = None
    ) -> int:
        """
        Counts ``name`` events of ``user`` created after the record ``after_id``.
        With ``limit`` the count stops there.
        """
        with self.storage_errors("counting user events"):
            matching = select(EventORM.id).where(
                EventORM.name == name,
                EventORM.user == user,
                EventORM.id > after_id,
            )
            if limit is not None:
                matching = matching.limit(limit)
            stmt = select(func.count()).select_from(matching.subquery())
            return self.db.scalar(stmt)

    def count_users_by_day(self, name: str, day: datetime) -> list[dict]:
        """Number of ``name`` events per user on one UTC day."""
        low, high = day_id_range(day)
        with self.storage_errors("aggregating events for day"):
            stmt = (
                select(EventORM.user, func.count().label("count"))
                .where(EventORM.name == name, EventORM.id >= low, EventORM.id < high)
                .group_by(EventORM.user)
                .order_by(EventORM.user)
            )
            return [{"user": row.user, "count": row.count} for row in self.db.execute(stmt)]
