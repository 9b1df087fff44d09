"""
Cache tables. Rows for days before "today" are written once and never updated.
"""

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from .base import Base, JSON_TYPE


class DayEventUserListORM(Base):
    __tablename__ = "day_event_user_lists"
    __repr_attrs__ = ("id", "event", "day")

    id = Column(Integer, primary_key=True, autoincrement=True)
    event = Column(String(255), nullable=False)
    day = Column(DateTime, nullable=False)
    # [{"user": ..., "count": ...}, ...]
    users = Column(JSON_TYPE, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("event", "day", name="uq_day_event_user_list"),
    )


class DayParticipantListORM(Base):
    __tablename__ = "day_participant_lists"
    __repr_attrs__ = ("id", "experiment", "variation", "day")

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment = Column(String(255), nullable=False)
    variation = Column(String(255), nullable=False)
    day = Column(DateTime, nullable=False)
    # Users who first participated that day, only the first user per IP address
    users = Column(JSON_TYPE, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("experiment", "variation", "day", name="uq_day_participant_list"),
    )


class CumulativeConversionORM(Base):
    __tablename__ = "cumulative_conversions"
    __repr_attrs__ = ("id", "experiment", "variation", "event", "start_date", "end_date")

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment = Column(String(255), nullable=False)
    variation = Column(String(255), nullable=False)
    event = Column(String(255), nullable=False)

    # Everything accumulated in [start_date, end_date)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    participants = Column(JSON_TYPE, nullable=False, default=list)
    # {user: event count}
    converted_users = Column(JSON_TYPE, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("experiment", "variation", "event", name="uq_cumulative_conversion"),
    )
