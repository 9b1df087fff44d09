from sqlalchemy import Column, Index, String

from splitstats.core.utils import new_record_id

from .base import Base


class EventORM(Base):
    __tablename__ = "events"

    # Time-ordered id; day queries are id range queries
    id = Column(String(24), primary_key=True, default=new_record_id)

    name = Column(String(255), nullable=False)
    user = Column(String(255), nullable=False)
    ip = Column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_event_name_id", "name", "id"),
        Index("ix_event_user_name", "user", "name"),
    )
