from sqlalchemy import Boolean, Column, Index, String, UniqueConstraint

from splitstats.core.utils import new_record_id

from .base import Base


class ParticipantORM(Base):
    __tablename__ = "participants"

    # Time-ordered id: doubles as the creation timestamp
    id = Column(String(24), primary_key=True, default=new_record_id)

    experiment = Column(String(255), nullable=False)
    user = Column(String(255), nullable=False, index=True)
    ip = Column(String(64), nullable=True)

    # Assigned once, never changed afterwards
    variation = Column(String(255), nullable=True)

    # Has this participant opted out? (e.g. an existing user logged in)
    opted_out = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("experiment", "user", name="uq_participant_experiment_user"),
        Index("ix_participant_experiment_opted_out", "experiment", "opted_out"),
    )
