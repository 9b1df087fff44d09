from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from .base import Base, JSON_TYPE


# Aggregated result of all participants of an experiment for one event
class ResultORM(Base):
    __tablename__ = "results"
    __repr_attrs__ = ("id", "experiment", "event", "last_calculated")

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment = Column(String(255), nullable=False)
    # Canonical event spec, e.g. "signup" or "signup:5"
    event = Column(String(255), nullable=False)

    # List of per-variation metric dicts
    variations = Column(JSON_TYPE, nullable=False, default=list)
    total_participants = Column(Integer, nullable=False, default=0)
    total_conversions = Column(Integer, nullable=False, default=0)

    # Used to check whether the result is still fresh
    last_calculated = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("experiment", "event", name="uq_result_experiment_event"),
    )
