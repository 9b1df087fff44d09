from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from splitstats.core.utils import utcnow

from .base import Base, JSON_TYPE


# --- Experiment Model ---
class ExperimentORM(Base):
    __tablename__ = "experiments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True, index=True)

    # --- Timing ---
    # Results count participants from start_date, or from created_at when unset
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # All the events to monitor for participants of this experiment
    events = Column(JSON_TYPE, nullable=True)

    # One Experiment has many Variations, kept in declaration order
    variations = relationship(
        "VariationORM",
        back_populates="experiment",
        order_by="VariationORM.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def variation_names(self) -> list[str]:
        return [variation.name for variation in self.variations]

    def window_start(self) -> datetime:
        return self.start_date or self.created_at


# --- Variation Model ---
class VariationORM(Base):
    __tablename__ = "variations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment_id = Column(Integer, ForeignKey("experiments.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    # Relative assignment weight; increase to choose this variation more often
    weight = Column(Float, nullable=False, default=1.0)
    position = Column(Integer, nullable=False, default=0)

    experiment = relationship("ExperimentORM", back_populates="variations")
