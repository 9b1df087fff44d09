from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EventCreateModel(BaseModel):
    """Schema for recording a new Event (API Input)."""

    event: str = Field(..., description="e.g. 'signup', 'upgrade'")
    user: str
    ip: Optional[str] = None


class EventSpec(BaseModel):
    """
    Which events count as a conversion: at least ``min_occurrences`` events
    called ``name`` (a single one when unset).

    Written as ``"name"`` or ``"name:N"`` at the API boundary.
    """

    name: str
    min_occurrences: Optional[int] = Field(None, ge=1)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, spec: str, event_count: Optional[int] = None) -> "EventSpec":
        name, sep, count = spec.rpartition(":")
        if sep and name and count.isdigit():
            spec, min_occurrences = name, int(count)
        else:
            min_occurrences = None
        if event_count is not None:
            min_occurrences = event_count
        # A threshold of one is the same as no threshold
        if min_occurrences is not None and min_occurrences <= 1:
            min_occurrences = None
        return cls(name=spec, min_occurrences=min_occurrences)

    @property
    def threshold(self) -> int:
        return self.min_occurrences or 1

    def __str__(self) -> str:
        if self.min_occurrences and self.min_occurrences > 1:
            return f"{self.name}:{self.min_occurrences}"
        return self.name


class EventStatsModel(BaseModel):
    """Activity summary for one event on one UTC day."""

    event: str
    day: datetime
    total: int
    unique: int
    over10: int
    over10_conversion_rate: float
