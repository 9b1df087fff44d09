from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConversionStats(BaseModel):
    """Conversion rate with normal-approximation confidence intervals."""

    conversion_rate: float
    # None when there are no participants: "no data", not a zero-width interval
    confidence_interval: Optional[float] = Field(None, description="95% margin of error")
    confidence_interval_90: Optional[float] = Field(None, description="90% margin of error")


class CumulativeStats(ConversionStats):
    participants: int
    conversions: int
    events: int = Field(0, description="Total matching events of the counted converted users.")


class VariationResultModel(ConversionStats):
    name: str
    participants: int = 0
    conversions: int = 0
    events: Optional[int] = None


class ResultModel(BaseModel):
    """Aggregated result of an experiment for one event spec."""

    experiment: str
    event: str
    variations: List[VariationResultModel]
    total_participants: int = 0
    total_conversions: int = 0
    total_conversion_rate: float = 0.0
    last_calculated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def variation(self, name: str) -> Optional[VariationResultModel]:
        return next((v for v in self.variations if v.name == name), None)


class DailyResultModel(BaseModel):
    day: datetime
    variations: List[VariationResultModel]
    total_participants: int = 0
    total_conversions: int = 0


class DailyResultsModel(BaseModel):
    experiment: str
    event: str
    cumulative: bool
    days: List[DailyResultModel]
