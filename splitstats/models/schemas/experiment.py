from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from splitstats.core.utils import to_naive_utc


class VariationConfig(BaseModel):
    """Configuration for a single variation in an experiment."""

    name: str
    weight: float = Field(
        default=1.0,
        ge=0.0,
        description="Relative assignment weight; increase to choose this variation more often.",
    )

    model_config = ConfigDict(from_attributes=True)


class ExperimentInitModel(BaseModel):
    """Input for creating or updating an experiment (API Input)."""

    variations: List[Union[VariationConfig, str]]
    events: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("variations")
    @classmethod
    def names_to_configs(cls, variations):
        # Plain names get the default weight
        configs = [
            VariationConfig(name=v) if isinstance(v, str) else v for v in variations
        ]
        names = [config.name for config in configs]
        if len(set(names)) != len(names):
            raise ValueError(f"Variation names must be unique, got: {names}")
        return configs

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_utc(cls, value):
        # Dates are stored as naive UTC
        return to_naive_utc(value) if value is not None else None


class ExperimentModel(BaseModel):
    """Data model for a persistent experiment record."""

    name: str
    variations: List[VariationConfig]
    events: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
