from typing import Optional

from pydantic import BaseModel, Field


class ParticipateModel(BaseModel):
    """Schema for enrolling a user in an experiment (API Input)."""

    user: str
    ip: Optional[str] = None
    variation: Optional[str] = Field(
        None, description="Force this variation on a first participation."
    )


class AssignmentModel(BaseModel):
    """A user's variation in one experiment. ``variation`` is None when not participating."""

    experiment: str
    user: str
    variation: Optional[str] = None
