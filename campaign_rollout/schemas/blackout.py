# campaign_rollout/schemas/blackout.py

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RecurringPattern(str, Enum):
    YEARLY = "YEARLY"
    QUARTERLY = "QUARTERLY"
    MONTHLY = "MONTHLY"


class BlackoutDateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: date
    end_date: date
    affects_locations: List[str] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None

    @model_validator(mode="after")
    def pattern_required_when_recurring(self) -> "BlackoutDateCreate":
        if self.is_recurring and self.recurring_pattern is None:
            raise ValueError("recurring_pattern is required when is_recurring is true")
        return self


class BlackoutDateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    affects_locations: Optional[List[str]] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None


class BlackoutDateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    affects_locations: List[str]
    is_recurring: bool
    recurring_pattern: Optional[RecurringPattern] = None
    is_active: bool
    created_at: Optional[datetime] = None


class AvailabilityResponse(BaseModel):
    date: date
    is_blackout: bool
    next_available: date
