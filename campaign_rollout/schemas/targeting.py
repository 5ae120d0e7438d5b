# campaign_rollout/schemas/targeting.py

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class TargetingMode(str, Enum):
    ALL = "ALL"
    MANUAL = "MANUAL"
    SEGMENT = "SEGMENT"
    SIMPLE = "SIMPLE"


class TargetingCriteria(BaseModel):
    """Who a campaign goes to."""

    mode: TargetingMode = TargetingMode.ALL
    employee_ids: List[str] = Field(default_factory=list)
    segment_id: Optional[str] = None
    departments: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    job_titles: List[str] = Field(default_factory=list)
    include_subordinates: bool = False

    @model_validator(mode="after")
    def validate_mode(self) -> "TargetingCriteria":
        if self.mode == TargetingMode.SEGMENT and not self.segment_id:
            raise ValueError("segment_id is required when mode is SEGMENT")
        if self.mode == TargetingMode.MANUAL and not self.employee_ids:
            raise ValueError("employee_ids is required when mode is MANUAL")
        return self


class RecipientPreview(BaseModel):
    id: str
    name: str
    email: str
    department: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None


class AudiencePreview(BaseModel):
    total: int
    sample: List[RecipientPreview]
    description: str
    page: int
    total_pages: int
