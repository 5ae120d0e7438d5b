# campaign_rollout/schemas/compliance.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ComplianceProfileStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    organization_id: str
    campaigns_assigned: int
    campaigns_completed: int
    campaigns_missed_deadline: int
    average_response_days: Optional[float] = None
    is_repeat_non_responder: bool
    last_campaign_completed_at: Optional[datetime] = None


class ComplianceStatistics(BaseModel):
    total_employees: int
    repeat_non_responders: int
    average_response_days: float
    average_completion_rate: float
