# campaign_rollout/schemas/campaign.py
"""
Pydantic schemas for campaign scheduling, rollout and reminders.

Validation rules:
- Rollout values must be non-negative; percentages may not exceed 100 in total
- Reminder steps must be strictly ordered by days_from_due
- Scheduling requests must carry a timezone-aware launch time
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RolloutStrategy(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    STAGGERED = "STAGGERED"
    PILOT_FIRST = "PILOT_FIRST"


class WaveStatus(str, Enum):
    PENDING = "PENDING"
    LAUNCHED = "LAUNCHED"
    CANCELLED = "CANCELLED"


class AssignmentStatus(str, Enum):
    PENDING = "PENDING"
    NOTIFIED = "NOTIFIED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"
    SKIPPED = "SKIPPED"


# Assignments that can still become overdue
OPEN_ASSIGNMENT_STATUSES = [
    AssignmentStatus.PENDING.value,
    AssignmentStatus.NOTIFIED.value,
    AssignmentStatus.IN_PROGRESS.value,
]

# Overdue assignments keep receiving the post-due reminder steps
REMINDABLE_ASSIGNMENT_STATUSES = OPEN_ASSIGNMENT_STATUSES + [AssignmentStatus.OVERDUE.value]


# ==================== Rollout ====================


class RolloutConfig(BaseModel):
    """How a staggered campaign's audience is split into waves."""

    type: Literal["percentage", "count"] = "percentage"
    values: List[float] = Field(..., min_length=1, description="Per-wave percentages or recipient counts")
    start_date: Optional[datetime] = Field(None, description="First wave time; defaults to the launch time")
    wave_day_gap: int = Field(1, ge=0, description="Days between consecutive waves")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        # Older clients send 'daily_count' for count-based rollouts
        if v == "daily_count":
            return "count"
        return v

    @field_validator("values")
    @classmethod
    def validate_values(cls, v: List[float]) -> List[float]:
        if any(value < 0 for value in v):
            raise ValueError("rollout values must be non-negative")
        return v

    @model_validator(mode="after")
    def validate_distribution(self) -> "RolloutConfig":
        if self.type == "percentage":
            if any(value > 100 for value in self.values):
                raise ValueError("a wave percentage cannot exceed 100")
            if sum(self.values) > 100.0001:
                raise ValueError(
                    f"wave percentages add up to {sum(self.values):g}, more than 100"
                )
        else:
            if any(value != int(value) for value in self.values):
                raise ValueError("count rollout values must be whole numbers")
        return self

    @property
    def wave_count(self) -> int:
        return len(self.values)


class ScheduleLaunchRequest(BaseModel):
    scheduled_at: datetime
    rollout_config: Optional[RolloutConfig] = None
    rollout_strategy: Optional[RolloutStrategy] = None

    @field_validator("scheduled_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("scheduled_at must include a timezone offset")
        return v


class WaveSummary(BaseModel):
    wave_number: int
    scheduled_at: datetime
    recipient_count: int
    audience_percentage: Optional[float] = None


class ScheduleDetails(BaseModel):
    campaign_id: str
    scheduled_at: datetime
    rollout_strategy: RolloutStrategy
    wave_count: int
    waves: List[WaveSummary] = Field(default_factory=list)


class CancelScheduleRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class WaveResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    campaign_id: str
    wave_number: int
    scheduled_at: datetime
    audience_percentage: Optional[float] = None
    recipient_ids: List[str] = Field(default_factory=list)
    status: WaveStatus
    launched_at: Optional[datetime] = None


# ==================== Reminders ====================


class ReminderStep(BaseModel):
    """One step of a reminder sequence (negative = before due, positive = overdue)."""

    days_from_due: int
    cc_manager: bool = False
    cc_hr: bool = False
    template_id: Optional[str] = None


class ReminderSequence(BaseModel):
    steps: List[ReminderStep] = Field(default_factory=list)

    @field_validator("steps")
    @classmethod
    def validate_order(cls, v: List[ReminderStep]) -> List[ReminderStep]:
        offsets = [step.days_from_due for step in v]
        if any(b <= a for a, b in zip(offsets, offsets[1:])):
            raise ValueError("reminder steps must be strictly ordered by days_from_due")
        return v


DEFAULT_REMINDER_SEQUENCE = [
    ReminderStep(days_from_due=-5),
    ReminderStep(days_from_due=-1),
    ReminderStep(days_from_due=3, cc_manager=True),
    ReminderStep(days_from_due=7, cc_manager=True, cc_hr=True),
]


# ==================== Campaign ====================


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: date
    audience_mode: Literal["ALL", "SEGMENT", "MANUAL", "SIMPLE"] = "ALL"
    segment_id: Optional[str] = None
    manual_ids: List[str] = Field(default_factory=list)
    targeting_criteria: Optional[dict] = None
    rollout_strategy: RolloutStrategy = RolloutStrategy.IMMEDIATE
    rollout_config: Optional[RolloutConfig] = None
    reminder_config: Optional[List[ReminderStep]] = None
    parent_campaign_id: Optional[str] = None
    language: str = Field("en", max_length=10)

    @field_validator("reminder_config")
    @classmethod
    def validate_reminders(cls, v: Optional[List[ReminderStep]]) -> Optional[List[ReminderStep]]:
        if v is not None:
            ReminderSequence(steps=v)
        return v


class CampaignUpdate(BaseModel):
    """Partial update; which fields are legal depends on campaign status."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[date] = None
    audience_mode: Optional[Literal["ALL", "SEGMENT", "MANUAL", "SIMPLE"]] = None
    segment_id: Optional[str] = None
    manual_ids: Optional[List[str]] = None
    targeting_criteria: Optional[dict] = None
    status_note: Optional[str] = None
    reminder_config: Optional[List[ReminderStep]] = None
    language: Optional[str] = Field(None, max_length=10)

    @field_validator("reminder_config")
    @classmethod
    def validate_reminders(cls, v: Optional[List[ReminderStep]]) -> Optional[List[ReminderStep]]:
        if v is not None:
            ReminderSequence(steps=v)
        return v


class CampaignResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    status: CampaignStatus
    status_note: Optional[str] = None
    audience_mode: str
    due_date: date
    launch_at: Optional[datetime] = None
    launched_at: Optional[datetime] = None
    rollout_strategy: RolloutStrategy
    rollout_config: Optional[dict] = None
    reminder_config: Optional[List[dict]] = None
    total_assignments: int
    completed_assignments: int
    overdue_assignments: int
    parent_campaign_id: Optional[str] = None
    version: int
    language: str
    parent_version: Optional[int] = None


class CampaignStatistics(BaseModel):
    total: int
    completed: int
    overdue: int
    completion_percentage: int


class DeadlineExtensionRequest(BaseModel):
    days: int


# ==================== Translations ====================


class TranslationStatus(BaseModel):
    campaign_id: str
    language: str
    name: str
    status: CampaignStatus
    based_on_version: int
    current_parent_version: int
    is_stale: bool


class StaleTranslations(BaseModel):
    campaign_id: str
    name: str
    current_version: int
    stale_languages: List[str]


# ==================== Assignments ====================


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    campaign_id: str
    employee_id: str
    wave_id: Optional[str] = None
    status: AssignmentStatus
    due_date: date
    reminder_count: int
    recipient_snapshot: Optional[dict] = None
    assigned_at: datetime
    last_reminder_sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
