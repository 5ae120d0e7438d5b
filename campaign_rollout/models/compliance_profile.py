# campaign_rollout/models/compliance_profile.py

import uuid
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, UniqueConstraint, func, text
from campaign_rollout.db.base_class import Base


class ComplianceProfile(Base):
    """Cross-campaign response history for one recipient in one organization."""

    __tablename__ = "employee_compliance_profiles"

    id = Column(String, primary_key=True, default=lambda: f"cprf_{uuid.uuid4().hex[:12]}")
    organization_id = Column(String, nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)

    campaigns_assigned = Column(Integer, nullable=False, default=0, server_default=text("0"))
    campaigns_completed = Column(Integer, nullable=False, default=0, server_default=text("0"))
    campaigns_missed_deadline = Column(Integer, nullable=False, default=0, server_default=text("0"))
    average_response_days = Column(Float, nullable=True)

    is_repeat_non_responder = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    last_campaign_completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "employee_id", name="uq_compliance_profile_employee"),
    )
