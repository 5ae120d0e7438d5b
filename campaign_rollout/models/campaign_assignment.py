# campaign_rollout/models/campaign_assignment.py

import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    Index,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import relationship
from campaign_rollout.db.base_class import Base


class CampaignAssignment(Base):
    """
    One campaign assigned to one recipient.

    ``recipient_snapshot`` is captured at assignment time and never rewritten,
    so later directory edits do not change history. Rows are never deleted.
    """

    __tablename__ = "campaign_assignments"

    id = Column(String, primary_key=True, default=lambda: f"casn_{uuid.uuid4().hex[:12]}")
    organization_id = Column(String, nullable=False, index=True)
    campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    wave_id = Column(String, ForeignKey("campaign_waves.id"), nullable=True)

    # {"first_name", "last_name", "email", "job_title", "department", "location", "manager"}
    recipient_snapshot = Column(JSON, nullable=False)

    # Copied from the campaign, independently extendable
    due_date = Column(Date, nullable=False)

    # PENDING, NOTIFIED, IN_PROGRESS, COMPLETED, OVERDUE, SKIPPED
    status = Column(String(20), nullable=False, default="PENDING", server_default=text("'PENDING'"))

    # Number of reminder steps already fired (1-based position of the last one)
    reminder_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    last_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    manager_notified_at = Column(DateTime(timezone=True), nullable=True)

    assigned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    notified_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    skipped_by = Column(String, nullable=True)
    skip_reason = Column(Text, nullable=True)

    campaign = relationship("Campaign", back_populates="assignments")
    wave = relationship("CampaignWave")

    __table_args__ = (
        # One assignment per (campaign, recipient)
        UniqueConstraint("campaign_id", "employee_id", name="uq_campaign_assignment_employee"),
        Index("idx_campaign_assignments_sweep", "status", "due_date"),
    )

    def __repr__(self) -> str:
        return f"<CampaignAssignment {self.id} status={self.status} reminders={self.reminder_count}>"
