# campaign_rollout/models/campaign.py
"""
Campaign model - an outbound compliance campaign (disclosure, attestation,
survey) and its rollout/reminder configuration.

Aggregate counters are only ever changed with SQL-level increments or a full
recount so concurrent wave launches never lose updates.
"""

import uuid
from sqlalchemy import Column, String, Integer, Date, DateTime, Text, JSON, ForeignKey, func, text
from sqlalchemy.orm import relationship
from campaign_rollout.db.base_class import Base


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=lambda: f"cmpn_{uuid.uuid4().hex[:12]}")
    organization_id = Column(String, nullable=False, index=True)

    # Content
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status_note = Column(Text, nullable=True)

    # Status: DRAFT, SCHEDULED, ACTIVE, PAUSED, COMPLETED, CANCELLED
    status = Column(String(20), nullable=False, default="DRAFT", server_default=text("'DRAFT'"))

    # Targeting
    audience_mode = Column(String(20), nullable=False, default="ALL")
    # Options: 'ALL', 'SEGMENT', 'MANUAL', 'SIMPLE'
    segment_id = Column(String, ForeignKey("campaign_segments.id"), nullable=True)
    manual_ids = Column(JSON, nullable=False, default=list)
    targeting_criteria = Column(JSON, nullable=True)
    # For SIMPLE mode: {"departments": [...], "locations": [...], "include_subordinates": true}

    # Schedule
    due_date = Column(Date, nullable=False)
    launch_at = Column(DateTime(timezone=True), nullable=True)
    launched_at = Column(DateTime(timezone=True), nullable=True)
    launched_by_id = Column(String, nullable=True)

    # Rollout: IMMEDIATE, STAGGERED, PILOT_FIRST
    rollout_strategy = Column(String(20), nullable=False, default="IMMEDIATE")
    rollout_config = Column(JSON, nullable=True)
    # {"type": "percentage", "values": [10, 40, 50], "start_date": ..., "wave_day_gap": 2}

    # Ordered reminder steps: [{"days_from_due": -5, "cc_manager": false, "cc_hr": false}, ...]
    reminder_config = Column(JSON, nullable=True)

    # Aggregate counters
    total_assignments = Column(Integer, nullable=False, default=0, server_default=text("0"))
    completed_assignments = Column(Integer, nullable=False, default=0, server_default=text("0"))
    overdue_assignments = Column(Integer, nullable=False, default=0, server_default=text("0"))

    # Translation lineage; version bumps on content edits and invalidates translations
    parent_campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=True, index=True)
    version = Column(Integer, nullable=False, default=1, server_default=text("1"))
    language = Column(String(10), nullable=False, default="en")
    # Parent version this translation was last synced to; behind the parent means stale
    parent_version = Column(Integer, nullable=True)

    # Audit
    created_by_id = Column(String, nullable=True)
    updated_by_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    waves = relationship(
        "CampaignWave",
        back_populates="campaign",
        order_by="CampaignWave.wave_number",
    )
    assignments = relationship("CampaignAssignment", back_populates="campaign")
    segment = relationship("CampaignSegment")

    def __repr__(self) -> str:
        return f"<Campaign {self.id} status={self.status} strategy={self.rollout_strategy}>"
