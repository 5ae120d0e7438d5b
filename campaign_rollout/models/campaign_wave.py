# campaign_rollout/models/campaign_wave.py

import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from campaign_rollout.db.base_class import Base


class CampaignWave(Base):
    """
    A time-phased slice of a campaign's audience.

    Waves are created PENDING when a staggered launch is scheduled and are
    claimed (PENDING -> LAUNCHED) by exactly one launch task.
    """

    __tablename__ = "campaign_waves"

    id = Column(String, primary_key=True, default=lambda: f"cwav_{uuid.uuid4().hex[:12]}")
    organization_id = Column(String, nullable=False, index=True)
    campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=False, index=True)

    # 1-based; launch order follows wave_number via later fire times
    wave_number = Column(Integer, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)

    # Either an explicit recipient list or a share of the audience
    audience_percentage = Column(Float, nullable=True)
    recipient_ids = Column(JSON, nullable=False, default=list)

    # PENDING, LAUNCHED, CANCELLED
    status = Column(String(20), nullable=False, default="PENDING", server_default=text("'PENDING'"))
    launched_at = Column(DateTime(timezone=True), nullable=True)

    campaign = relationship("Campaign", back_populates="waves")

    __table_args__ = (
        UniqueConstraint("campaign_id", "wave_number", name="uq_campaign_wave_number"),
        Index("idx_campaign_waves_status", "campaign_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<CampaignWave {self.campaign_id}#{self.wave_number} status={self.status}>"
