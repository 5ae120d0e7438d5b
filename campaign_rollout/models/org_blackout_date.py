# campaign_rollout/models/org_blackout_date.py

import uuid
from sqlalchemy import Column, String, Boolean, Date, DateTime, Text, JSON, Index, func, text
from campaign_rollout.db.base_class import Base


class OrgBlackoutDate(Base):
    """
    A date range during which campaigns must not launch.

    Recurring windows only use the month/day (or quarter offset/day, or day)
    components of start_date and end_date.
    """

    __tablename__ = "org_blackout_dates"

    id = Column(String, primary_key=True, default=lambda: f"blk_{uuid.uuid4().hex[:12]}")
    organization_id = Column(String, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    is_recurring = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    # YEARLY, QUARTERLY, MONTHLY
    recurring_pattern = Column(String(20), nullable=True)

    # Location IDs the window applies to; empty means every location
    affects_locations = Column(JSON, nullable=False, default=list)

    # Soft delete
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))

    created_by_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_org_blackout_dates_active", "organization_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<OrgBlackoutDate {self.id} {self.start_date}..{self.end_date} recurring={self.recurring_pattern}>"
