# campaign_rollout/models/employee.py
"""
Read-only projection of the people directory.

The directory service owns these rows; the rollout engine only reads them to
resolve audiences and to take recipient snapshots.
"""

from sqlalchemy import Column, String, ForeignKey, JSON, DateTime, func
from sqlalchemy.orm import relationship
from campaign_rollout.db.base_class import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String, primary_key=True)
    organization_id = Column(String, nullable=False, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    job_title = Column(String(200), nullable=True)

    # Denormalized display values plus the IDs targeting filters on
    department = Column(String(200), nullable=True)
    department_id = Column(String, nullable=True, index=True)
    location = Column(String(200), nullable=True)
    location_id = Column(String, nullable=True, index=True)

    manager_id = Column(String, ForeignKey("employees.id"), nullable=True, index=True)
    manager_name = Column(String(200), nullable=True)

    # ACTIVE, ON_LEAVE, TERMINATED
    employment_status = Column(String(20), nullable=False, default="ACTIVE")

    manager = relationship("Employee", remote_side=[id])


class CampaignSegment(Base):
    """A saved, reusable targeting definition."""

    __tablename__ = "campaign_segments"

    id = Column(String, primary_key=True)
    organization_id = Column(String, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    criteria = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
