# campaign_rollout/crud/crud_campaign_assignment.py
"""CRUD operations for Campaign Assignments."""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, func, update
from sqlalchemy.orm import Session

from .base import CRUDBase
from .crud_compliance_profile import compliance_profile
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_assignment import CampaignAssignment
from campaign_rollout.schemas.campaign import (
    AssignmentStatus,
    CampaignStatus,
    OPEN_ASSIGNMENT_STATUSES,
    REMINDABLE_ASSIGNMENT_STATUSES,
)
from campaign_rollout.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class CRUDCampaignAssignment(CRUDBase[CampaignAssignment, CampaignAssignment, CampaignAssignment]):
    """CRUD operations for campaign assignments."""

    def add_many(
        self,
        db: Session,
        *,
        campaign: Campaign,
        snapshots: dict[str, dict],
        wave_id: Optional[str] = None,
        assigned_at: Optional[datetime] = None,
    ) -> List[CampaignAssignment]:
        """
        Stage one assignment per recipient without committing.

        ``snapshots`` maps employee ID to the recipient snapshot taken now.
        """
        assigned_at = assigned_at or utcnow()
        db_objs = [
            self.model(
                organization_id=campaign.organization_id,
                campaign_id=campaign.id,
                employee_id=employee_id,
                wave_id=wave_id,
                recipient_snapshot=snapshot,
                due_date=campaign.due_date,
                status=AssignmentStatus.PENDING.value,
                reminder_count=0,
                assigned_at=assigned_at,
            )
            for employee_id, snapshot in snapshots.items()
        ]
        db.add_all(db_objs)
        return db_objs

    def get_by_campaign(
        self,
        db: Session,
        *,
        campaign_id: str,
        status: Optional[str] = None,
    ) -> List[CampaignAssignment]:
        query = db.query(self.model).filter(self.model.campaign_id == campaign_id)
        if status:
            query = query.filter(self.model.status == status)
        return query.order_by(self.model.assigned_at.asc()).all()

    def get_assigned_employee_ids(self, db: Session, *, campaign_id: str) -> set[str]:
        rows = (
            db.query(self.model.employee_id)
            .filter(self.model.campaign_id == campaign_id)
            .all()
        )
        return {row[0] for row in rows}

    def get_open_for_active_campaigns(
        self,
        db: Session,
        *,
        org_id: Optional[str] = None,
        batch_size: int = 500,
        offset: int = 0,
    ) -> List[CampaignAssignment]:
        """Assignments still owed reminders whose campaign is ACTIVE, oldest due first."""
        query = (
            db.query(self.model)
            .join(Campaign, Campaign.id == self.model.campaign_id)
            .filter(
                and_(
                    Campaign.status == CampaignStatus.ACTIVE.value,
                    self.model.status.in_(REMINDABLE_ASSIGNMENT_STATUSES),
                )
            )
        )
        if org_id:
            query = query.filter(self.model.organization_id == org_id)
        return (
            query.order_by(self.model.due_date.asc(), self.model.id.asc())
            .offset(offset)
            .limit(batch_size)
            .all()
        )

    def record_reminder(
        self,
        db: Session,
        *,
        assignment_id: str,
        step: int,
        cc_manager: bool,
        sent_at: datetime,
    ) -> bool:
        """
        Advance ``reminder_count`` to ``step`` if it is still behind.

        Returns False when the step already fired, so two sweeps racing on the
        same assignment dispatch it once.
        """
        values = {"reminder_count": step, "last_reminder_sent_at": sent_at}
        if cc_manager:
            values["manager_notified_at"] = sent_at
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == assignment_id,
                self.model.reminder_count < step,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def mark_notified(self, db: Session, *, assignment_id: str) -> bool:
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == assignment_id,
                self.model.status == AssignmentStatus.PENDING.value,
            )
            .values(status=AssignmentStatus.NOTIFIED.value, notified_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def mark_started(self, db: Session, *, assignment_id: str) -> bool:
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == assignment_id,
                self.model.status.in_(
                    [AssignmentStatus.PENDING.value, AssignmentStatus.NOTIFIED.value]
                ),
            )
            .values(status=AssignmentStatus.IN_PROGRESS.value, started_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def complete(
        self,
        db: Session,
        *,
        assignment_id: str,
        completed_at: Optional[datetime] = None,
    ) -> Optional[CampaignAssignment]:
        """
        Complete an open or overdue assignment and fold the response time into
        the recipient's compliance profile.
        """
        completed_at = completed_at or utcnow()
        assignment = self.get(db, id=assignment_id)
        if not assignment:
            return None

        result = db.execute(
            update(self.model)
            .where(
                self.model.id == assignment_id,
                self.model.status.in_(REMINDABLE_ASSIGNMENT_STATUSES),
            )
            .values(status=AssignmentStatus.COMPLETED.value, completed_at=completed_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            return None

        # An OVERDUE assignment already counted as a miss when it went overdue
        was_overdue = assignment.status == AssignmentStatus.OVERDUE.value
        compliance_profile.record_completed(
            db,
            org_id=assignment.organization_id,
            employee_id=assignment.employee_id,
            assigned_at=ensure_utc(assignment.assigned_at),
            completed_at=completed_at,
            due_date=assignment.due_date,
            count_miss=not was_overdue,
        )
        db.execute(
            update(Campaign)
            .where(Campaign.id == assignment.campaign_id)
            .values(
                completed_assignments=Campaign.completed_assignments + 1,
                overdue_assignments=Campaign.overdue_assignments - (1 if was_overdue else 0),
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(assignment)
        return assignment

    def skip(
        self,
        db: Session,
        *,
        assignment_id: str,
        skipped_by: str,
        reason: Optional[str] = None,
    ) -> bool:
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == assignment_id,
                self.model.status.in_(OPEN_ASSIGNMENT_STATUSES),
            )
            .values(
                status=AssignmentStatus.SKIPPED.value,
                skipped_by=skipped_by,
                skip_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def mark_overdue(self, db: Session, *, campaign_id: str, today: date) -> List[CampaignAssignment]:
        """
        Flip open assignments past their due date to OVERDUE, one conditional
        update per row, recording a missed deadline for each row actually
        flipped. Returns the flipped assignments.
        """
        candidates = (
            db.query(self.model)
            .filter(
                self.model.campaign_id == campaign_id,
                self.model.status.in_(OPEN_ASSIGNMENT_STATUSES),
                self.model.due_date < today,
            )
            .all()
        )
        flipped = []
        for assignment in candidates:
            result = db.execute(
                update(self.model)
                .where(
                    self.model.id == assignment.id,
                    self.model.status.in_(OPEN_ASSIGNMENT_STATUSES),
                )
                .values(status=AssignmentStatus.OVERDUE.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                compliance_profile.record_missed_deadline(
                    db,
                    org_id=assignment.organization_id,
                    employee_id=assignment.employee_id,
                )
                flipped.append(assignment)
        db.commit()
        return flipped

    def extend_due_dates(self, db: Session, *, campaign_id: str, days: int) -> int:
        """Push every assignment's due date by ``days``; the caller commits."""
        assignments = db.query(self.model).filter(self.model.campaign_id == campaign_id).all()
        for assignment in assignments:
            assignment.due_date = assignment.due_date + timedelta(days=days)
            db.add(assignment)
        return len(assignments)

    def count_by_status(self, db: Session, *, campaign_id: str) -> dict:
        rows = (
            db.query(self.model.status, func.count(self.model.id))
            .filter(self.model.campaign_id == campaign_id)
            .group_by(self.model.status)
            .all()
        )
        stats = {status.value: 0 for status in AssignmentStatus}
        for status, count in rows:
            stats[status] = count
        return stats


campaign_assignment = CRUDCampaignAssignment(CampaignAssignment)
