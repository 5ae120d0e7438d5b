# campaign_rollout/crud/crud_compliance_profile.py
"""
CRUD operations for Compliance Profiles.

Every counter change is a single UPDATE with SQL-side arithmetic, followed by
a second UPDATE that re-derives the repeat non-responder flag from the new
counter values. Nothing here commits except ``reset_profile``; callers own
the transaction.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import and_, case, func, or_, update
from sqlalchemy.orm import Session

from .base import CRUDBase
from campaign_rollout.models.compliance_profile import ComplianceProfile
from campaign_rollout.schemas.compliance import ComplianceProfileStats
from campaign_rollout.utils.time import as_date

logger = logging.getLogger(__name__)

# Flag thresholds: 3 misses outright, or more than a quarter of at least 4
REPEAT_MISS_THRESHOLD = 3
REPEAT_MIN_ASSIGNED = 4
REPEAT_MISS_RATIO = 0.25


def is_repeat_non_responder(assigned: int, missed: int) -> bool:
    if missed >= REPEAT_MISS_THRESHOLD:
        return True
    return assigned >= REPEAT_MIN_ASSIGNED and missed / assigned > REPEAT_MISS_RATIO


class CRUDComplianceProfile(CRUDBase[ComplianceProfile, ComplianceProfileStats, ComplianceProfileStats]):
    def _flag_expression(self):
        m = self.model
        return case(
            (
                or_(
                    m.campaigns_missed_deadline >= REPEAT_MISS_THRESHOLD,
                    and_(
                        m.campaigns_assigned >= REPEAT_MIN_ASSIGNED,
                        # missed / assigned > 0.25 without float division
                        m.campaigns_missed_deadline * 4 > m.campaigns_assigned,
                    ),
                ),
                True,
            ),
            else_=False,
        )

    def _refresh_flag(self, db: Session, profile_id: str) -> None:
        db.execute(
            update(self.model)
            .where(self.model.id == profile_id)
            .values(is_repeat_non_responder=self._flag_expression())
            .execution_options(synchronize_session=False)
        )

    def get_by_employee(
        self, db: Session, *, org_id: str, employee_id: str
    ) -> Optional[ComplianceProfile]:
        return (
            db.query(self.model)
            .filter(
                self.model.organization_id == org_id,
                self.model.employee_id == employee_id,
            )
            .first()
        )

    def get_or_create(self, db: Session, *, org_id: str, employee_id: str) -> ComplianceProfile:
        profile = self.get_by_employee(db, org_id=org_id, employee_id=employee_id)
        if profile is None:
            profile = self.model(organization_id=org_id, employee_id=employee_id)
            db.add(profile)
            db.flush()
        return profile

    def record_assigned(self, db: Session, *, org_id: str, employee_id: str) -> None:
        profile = self.get_by_employee(db, org_id=org_id, employee_id=employee_id)
        if profile is None:
            db.add(
                self.model(
                    organization_id=org_id,
                    employee_id=employee_id,
                    campaigns_assigned=1,
                    campaigns_completed=0,
                    campaigns_missed_deadline=0,
                    is_repeat_non_responder=False,
                )
            )
            db.flush()
            return

        db.execute(
            update(self.model)
            .where(self.model.id == profile.id)
            .values(campaigns_assigned=self.model.campaigns_assigned + 1)
            .execution_options(synchronize_session=False)
        )
        self._refresh_flag(db, profile.id)

    def record_completed(
        self,
        db: Session,
        *,
        org_id: str,
        employee_id: str,
        assigned_at: datetime,
        completed_at: datetime,
        due_date: date,
        count_miss: bool = True,
    ) -> None:
        """
        Fold one completion into the running response-time mean.

        A completion after the due date also counts as a missed deadline,
        unless ``count_miss`` is False because the miss was already recorded
        when the assignment went overdue.
        """
        profile = self.get_or_create(db, org_id=org_id, employee_id=employee_id)
        response_days = max((completed_at - assigned_at).total_seconds() / 86400.0, 0.0)
        late = count_miss and as_date(completed_at) > due_date

        m = self.model
        values = {
            "campaigns_completed": m.campaigns_completed + 1,
            # Evaluated against the pre-update row, so the old count is the weight
            "average_response_days": case(
                (
                    or_(m.campaigns_completed <= 0, m.average_response_days.is_(None)),
                    response_days,
                ),
                else_=(m.average_response_days * m.campaigns_completed + response_days)
                / (m.campaigns_completed + 1),
            ),
            "last_campaign_completed_at": completed_at,
        }
        if late:
            values["campaigns_missed_deadline"] = m.campaigns_missed_deadline + 1

        db.execute(
            update(m)
            .where(m.id == profile.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self._refresh_flag(db, profile.id)

    def record_missed_deadline(self, db: Session, *, org_id: str, employee_id: str) -> None:
        profile = self.get_or_create(db, org_id=org_id, employee_id=employee_id)
        db.execute(
            update(self.model)
            .where(self.model.id == profile.id)
            .values(campaigns_missed_deadline=self.model.campaigns_missed_deadline + 1)
            .execution_options(synchronize_session=False)
        )
        self._refresh_flag(db, profile.id)

    def get_repeat_non_responders(
        self, db: Session, *, org_id: str, limit: int = 100
    ) -> List[ComplianceProfile]:
        return (
            db.query(self.model)
            .filter(
                self.model.organization_id == org_id,
                self.model.is_repeat_non_responder.is_(True),
            )
            .order_by(self.model.campaigns_missed_deadline.desc())
            .limit(limit)
            .all()
        )

    def get_statistics(self, db: Session, *, org_id: str) -> dict:
        m = self.model
        total, flagged, avg_days, assigned, completed = (
            db.query(
                func.count(m.id),
                func.sum(case((m.is_repeat_non_responder.is_(True), 1), else_=0)),
                func.avg(m.average_response_days),
                func.sum(m.campaigns_assigned),
                func.sum(m.campaigns_completed),
            )
            .filter(m.organization_id == org_id)
            .one()
        )
        assigned = assigned or 0
        return {
            "total_employees": total or 0,
            "repeat_non_responders": int(flagged or 0),
            "average_response_days": round(float(avg_days or 0.0), 2),
            "average_completion_rate": round((completed or 0) / assigned * 100, 1) if assigned else 0.0,
        }

    def reset_profile(self, db: Session, *, org_id: str, employee_id: str) -> Optional[ComplianceProfile]:
        """Administrative reset; the only way counters ever go down."""
        profile = self.get_by_employee(db, org_id=org_id, employee_id=employee_id)
        if profile is None:
            return None
        profile.campaigns_assigned = 0
        profile.campaigns_completed = 0
        profile.campaigns_missed_deadline = 0
        profile.average_response_days = None
        profile.is_repeat_non_responder = False
        profile.last_campaign_completed_at = None
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info(f"Compliance profile reset for employee {employee_id} in org {org_id}")
        return profile


compliance_profile = CRUDComplianceProfile(ComplianceProfile)
