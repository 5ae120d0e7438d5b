# campaign_rollout/crud/crud_campaign.py
"""CRUD operations for Campaigns."""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session, aliased

from .base import CRUDBase
from campaign_rollout.core.exceptions import NotFoundError
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_assignment import CampaignAssignment
from campaign_rollout.schemas.campaign import (
    AssignmentStatus,
    CampaignCreate,
    CampaignStatus,
    CampaignUpdate,
    RolloutStrategy,
)

logger = logging.getLogger(__name__)


class CRUDCampaign(CRUDBase[Campaign, CampaignCreate, CampaignUpdate]):
    def create_with_organization(
        self,
        db: Session,
        *,
        obj_in: CampaignCreate,
        org_id: str,
        user_id: Optional[str] = None,
    ) -> Campaign:
        obj_data = obj_in.model_dump(mode="json")
        if obj_in.parent_campaign_id:
            parent = self.get_for_org(db, id=obj_in.parent_campaign_id, org_id=org_id)
            if not parent:
                raise NotFoundError("Campaign", obj_in.parent_campaign_id)
            obj_data["parent_version"] = parent.version
        obj_data["due_date"] = obj_in.due_date
        obj_data["rollout_strategy"] = obj_in.rollout_strategy.value
        if obj_in.rollout_config is not None:
            obj_data["rollout_config"] = obj_in.rollout_config.model_dump(mode="json")

        db_obj = self.model(
            **obj_data,
            organization_id=org_id,
            created_by_id=user_id,
            updated_by_id=user_id,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def transition_status(
        self,
        db: Session,
        *,
        campaign_id: str,
        from_statuses: Iterable[str],
        to_status: str,
        commit: bool = True,
        **values,
    ) -> bool:
        """
        Move a campaign to ``to_status`` only if it is currently in one of
        ``from_statuses``. Returns False when another worker got there first.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == campaign_id,
                self.model.status.in_(list(from_statuses)),
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        if commit:
            db.commit()
        return result.rowcount == 1

    def increment_total_assignments(
        self, db: Session, *, campaign_id: str, count: int
    ) -> None:
        """Add ``count`` to the total; the caller owns the transaction."""
        db.execute(
            update(self.model)
            .where(self.model.id == campaign_id)
            .values(total_assignments=self.model.total_assignments + count)
            .execution_options(synchronize_session=False)
        )

    def recount_assignments(self, db: Session, *, campaign_id: str) -> dict:
        """Recompute the aggregate counters from the assignment rows."""
        rows = (
            db.query(CampaignAssignment.status, func.count(CampaignAssignment.id))
            .filter(CampaignAssignment.campaign_id == campaign_id)
            .group_by(CampaignAssignment.status)
            .all()
        )
        by_status = {status: count for status, count in rows}
        counters = {
            "total_assignments": sum(by_status.values()),
            "completed_assignments": by_status.get(AssignmentStatus.COMPLETED.value, 0),
            "overdue_assignments": by_status.get(AssignmentStatus.OVERDUE.value, 0),
        }
        db.execute(
            update(self.model)
            .where(self.model.id == campaign_id)
            .values(**counters)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return counters

    def get_translations(self, db: Session, *, parent_id: str) -> list[Campaign]:
        return (
            db.query(self.model)
            .filter(self.model.parent_campaign_id == parent_id)
            .order_by(self.model.language.asc())
            .all()
        )

    def get_stale_translations(self, db: Session, *, org_id: str) -> list[tuple[Campaign, Campaign]]:
        """(translation, parent) pairs whose translation lags the parent's version."""
        parent = aliased(Campaign)
        return (
            db.query(self.model, parent)
            .join(parent, parent.id == self.model.parent_campaign_id)
            .filter(
                parent.organization_id == org_id,
                func.coalesce(self.model.parent_version, 0) < parent.version,
            )
            .order_by(parent.created_at.asc(), parent.id.asc(), self.model.language.asc())
            .all()
        )

    def get_active_ids(self, db: Session, *, org_id: Optional[str] = None) -> list[str]:
        query = db.query(self.model.id).filter(self.model.status == "ACTIVE")
        if org_id:
            query = query.filter(self.model.organization_id == org_id)
        return [row[0] for row in query.all()]

    def get_due_scheduled_launches(self, db: Session, *, now: datetime) -> list[Campaign]:
        """SCHEDULED IMMEDIATE campaigns whose launch time has passed."""
        return (
            db.query(self.model)
            .filter(
                self.model.status == CampaignStatus.SCHEDULED.value,
                self.model.rollout_strategy == RolloutStrategy.IMMEDIATE.value,
                self.model.launch_at <= now,
            )
            .order_by(self.model.launch_at.asc())
            .all()
        )

    def mark_launched(
        self,
        db: Session,
        *,
        campaign_id: str,
        launched_at: datetime,
        launched_by_id: Optional[str] = None,
    ) -> None:
        """Record the first launch time; later waves leave it untouched."""
        db.execute(
            update(self.model)
            .where(self.model.id == campaign_id, self.model.launched_at.is_(None))
            .values(launched_at=launched_at, launched_by_id=launched_by_id)
            .execution_options(synchronize_session=False)
        )


campaign = CRUDCampaign(Campaign)
