# campaign_rollout/crud/crud_blackout.py
"""
CRUD operations for organization blackout windows.

This is the only write path for blackout windows; the scheduling path reads
them and never changes them.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from .base import CRUDBase
from campaign_rollout.core.exceptions import CampaignValidationError
from campaign_rollout.models.org_blackout_date import OrgBlackoutDate
from campaign_rollout.schemas.blackout import BlackoutDateCreate, BlackoutDateUpdate

logger = logging.getLogger(__name__)


def _validate_range(start_date, end_date) -> None:
    if start_date >= end_date:
        raise CampaignValidationError(
            "Blackout start_date must be before end_date",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )


class CRUDBlackoutDate(CRUDBase[OrgBlackoutDate, BlackoutDateCreate, BlackoutDateUpdate]):
    def create_with_organization(
        self,
        db: Session,
        *,
        obj_in: BlackoutDateCreate,
        org_id: str,
        user_id: Optional[str] = None,
    ) -> OrgBlackoutDate:
        _validate_range(obj_in.start_date, obj_in.end_date)

        obj_data = obj_in.model_dump()
        if obj_in.recurring_pattern is not None:
            obj_data["recurring_pattern"] = obj_in.recurring_pattern.value

        db_obj = self.model(
            **obj_data,
            organization_id=org_id,
            created_by_id=user_id,
            is_active=True,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        logger.info(
            f"Blackout window {db_obj.id} created for org {org_id}: "
            f"{db_obj.start_date}..{db_obj.end_date} recurring={db_obj.recurring_pattern}"
        )
        return db_obj

    def update_window(
        self,
        db: Session,
        *,
        db_obj: OrgBlackoutDate,
        obj_in: BlackoutDateUpdate,
    ) -> OrgBlackoutDate:
        update_data = obj_in.model_dump(exclude_unset=True)
        # Validate the range the row will end up with, not just the patch
        _validate_range(
            update_data.get("start_date", db_obj.start_date),
            update_data.get("end_date", db_obj.end_date),
        )
        if update_data.get("recurring_pattern") is not None:
            update_data["recurring_pattern"] = update_data["recurring_pattern"].value
        return self.update(db, db_obj=db_obj, obj_in=update_data)

    def soft_delete(self, db: Session, *, db_obj: OrgBlackoutDate) -> OrgBlackoutDate:
        db_obj.is_active = False
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_multi_by_org(
        self,
        db: Session,
        *,
        org_id: str,
        skip: int = 0,
        limit: int = 100,
        include_inactive: bool = False,
    ) -> List[OrgBlackoutDate]:
        query = db.query(self.model).filter(self.model.organization_id == org_id)
        if not include_inactive:
            query = query.filter(self.model.is_active.is_(True))
        return query.order_by(self.model.start_date.asc()).offset(skip).limit(limit).all()

    def get_active_windows(self, db: Session, *, org_id: str) -> List[OrgBlackoutDate]:
        return (
            db.query(self.model)
            .filter(
                self.model.organization_id == org_id,
                self.model.is_active.is_(True),
            )
            .all()
        )


blackout_date = CRUDBlackoutDate(OrgBlackoutDate)
