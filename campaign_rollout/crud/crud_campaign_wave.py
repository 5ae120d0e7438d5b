# campaign_rollout/crud/crud_campaign_wave.py
"""CRUD operations for Campaign Waves."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from .base import CRUDBase
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_wave import CampaignWave
from campaign_rollout.schemas.campaign import CampaignStatus, WaveResponse, WaveStatus

logger = logging.getLogger(__name__)


class CRUDCampaignWave(CRUDBase[CampaignWave, WaveResponse, WaveResponse]):
    def get_by_campaign(self, db: Session, *, campaign_id: str) -> List[CampaignWave]:
        """All waves of a campaign in launch order."""
        return (
            db.query(self.model)
            .filter(self.model.campaign_id == campaign_id)
            .order_by(self.model.wave_number.asc())
            .all()
        )

    def get_by_number(
        self, db: Session, *, campaign_id: str, wave_number: int
    ) -> Optional[CampaignWave]:
        return (
            db.query(self.model)
            .filter(
                self.model.campaign_id == campaign_id,
                self.model.wave_number == wave_number,
            )
            .first()
        )

    def create_plan(
        self, db: Session, *, org_id: str, campaign_id: str, waves: List[dict]
    ) -> List[CampaignWave]:
        """
        Persist a wave plan as PENDING rows in a single commit.

        Each item carries ``wave_number``, ``scheduled_at`` and either
        ``recipient_ids`` or ``audience_percentage``. CANCELLED waves left by
        an earlier, withdrawn schedule are replaced in the same commit, so
        any status change the caller has not committed yet lands with the
        plan or not at all.
        """
        self.delete_cancelled(db, campaign_id=campaign_id)
        db_objs = [
            self.model(
                organization_id=org_id,
                campaign_id=campaign_id,
                wave_number=wave["wave_number"],
                scheduled_at=wave["scheduled_at"],
                audience_percentage=wave.get("audience_percentage"),
                recipient_ids=list(wave.get("recipient_ids") or []),
                status=WaveStatus.PENDING.value,
            )
            for wave in waves
        ]
        db.add_all(db_objs)
        db.commit()
        for db_obj in db_objs:
            db.refresh(db_obj)
        return db_objs

    def claim(self, db: Session, *, wave_id: str, launched_at: datetime) -> bool:
        """
        Flip a wave PENDING -> LAUNCHED without committing.

        Zero rows updated means another worker already launched it, or it
        was cancelled.
        """
        result = db.execute(
            update(self.model)
            .where(
                self.model.id == wave_id,
                self.model.status == WaveStatus.PENDING.value,
            )
            .values(status=WaveStatus.LAUNCHED.value, launched_at=launched_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def cancel_pending(self, db: Session, *, campaign_id: str) -> int:
        """Cancel every PENDING wave; LAUNCHED waves are left alone."""
        result = db.execute(
            update(self.model)
            .where(
                self.model.campaign_id == campaign_id,
                self.model.status == WaveStatus.PENDING.value,
            )
            .values(status=WaveStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount

    def delete_cancelled(self, db: Session, *, campaign_id: str) -> int:
        """Drop CANCELLED waves without committing."""
        deleted = (
            db.query(self.model)
            .filter(
                self.model.campaign_id == campaign_id,
                self.model.status == WaveStatus.CANCELLED.value,
            )
            .delete(synchronize_session="fetch")
        )
        if deleted:
            logger.info(f"Removed {deleted} cancelled waves of campaign {campaign_id}")
        return deleted

    def get_due_pending(self, db: Session, *, now: datetime) -> List[CampaignWave]:
        """PENDING waves past their fire time whose campaign is SCHEDULED or ACTIVE."""
        return (
            db.query(self.model)
            .join(Campaign, Campaign.id == self.model.campaign_id)
            .filter(
                self.model.status == WaveStatus.PENDING.value,
                self.model.scheduled_at <= now,
                Campaign.status.in_([CampaignStatus.SCHEDULED.value, CampaignStatus.ACTIVE.value]),
            )
            .order_by(self.model.campaign_id.asc(), self.model.wave_number.asc())
            .all()
        )

    def count_pending(self, db: Session, *, campaign_id: str) -> int:
        return (
            db.query(self.model)
            .filter(
                self.model.campaign_id == campaign_id,
                self.model.status == WaveStatus.PENDING.value,
            )
            .count()
        )


campaign_wave = CRUDCampaignWave(CampaignWave)
