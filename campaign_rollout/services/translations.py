# campaign_rollout/services/translations.py
"""
Translation staleness.

A translation is a child campaign linked through ``parent_campaign_id``. It
records the parent version it was written against in ``parent_version``;
every content edit bumps the parent's ``version``, so a translation whose
``parent_version`` is behind needs review.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from campaign_rollout.core.exceptions import CampaignValidationError, NotFoundError
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.schemas.campaign import StaleTranslations, TranslationStatus

logger = logging.getLogger(__name__)


def is_stale(translation: Campaign, parent: Campaign) -> bool:
    return (translation.parent_version or 0) < parent.version


class TranslationTracker:
    def _get_campaign(self, db: Session, campaign_id: str, org_id: str) -> Campaign:
        campaign = crud_campaign.get_for_org(db, id=campaign_id, org_id=org_id)
        if not campaign:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    def get_translation_status(
        self, db: Session, *, campaign_id: str, org_id: str
    ) -> List[TranslationStatus]:
        """Every translation of ``campaign_id`` with its stale flag."""
        parent = self._get_campaign(db, campaign_id, org_id)
        return [
            TranslationStatus(
                campaign_id=t.id,
                language=t.language,
                name=t.name,
                status=t.status,
                based_on_version=t.parent_version or 1,
                current_parent_version=parent.version,
                is_stale=is_stale(t, parent),
            )
            for t in crud_campaign.get_translations(db, parent_id=parent.id)
        ]

    def get_stale_translations(self, db: Session, *, org_id: str) -> List[StaleTranslations]:
        """Parent campaigns of ``org_id`` with at least one stale translation."""
        grouped: dict[str, StaleTranslations] = {}
        for translation, parent in crud_campaign.get_stale_translations(db, org_id=org_id):
            entry = grouped.get(parent.id)
            if entry is None:
                entry = grouped[parent.id] = StaleTranslations(
                    campaign_id=parent.id,
                    name=parent.name,
                    current_version=parent.version,
                    stale_languages=[],
                )
            entry.stale_languages.append(translation.language)
        return list(grouped.values())

    def mark_as_updated(self, db: Session, *, translation_id: str, org_id: str) -> Campaign:
        """Record that a translation has been reviewed against its parent's current version."""
        translation = self._get_campaign(db, translation_id, org_id)
        if not translation.parent_campaign_id:
            raise CampaignValidationError(
                "Campaign is not a translation", details={"campaign_id": translation_id}
            )
        parent = self._get_campaign(db, translation.parent_campaign_id, org_id)

        translation.parent_version = parent.version
        db.add(translation)
        db.commit()
        db.refresh(translation)
        logger.info(f"Translation {translation_id} marked current at parent v{parent.version}")
        return translation


translation_tracker = TranslationTracker()
