from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from campaign_rollout.crud import blackout_date as crud_blackout
from campaign_rollout.models.org_blackout_date import OrgBlackoutDate
from campaign_rollout.schemas.blackout import BlackoutDateCreate, RecurringPattern
from tests.utils.campaign import ORG_ID


def create_blackout(
    db: Session,
    start_date: date,
    end_date: date,
    org_id: str = ORG_ID,
    pattern: Optional[RecurringPattern] = None,
    locations: Optional[List[str]] = None,
) -> OrgBlackoutDate:
    blackout_in = BlackoutDateCreate(
        name="Freeze",
        start_date=start_date,
        end_date=end_date,
        is_recurring=pattern is not None,
        recurring_pattern=pattern,
        affects_locations=locations or [],
    )
    return crud_blackout.create_with_organization(db, obj_in=blackout_in, org_id=org_id)


def window(start_date: date, end_date: date, pattern: Optional[str] = None, locations=None):
    """Unsaved window record for the pure matching functions."""
    return OrgBlackoutDate(
        id="blk_test",
        organization_id=ORG_ID,
        name="Freeze",
        start_date=start_date,
        end_date=end_date,
        is_recurring=pattern is not None,
        recurring_pattern=pattern,
        affects_locations=locations or [],
        is_active=True,
    )
