# campaign_rollout/services/blackout_calendar.py
"""
Blackout calendar.

Answers two questions for an organization (optionally scoped to a location):
is a given day excluded, and what is the first day on or after it that is
not. Matching is done by pure functions over window records so the planner
can evaluate many dates against one loaded window set.

Recurring windows come in three closed shapes:
- YEARLY compares (month, day)
- QUARTERLY compares (month offset within the quarter, day)
- MONTHLY compares day of month

A window whose start key is after its end key wraps around its period
(e.g. Dec 20 - Jan 10) and is matched by disjunction.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from campaign_rollout.core.config import settings
from campaign_rollout.core.exceptions import CampaignValidationError, NotFoundError
from campaign_rollout.crud import blackout_date as crud_blackout
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.crud import campaign_assignment as crud_assignment
from campaign_rollout.models.org_blackout_date import OrgBlackoutDate
from campaign_rollout.schemas.blackout import RecurringPattern

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def _in_cyclic_range(value: tuple, start: tuple, end: tuple) -> bool:
    if start <= end:
        return start <= value <= end
    # Wraps the period boundary
    return value >= start or value <= end


def _yearly_key(day: date) -> tuple:
    return (day.month, day.day)


def _quarterly_key(day: date) -> tuple:
    return ((day.month - 1) % 3, day.day)


def _monthly_key(day: date) -> tuple:
    return (day.day,)


def matches_yearly(day: date, start: date, end: date) -> bool:
    return _in_cyclic_range(_yearly_key(day), _yearly_key(start), _yearly_key(end))


def matches_quarterly(day: date, start: date, end: date) -> bool:
    return _in_cyclic_range(_quarterly_key(day), _quarterly_key(start), _quarterly_key(end))


def matches_monthly(day: date, start: date, end: date) -> bool:
    return _in_cyclic_range(_monthly_key(day), _monthly_key(start), _monthly_key(end))


RECURRENCE_MATCHERS: Dict[RecurringPattern, Callable[[date, date, date], bool]] = {
    RecurringPattern.YEARLY: matches_yearly,
    RecurringPattern.QUARTERLY: matches_quarterly,
    RecurringPattern.MONTHLY: matches_monthly,
}


def applies_to_location(window, location_id: Optional[str]) -> bool:
    affects = window.affects_locations or []
    if not affects or location_id is None:
        return True
    return location_id in affects


def date_in_window(day: date, window, location_id: Optional[str] = None) -> bool:
    """True if ``day`` is excluded by ``window``."""
    if not applies_to_location(window, location_id):
        return False

    if not window.is_recurring:
        return window.start_date <= day <= window.end_date

    try:
        matcher = RECURRENCE_MATCHERS[RecurringPattern(window.recurring_pattern)]
    except ValueError:
        logger.warning(
            f"Blackout window {getattr(window, 'id', None)} has unknown "
            f"recurring pattern {window.recurring_pattern!r}; ignoring it"
        )
        return False
    return matcher(day, window.start_date, window.end_date)


def occurrence_end(day: date, window) -> date:
    """Last excluded day of the occurrence of ``window`` that contains ``day``."""
    if not window.is_recurring:
        return window.end_date

    # A recurring occurrence never spans more than a year
    end = day
    for _ in range(366):
        following = end + ONE_DAY
        if not date_in_window(following, window):
            break
        end = following
    return end


def find_blocking_window(
    day: date, windows: Iterable, location_id: Optional[str] = None
):
    for window in windows:
        if date_in_window(day, window, location_id):
            return window
    return None


def find_next_available(
    day: date,
    windows: Sequence,
    location_id: Optional[str] = None,
    max_iterations: Optional[int] = None,
) -> date:
    """
    Earliest day on or after ``day`` that no window excludes.

    Each iteration jumps past the end of the window blocking the current
    day and re-checks every window. If the bound is exhausted the original
    day is returned unchanged.
    """
    max_iterations = max_iterations or settings.BLACKOUT_MAX_ITERATIONS
    current = day
    for _ in range(max_iterations):
        window = find_blocking_window(current, windows, location_id)
        if window is None:
            return current
        current = occurrence_end(current, window) + ONE_DAY

    logger.warning(
        f"Could not find an available date within {max_iterations} blackout "
        f"skips starting from {day}; keeping the original date"
    )
    return day


class BlackoutCalendar:
    """Store-backed wrapper around the pure matching functions."""

    def __init__(self, max_iterations: Optional[int] = None):
        self.max_iterations = max_iterations or settings.BLACKOUT_MAX_ITERATIONS

    def get_windows(self, db: Session, org_id: str) -> list[OrgBlackoutDate]:
        return crud_blackout.get_active_windows(db, org_id=org_id)

    def is_blackout(
        self, db: Session, day: date, org_id: str, location_id: Optional[str] = None
    ) -> bool:
        windows = self.get_windows(db, org_id)
        return find_blocking_window(day, windows, location_id) is not None

    def next_available(
        self, db: Session, day: date, org_id: str, location_id: Optional[str] = None
    ) -> date:
        windows = self.get_windows(db, org_id)
        return find_next_available(day, windows, location_id, self.max_iterations)

    def extend_deadlines(
        self, db: Session, *, campaign_id: str, org_id: str, days: int
    ):
        """Push the campaign due date and every assignment due date by ``days``."""
        if days <= 0:
            raise CampaignValidationError(
                "Deadline extension must be a positive number of days",
                details={"days": days},
            )
        campaign = crud_campaign.get_for_org(db, id=campaign_id, org_id=org_id)
        if not campaign:
            raise NotFoundError("Campaign", campaign_id)

        campaign.due_date = campaign.due_date + timedelta(days=days)
        db.add(campaign)
        count = crud_assignment.extend_due_dates(db, campaign_id=campaign_id, days=days)
        db.commit()
        db.refresh(campaign)
        logger.info(
            f"Extended deadlines of campaign {campaign_id} by {days} days "
            f"({count} assignments)"
        )
        return campaign


blackout_calendar = BlackoutCalendar()
