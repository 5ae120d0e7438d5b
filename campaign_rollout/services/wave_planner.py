# campaign_rollout/services/wave_planner.py
"""
Wave planner.

Splits an audience into time-ordered waves and snaps each wave's date past
blackout windows. The plan is persisted (all waves PENDING, one commit)
before the scheduler enqueues anything, so a crash between the two leaves a
recoverable plan behind.
"""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from campaign_rollout.crud import campaign_wave as crud_wave
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_wave import CampaignWave
from campaign_rollout.schemas.campaign import RolloutConfig
from campaign_rollout.services.blackout_calendar import (
    BlackoutCalendar,
    blackout_calendar,
    find_next_available,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def wave_sizes(total: int, config: RolloutConfig) -> List[int]:
    """
    Recipients per wave for an audience of ``total``.

    Every wave but the last gets its configured share (capped by what is
    left); the last wave absorbs the remainder.
    """
    sizes = []
    remaining = total
    for index, value in enumerate(config.values):
        if index == len(config.values) - 1:
            sizes.append(remaining)
            break
        if config.type == "percentage":
            size = round_half_up(value / 100 * total)
        else:
            size = int(value)
        size = min(size, remaining)
        sizes.append(size)
        remaining -= size
    return sizes


def partition(
    recipient_ids: Sequence[str],
    config: RolloutConfig,
    rng: Optional[random.Random] = None,
) -> List[List[str]]:
    """Shuffle once, then cut the audience into ``len(config.values)`` waves."""
    rng = rng or random.Random()
    shuffled = list(recipient_ids)
    rng.shuffle(shuffled)

    waves = []
    offset = 0
    for size in wave_sizes(len(shuffled), config):
        waves.append(shuffled[offset:offset + size])
        offset += size
    return waves


def nominal_wave_times(start_at: datetime, config: RolloutConfig) -> List[datetime]:
    return [
        start_at + timedelta(days=index * config.wave_day_gap)
        for index in range(config.wave_count)
    ]


class WavePlanner:
    def __init__(self, calendar: Optional[BlackoutCalendar] = None):
        self.calendar = calendar or blackout_calendar

    def effective_times(
        self, db: Session, org_id: str, start_at: datetime, config: RolloutConfig
    ) -> List[datetime]:
        """Nominal wave times with their dates moved past blackouts, time of day kept."""
        windows = self.calendar.get_windows(db, org_id)
        effective = []
        for nominal in nominal_wave_times(start_at, config):
            day = find_next_available(
                nominal.date(), windows, max_iterations=self.calendar.max_iterations
            )
            effective.append(datetime.combine(day, nominal.timetz()))
        return effective

    def plan_waves(
        self,
        db: Session,
        *,
        campaign: Campaign,
        config: RolloutConfig,
        start_at: datetime,
        recipient_ids: Optional[Sequence[str]] = None,
        rng: Optional[random.Random] = None,
    ) -> List[CampaignWave]:
        """
        Persist the wave plan for ``campaign``.

        With ``recipient_ids`` each wave carries its explicit recipients.
        Without them (percentage rollouts) each wave only records its share
        and the launch executor samples the audience at fire time.
        """
        times = self.effective_times(db, campaign.organization_id, start_at, config)
        if recipient_ids is not None:
            groups = partition(recipient_ids, config, rng)
        else:
            groups = [[] for _ in config.values]

        plan = []
        for index, (scheduled_at, group) in enumerate(zip(times, groups)):
            plan.append(
                {
                    "wave_number": index + 1,
                    "scheduled_at": scheduled_at,
                    "audience_percentage": (
                        config.values[index] if config.type == "percentage" else None
                    ),
                    "recipient_ids": group,
                }
            )

        waves = crud_wave.create_plan(
            db,
            org_id=campaign.organization_id,
            campaign_id=campaign.id,
            waves=plan,
        )
        logger.info(
            f"Planned {len(waves)} waves for campaign {campaign.id} "
            f"({config.type}, gap {config.wave_day_gap}d)"
        )
        return waves


wave_planner = WavePlanner()
