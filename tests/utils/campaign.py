from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.employee import Employee
from campaign_rollout.schemas.campaign import CampaignCreate, RolloutConfig, RolloutStrategy

ORG_ID = "org_abc"


def create_employees(
    db: Session,
    count: int,
    org_id: str = ORG_ID,
    prefix: str = "emp",
    **fields,
) -> List[Employee]:
    """Creates `count` active employees named Employee 0..n-1."""
    employees = []
    for i in range(count):
        employee = Employee(
            id=f"{prefix}_{i:03d}",
            organization_id=org_id,
            first_name="Employee",
            last_name=str(i),
            email=f"{prefix}{i}@example.com",
            job_title=fields.get("job_title", "Analyst"),
            department=fields.get("department", "Finance"),
            department_id=fields.get("department_id", "dept_fin"),
            location=fields.get("location", "London"),
            location_id=fields.get("location_id", "loc_lon"),
            manager_id=fields.get("manager_id"),
            manager_name=fields.get("manager_name"),
            employment_status=fields.get("employment_status", "ACTIVE"),
        )
        db.add(employee)
        employees.append(employee)
    db.commit()
    return employees


def create_campaign(
    db: Session,
    org_id: str = ORG_ID,
    due_date: Optional[date] = None,
    strategy: RolloutStrategy = RolloutStrategy.IMMEDIATE,
    rollout_config: Optional[RolloutConfig] = None,
    **fields,
) -> Campaign:
    campaign_in = CampaignCreate(
        name=fields.pop("name", "Code of Conduct Attestation"),
        due_date=due_date or date.today() + timedelta(days=30),
        rollout_strategy=strategy,
        rollout_config=rollout_config,
        **fields,
    )
    return crud_campaign.create_with_organization(
        db, obj_in=campaign_in, org_id=org_id, user_id="user_123"
    )
