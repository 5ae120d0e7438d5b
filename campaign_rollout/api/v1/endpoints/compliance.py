# campaign_rollout/api/v1/endpoints/compliance.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from campaign_rollout.api import deps
from campaign_rollout.db.session import get_db
from campaign_rollout.schemas.compliance import ComplianceProfileStats, ComplianceStatistics
from campaign_rollout.schemas.token import TokenPayload
from campaign_rollout.services.compliance import compliance_tracker

router = APIRouter(tags=["Compliance"])


@router.get(
    "/organizations/{orgId}/compliance/non-responders",
    response_model=List[ComplianceProfileStats],
)
def list_repeat_non_responders(
    orgId: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Employees flagged as repeat non-responders, most missed deadlines first."""
    deps.ensure_org_access(current_user, orgId)
    return compliance_tracker.get_repeat_non_responders(db, org_id=orgId, limit=limit)


@router.get("/organizations/{orgId}/compliance/statistics", response_model=ComplianceStatistics)
def get_compliance_statistics(
    orgId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    return compliance_tracker.get_compliance_statistics(db, org_id=orgId)


@router.get(
    "/organizations/{orgId}/compliance/employees/{employeeId}",
    response_model=ComplianceProfileStats,
)
def get_compliance_profile(
    orgId: str,
    employeeId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    return compliance_tracker.get_profile(db, org_id=orgId, employee_id=employeeId)


@router.post(
    "/organizations/{orgId}/compliance/employees/{employeeId}/reset",
    response_model=ComplianceProfileStats,
)
def reset_compliance_profile(
    orgId: str,
    employeeId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    return compliance_tracker.reset_profile(
        db, org_id=orgId, employee_id=employeeId, user_id=current_user.sub
    )
