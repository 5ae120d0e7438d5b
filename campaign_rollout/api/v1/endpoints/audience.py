# campaign_rollout/api/v1/endpoints/audience.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from campaign_rollout.api import deps
from campaign_rollout.db.session import get_db
from campaign_rollout.schemas.targeting import AudiencePreview, TargetingCriteria
from campaign_rollout.schemas.token import TokenPayload
from campaign_rollout.services.audience import audience_evaluator

router = APIRouter(tags=["Audience"])


@router.post("/organizations/{orgId}/audience/preview", response_model=AudiencePreview)
def preview_audience(
    orgId: str,
    criteria: TargetingCriteria,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Resolves targeting criteria to a paged recipient sample and a readable summary."""
    deps.ensure_org_access(current_user, orgId)
    return audience_evaluator.preview(db, criteria, orgId, page=page, page_size=page_size)
