# campaign_rollout/services/compliance.py
"""Cross-campaign compliance profiles and repeat non-responder reporting."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from campaign_rollout.core.exceptions import NotFoundError
from campaign_rollout.crud import compliance_profile as crud_profile
from campaign_rollout.crud.crud_compliance_profile import is_repeat_non_responder
from campaign_rollout.models.compliance_profile import ComplianceProfile
from campaign_rollout.schemas.compliance import ComplianceStatistics

logger = logging.getLogger(__name__)


class ComplianceTracker:
    """
    Read side and administration of compliance profiles. Counter updates are
    staged through the CRUD layer inside the launch, completion and overdue
    transactions.
    """

    def get_profile(self, db: Session, *, org_id: str, employee_id: str) -> ComplianceProfile:
        profile = crud_profile.get_by_employee(db, org_id=org_id, employee_id=employee_id)
        if not profile:
            raise NotFoundError("ComplianceProfile", employee_id)
        return profile

    def classify(self, profile: ComplianceProfile) -> bool:
        return is_repeat_non_responder(
            profile.campaigns_assigned, profile.campaigns_missed_deadline
        )

    def get_repeat_non_responders(
        self, db: Session, *, org_id: str, limit: int = 100
    ) -> List[ComplianceProfile]:
        return crud_profile.get_repeat_non_responders(db, org_id=org_id, limit=limit)

    def get_compliance_statistics(self, db: Session, *, org_id: str) -> ComplianceStatistics:
        return ComplianceStatistics(**crud_profile.get_statistics(db, org_id=org_id))

    def reset_profile(
        self, db: Session, *, org_id: str, employee_id: str, user_id: Optional[str] = None
    ) -> ComplianceProfile:
        profile = crud_profile.reset_profile(db, org_id=org_id, employee_id=employee_id)
        if not profile:
            raise NotFoundError("ComplianceProfile", employee_id)
        logger.info(f"Compliance profile of {employee_id} reset by {user_id or 'system'}")
        return profile


compliance_tracker = ComplianceTracker()
