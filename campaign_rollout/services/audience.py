# campaign_rollout/services/audience.py
"""
Audience targeting evaluator and directory lookup.

Resolves a campaign's targeting into concrete employee IDs, builds previews
and human-readable descriptions, and takes the point-in-time recipient
snapshots stored on assignments.
"""

import logging
import math
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from campaign_rollout.core.exceptions import CampaignValidationError, NotFoundError
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.employee import CampaignSegment, Employee
from campaign_rollout.schemas.targeting import (
    AudiencePreview,
    RecipientPreview,
    TargetingCriteria,
    TargetingMode,
)

logger = logging.getLogger(__name__)

ACTIVE_EMPLOYMENT_STATUS = "ACTIVE"
MAX_HIERARCHY_DEPTH = 10


def build_snapshot(employee: Employee) -> dict:
    """
    Freeze the recipient's directory attributes as of now.

    The manager relationship wins over the denormalized ``manager_name``.
    """
    manager = None
    if employee.manager is not None:
        manager = f"{employee.manager.first_name} {employee.manager.last_name}"
    elif employee.manager_name:
        manager = employee.manager_name

    return {
        "first_name": employee.first_name,
        "last_name": employee.last_name,
        "email": employee.email,
        "job_title": employee.job_title,
        "department": employee.department,
        "location": employee.location,
        "manager": manager,
    }


def _describe_names(names: List[str], singular: str, plural: str) -> str:
    if len(names) == 1:
        return f"{names[0]} {singular}"
    if len(names) <= 3:
        return f"{', '.join(names)} {plural}"
    return f"{len(names)} selected {plural}"


class AudienceEvaluator:
    def criteria_for_campaign(self, campaign: Campaign) -> TargetingCriteria:
        """Targeting stored on the campaign row as a criteria document."""
        stored = dict(campaign.targeting_criteria or {})
        mode = campaign.audience_mode or TargetingMode.ALL.value
        try:
            return TargetingCriteria(
                mode=mode,
                employee_ids=campaign.manual_ids or stored.get("employee_ids", []),
                segment_id=campaign.segment_id,
                departments=stored.get("departments", []),
                locations=stored.get("locations", []),
                job_titles=stored.get("job_titles", []),
                include_subordinates=stored.get("include_subordinates", False),
            )
        except ValueError as e:
            raise CampaignValidationError(
                f"Campaign {campaign.id} has invalid targeting: {e}",
                details={"campaign_id": campaign.id},
            )

    def _active_query(self, db: Session, org_id: str):
        return db.query(Employee).filter(
            Employee.organization_id == org_id,
            Employee.employment_status == ACTIVE_EMPLOYMENT_STATUS,
        )

    def _load_segment(self, db: Session, segment_id: str, org_id: str) -> CampaignSegment:
        segment = (
            db.query(CampaignSegment)
            .filter(
                CampaignSegment.id == segment_id,
                CampaignSegment.organization_id == org_id,
            )
            .first()
        )
        if not segment:
            raise NotFoundError("Segment", segment_id)
        return segment

    def _as_filter_criteria(
        self, db: Session, criteria: TargetingCriteria, org_id: str
    ) -> TargetingCriteria:
        """Saved segments are stored filter sets; expand them in place."""
        if criteria.mode != TargetingMode.SEGMENT:
            return criteria
        segment = self._load_segment(db, criteria.segment_id, org_id)
        saved = dict(segment.criteria or {})
        saved["mode"] = TargetingMode.SIMPLE
        return TargetingCriteria(**saved)

    def get_subordinate_ids(
        self,
        db: Session,
        manager_ids: Iterable[str],
        org_id: str,
        max_depth: int = MAX_HIERARCHY_DEPTH,
    ) -> set[str]:
        """Breadth-first walk down ``manager_id`` links, at most ``max_depth`` levels."""
        found: set[str] = set()
        level = list(set(manager_ids))
        for _ in range(max_depth):
            if not level:
                break
            rows = (
                self._active_query(db, org_id)
                .with_entities(Employee.id)
                .filter(Employee.manager_id.in_(level))
                .all()
            )
            level = [row[0] for row in rows if row[0] not in found]
            found.update(level)
        return found

    def resolve(self, db: Session, criteria: TargetingCriteria, org_id: str) -> List[str]:
        """Concrete recipient IDs for ``criteria``, in a stable order."""
        if criteria.mode == TargetingMode.MANUAL:
            # Explicit selections are taken as given, de-duplicated
            return list(dict.fromkeys(criteria.employee_ids))

        criteria = self._as_filter_criteria(db, criteria, org_id)
        query = self._active_query(db, org_id).with_entities(Employee.id)
        if criteria.mode != TargetingMode.ALL:
            if criteria.departments:
                query = query.filter(Employee.department_id.in_(criteria.departments))
            if criteria.locations:
                query = query.filter(Employee.location_id.in_(criteria.locations))
            if criteria.job_titles:
                query = query.filter(Employee.job_title.in_(criteria.job_titles))

        ids = {row[0] for row in query.all()}
        if criteria.mode != TargetingMode.ALL and criteria.include_subordinates and ids:
            ids |= self.get_subordinate_ids(db, ids, org_id)
        return sorted(ids)

    def preview(
        self,
        db: Session,
        criteria: TargetingCriteria,
        org_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> AudiencePreview:
        ids = self.resolve(db, criteria, org_id)
        total = len(ids)
        start = (page - 1) * page_size
        employees = (
            self._active_query(db, org_id)
            .filter(Employee.id.in_(ids))
            .order_by(Employee.last_name.asc(), Employee.first_name.asc())
            .offset(start)
            .limit(page_size)
            .all()
            if ids
            else []
        )
        return AudiencePreview(
            total=total,
            sample=[
                RecipientPreview(
                    id=emp.id,
                    name=f"{emp.first_name} {emp.last_name}",
                    email=emp.email,
                    department=emp.department,
                    location=emp.location,
                    job_title=emp.job_title,
                )
                for emp in employees
            ],
            description=self.describe(db, criteria, org_id),
            page=page,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    def _display_names(self, db: Session, column, name_column, ids: List[str], org_id: str) -> List[str]:
        rows = (
            db.query(column, name_column)
            .filter(Employee.organization_id == org_id, column.in_(ids))
            .distinct()
            .all()
        )
        names = {row[0]: row[1] for row in rows if row[1]}
        return [names.get(i, i) for i in ids]

    def describe(self, db: Session, criteria: TargetingCriteria, org_id: str) -> str:
        if criteria.mode == TargetingMode.ALL:
            return "All active employees"
        if criteria.mode == TargetingMode.MANUAL:
            count = len(set(criteria.employee_ids))
            return f"{count} selected employee{'s' if count != 1 else ''}"

        prefix = ""
        if criteria.mode == TargetingMode.SEGMENT:
            segment = self._load_segment(db, criteria.segment_id, org_id)
            prefix = f"Segment '{segment.name}'"
            criteria = self._as_filter_criteria(db, criteria, org_id)

        parts = []
        if criteria.departments:
            names = self._display_names(
                db, Employee.department_id, Employee.department, criteria.departments, org_id
            )
            parts.append(_describe_names(names, "department", "departments"))
        if criteria.locations:
            if len(criteria.locations) == 1:
                names = self._display_names(
                    db, Employee.location_id, Employee.location, criteria.locations, org_id
                )
                parts.append(f"{names[0]} location")
            else:
                parts.append(f"{len(criteria.locations)} locations")
        if criteria.job_titles:
            parts.append(_describe_names(criteria.job_titles, "job title", "job titles"))
        if criteria.include_subordinates:
            parts.append("plus all subordinates")

        body = ", ".join(parts) if parts else "All active employees"
        return f"{prefix}: {body}" if prefix else body

    def get_recipients(self, db: Session, ids: List[str], org_id: str) -> List[Employee]:
        """Directory lookup for snapshots; unknown IDs are silently absent."""
        if not ids:
            return []
        return (
            db.query(Employee)
            .options(joinedload(Employee.manager))
            .filter(Employee.organization_id == org_id, Employee.id.in_(ids))
            .all()
        )

    def snapshot_recipients(self, db: Session, ids: List[str], org_id: str) -> dict[str, dict]:
        """Map each known recipient ID to its snapshot, preserving ``ids`` order."""
        employees = {emp.id: emp for emp in self.get_recipients(db, ids, org_id)}
        missing = [i for i in ids if i not in employees]
        if missing:
            logger.warning(
                f"{len(missing)} recipients not found in directory for org {org_id}; skipping them"
            )
        return {i: build_snapshot(employees[i]) for i in ids if i in employees}


audience_evaluator = AudienceEvaluator()
