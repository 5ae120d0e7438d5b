import pytest

from campaign_rollout.core.exceptions import NotFoundError
from campaign_rollout.models.employee import CampaignSegment, Employee
from campaign_rollout.schemas.targeting import TargetingCriteria
from campaign_rollout.services.audience import AudienceEvaluator, build_snapshot
from tests.utils.campaign import ORG_ID, create_campaign, create_employees

evaluator = AudienceEvaluator()


@pytest.fixture
def directory(db_session):
    """Finance in London, engineering in New York, plus a leaver."""
    create_employees(db_session, 3, prefix="fin")
    create_employees(
        db_session,
        2,
        prefix="eng",
        department="Engineering",
        department_id="dept_eng",
        location="New York",
        location_id="loc_nyc",
        job_title="Engineer",
    )
    create_employees(db_session, 1, prefix="gone", employment_status="TERMINATED")
    create_employees(db_session, 2, org_id="org_other", prefix="other")
    return db_session


def test_all_mode_returns_active_employees_of_the_org(directory):
    ids = evaluator.resolve(directory, TargetingCriteria(mode="ALL"), ORG_ID)
    assert ids == ["eng_000", "eng_001", "fin_000", "fin_001", "fin_002"]


def test_simple_mode_filters_are_combined(directory):
    by_department = TargetingCriteria(mode="SIMPLE", departments=["dept_eng"])
    assert evaluator.resolve(directory, by_department, ORG_ID) == ["eng_000", "eng_001"]

    no_match = TargetingCriteria(mode="SIMPLE", departments=["dept_eng"], locations=["loc_lon"])
    assert evaluator.resolve(directory, no_match, ORG_ID) == []

    by_title = TargetingCriteria(mode="SIMPLE", job_titles=["Analyst"])
    assert evaluator.resolve(directory, by_title, ORG_ID) == ["fin_000", "fin_001", "fin_002"]


def test_manual_mode_keeps_order_and_drops_duplicates(directory):
    criteria = TargetingCriteria(mode="MANUAL", employee_ids=["fin_002", "eng_000", "fin_002"])
    assert evaluator.resolve(directory, criteria, ORG_ID) == ["fin_002", "eng_000"]


def test_include_subordinates_walks_the_hierarchy(db_session):
    create_employees(db_session, 1, prefix="vp", department_id="dept_exec")
    create_employees(db_session, 2, prefix="mgr", department_id="dept_ops", manager_id="vp_000")
    create_employees(db_session, 2, prefix="ic", department_id="dept_ops", manager_id="mgr_000")

    criteria = TargetingCriteria(mode="SIMPLE", departments=["dept_exec"], include_subordinates=True)

    assert evaluator.resolve(db_session, criteria, ORG_ID) == [
        "ic_000", "ic_001", "mgr_000", "mgr_001", "vp_000",
    ]


def test_segment_mode_expands_saved_criteria(directory):
    directory.add(
        CampaignSegment(
            id="seg_eng", organization_id=ORG_ID, name="Engineers",
            criteria={"departments": ["dept_eng"]},
        )
    )
    directory.commit()

    criteria = TargetingCriteria(mode="SEGMENT", segment_id="seg_eng")

    assert evaluator.resolve(directory, criteria, ORG_ID) == ["eng_000", "eng_001"]
    assert evaluator.describe(directory, criteria, ORG_ID) == "Segment 'Engineers': Engineering department"


def test_missing_segment(directory):
    with pytest.raises(NotFoundError):
        evaluator.resolve(directory, TargetingCriteria(mode="SEGMENT", segment_id="seg_nope"), ORG_ID)


def test_describe(directory):
    assert evaluator.describe(directory, TargetingCriteria(mode="ALL"), ORG_ID) == "All active employees"
    assert (
        evaluator.describe(directory, TargetingCriteria(mode="MANUAL", employee_ids=["a", "b"]), ORG_ID)
        == "2 selected employees"
    )
    criteria = TargetingCriteria(
        mode="SIMPLE", departments=["dept_fin", "dept_eng"], locations=["loc_nyc"]
    )
    assert (
        evaluator.describe(directory, criteria, ORG_ID)
        == "Finance, Engineering departments, New York location"
    )


def test_preview_pages_through_the_audience(directory):
    preview = evaluator.preview(directory, TargetingCriteria(mode="ALL"), ORG_ID, page=2, page_size=2)

    assert preview.total == 5
    assert preview.total_pages == 3
    assert preview.page == 2
    assert len(preview.sample) == 2


def test_criteria_for_campaign_uses_stored_targeting(db_session):
    campaign = create_campaign(
        db_session,
        audience_mode="SIMPLE",
        targeting_criteria={"departments": ["dept_eng"], "include_subordinates": True},
    )

    criteria = evaluator.criteria_for_campaign(campaign)

    assert criteria.mode == "SIMPLE"
    assert criteria.departments == ["dept_eng"]
    assert criteria.include_subordinates is True


def test_snapshot_prefers_manager_relationship(db_session):
    create_employees(db_session, 1, prefix="boss")
    create_employees(db_session, 1, prefix="staff", manager_id="boss_000", manager_name="Stale Name")

    staff = db_session.get(Employee, "staff_000")
    snapshot = build_snapshot(staff)

    assert snapshot["manager"] == "Employee 0"
    assert snapshot["email"] == "staff0@example.com"
    assert snapshot["department"] == "Finance"


def test_snapshot_recipients_skips_unknown_ids(directory):
    snapshots = evaluator.snapshot_recipients(directory, ["fin_001", "ghost", "eng_000"], ORG_ID)
    assert list(snapshots) == ["fin_001", "eng_000"]
