# campaign_rollout/models/__init__.py
# Import all models so SQLAlchemy can resolve string relationships.

from campaign_rollout.db.base_class import Base
from campaign_rollout.models.employee import Employee, CampaignSegment
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_wave import CampaignWave
from campaign_rollout.models.campaign_assignment import CampaignAssignment
from campaign_rollout.models.org_blackout_date import OrgBlackoutDate
from campaign_rollout.models.compliance_profile import ComplianceProfile
