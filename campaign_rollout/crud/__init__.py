# campaign_rollout/crud/__init__.py

from .crud_campaign import campaign
from .crud_campaign_wave import campaign_wave
from .crud_campaign_assignment import campaign_assignment
from .crud_blackout import blackout_date
from .crud_compliance_profile import compliance_profile
