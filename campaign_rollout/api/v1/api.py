# campaign_rollout/api/v1/api.py

from fastapi import APIRouter
from campaign_rollout.api.v1.endpoints import (
    audience,
    blackouts,
    campaigns,
    compliance,
    internals,
)

# This is the main router for the v1 API.
api_router = APIRouter()

api_router.include_router(campaigns.router)
api_router.include_router(blackouts.router)
api_router.include_router(compliance.router)
api_router.include_router(audience.router)
api_router.include_router(internals.router)
