# campaign_rollout/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campaign_rollout.api.errors import campaign_engine_error_handler
from campaign_rollout.api.v1.api import api_router
from campaign_rollout.core.config import settings
from campaign_rollout.core.exceptions import CampaignEngineError
from campaign_rollout.scheduler import init_scheduler, shutdown_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Campaign rollout service starting up...")
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    yield
    shutdown_scheduler()
    logger.info("Campaign rollout service shutting down...")


app = FastAPI(
    title="Campaign Rollout Service",
    version="1.0.0",
    description="""
        **Campaign Rollout & Reminder Scheduling Engine**

        ## Features

        * **Deferred launches**: Schedule a campaign for a future time
        * **Staggered rollouts**: Split the audience into waves by percentage or count
        * **Blackout calendar**: Keep launches and waves out of freeze periods
        * **Reminder sequences**: Escalating reminders relative to the due date
        * **Compliance profiles**: Response history and repeat non-responders

        ## Authentication

        Endpoints require JWT authentication via the `Authorization: Bearer <token>` header.
        Operator endpoints under `/internal/` use the `X-Internal-Api-Key` header.
        """,
    lifespan=lifespan,
)

origins = [
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(CampaignEngineError, campaign_engine_error_handler)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Campaign Rollout Service is running"}
