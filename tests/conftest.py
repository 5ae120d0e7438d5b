# tests/conftest.py

import random

import pytest
from starlette.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

from campaign_rollout.core.config import settings

# No background jobs or Kafka connections in tests
settings.SCHEDULER_ENABLED = False
settings.EVENTS_ENABLED = False

from campaign_rollout.main import app  # noqa: E402
from campaign_rollout.api import deps  # noqa: E402
from campaign_rollout.db.session import get_db  # noqa: E402
from campaign_rollout.models import Base  # noqa: E402
from campaign_rollout.services.launch_executor import LaunchExecutor  # noqa: E402
from campaign_rollout.services.launch_scheduler import LaunchScheduler  # noqa: E402
from campaign_rollout.services.lifecycle import CampaignLifecycle  # noqa: E402
from campaign_rollout.services.reminder_sequencer import ReminderSequencer  # noqa: E402
from campaign_rollout.services.task_queue import LAUNCH_WAVE, InMemoryTaskQueue  # noqa: E402


# --- In-memory SQLite shared across threads (TestClient runs in another thread) ---
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


# --- Engine collaborators ---
@pytest.fixture
def event_sink():
    return MagicMock()


@pytest.fixture
def executor(event_sink):
    return LaunchExecutor(event_sink=event_sink, rng=random.Random(7))


@pytest.fixture
def task_queue(db_session, executor):
    """Queue whose due tasks launch through the test executor and session."""

    def handler(key, payload):
        if payload["action"] == LAUNCH_WAVE:
            return executor.launch_wave(db_session, payload["campaign_id"], payload["wave_number"])
        return executor.launch_campaign(
            db_session, payload["campaign_id"], launched_by_id=payload.get("launched_by_id")
        )

    return InMemoryTaskQueue(handler=handler)


@pytest.fixture
def scheduler(task_queue, event_sink):
    return LaunchScheduler(task_queue=task_queue, event_sink=event_sink)


@pytest.fixture
def sequencer(event_sink):
    return ReminderSequencer(event_sink=event_sink)


@pytest.fixture
def lifecycle(scheduler, executor, sequencer):
    return CampaignLifecycle(scheduler=scheduler, executor=executor, sequencer=sequencer)


# --- Mock Dependencies Setup ---
class MockTokenPayload:
    def __init__(self, sub="user_123", org_id="org_abc"):
        self.sub = sub
        self.org_id = org_id


def override_get_current_user():
    return MockTokenPayload()


@pytest.fixture(scope="function")
def client(db_session, scheduler, lifecycle):
    """
    TestClient backed by the in-memory database, with auth mocked and the
    scheduler/lifecycle wired to the in-memory task queue.
    """

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_current_user] = override_get_current_user
    app.dependency_overrides[deps.get_scheduler] = lambda: scheduler
    app.dependency_overrides[deps.get_lifecycle] = lambda: lifecycle

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
