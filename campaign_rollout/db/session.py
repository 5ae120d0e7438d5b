from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from campaign_rollout.core.config import settings

# Shared engine with connection pooling; pre-ping drops dead connections
# left behind by long-idle Celery workers.
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

# SessionLocal is a factory for new Session objects. API requests, queue
# tasks and the reminder sweep each open their own session.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        # Always close the session, even if the request failed.
        db.close()
