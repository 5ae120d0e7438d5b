# campaign_rollout/db/base_class.py

from sqlalchemy.orm import declarative_base

# Single declarative base for every table the engine owns or reads.
Base = declarative_base()
