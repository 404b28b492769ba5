import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_USER", "test_user")
os.environ.setdefault("POSTGRES_PASSWORD", "test_password")
os.environ.setdefault("POSTGRES_PORT", "5433")
os.environ.setdefault("POSTGRES_DB", "lead_lifecycle_test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6380/0")
os.environ.setdefault("REDIS_STREAM", "lead_events_test")
os.environ.setdefault("REDIS_CONSUMER_GROUP", "lifecycle_group_test")
os.environ.setdefault("MAX_CONCURRENT_REQUESTS", "5")
os.environ.setdefault("STREAM_BLOCK_TIME", "1000")

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from common.enums import Availability, LeadStage
from common.schemas import (
    Lead,
    LeadWorkflow,
    QualificationCriteria,
    RepPerformance,
    SalesRep,
    StageTransition,
)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

ALL_BANT = QualificationCriteria(
    has_budget=True,
    has_authority=True,
    has_need=True,
    has_timeline=True,
)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def lead_factory():
    """Builds leads in Kingston with no qualification signals unless overridden."""
    def make(**overrides) -> Lead:
        data = {
            "id": uuid.uuid4(),
            "name": "Jane Brown",
            "email": "jane.brown@example.com",
            "phone": "+1-876-555-0101",
            "interest_level": 1,
            "territory": "Kingston",
            "created_at": NOW,
        }
        data.update(overrides)
        return Lead(**data)
    return make


@pytest.fixture
def rep_factory():
    """Builds available reps covering Kingston with 20 seats."""
    def make(rep_id: str, **overrides) -> SalesRep:
        performance = overrides.pop("performance", {})
        data = {
            "id": rep_id,
            "name": f"Rep {rep_id}",
            "territories": ["Kingston"],
            "availability": Availability.AVAILABLE,
            "current_load": 0,
            "max_capacity": 20,
            "performance": RepPerformance(**{"conversion_rate": 0.2, "avg_deal_size": 10000, **performance}),
        }
        data.update(overrides)
        return SalesRep(**data)
    return make


@pytest.fixture
def workflow_factory():
    """
    Builds a workflow whose history walks the given stages one day apart,
    ending at NOW.
    """
    def make(stages=(), criteria=None, score=0, lead_id=None, **overrides) -> LeadWorkflow:
        history = []
        previous = LeadStage.NEW
        start = NOW - timedelta(days=len(stages))
        for offset, stage in enumerate(stages, start=1):
            history.append(StageTransition(
                from_stage=previous,
                to_stage=stage,
                transition_date=start + timedelta(days=offset),
            ))
            previous = stage

        data = {
            "lead_id": lead_id or uuid.uuid4(),
            "current_stage": previous,
            "qualification_score": score,
            "criteria": criteria or QualificationCriteria(),
            "stage_history": history,
            "created_at": start,
            "updated_at": NOW,
        }
        data.update(overrides)
        return LeadWorkflow(**data)
    return make
