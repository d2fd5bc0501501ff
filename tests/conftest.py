import os

# Set testing environment flags before importing the app or settings
os.environ.setdefault("APP_ENV", "test")

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.store import InMemoryDocumentStore, configure_store
from app.modules.collaboration.schemas import CollaborationCreate
from app.modules.notifications import NotificationDispatcher
from app.services.collaboration import (
    ApplicationWorkflow,
    BudgetLedger,
    CollaborationService,
    EngagementCounters,
    InvitationWorkflow,
    ParticipantRoster,
)
from tests.helpers import make_user


@pytest.fixture
def store():
    """Fresh in-memory store, also installed as the process-wide store."""
    store = InMemoryDocumentStore(max_attempts=3, backoff_seconds=0)
    configure_store(store)
    yield store
    configure_store(None)


@pytest.fixture
def sent_notifications():
    return []


@pytest.fixture
def dispatcher(sent_notifications):
    """Dispatcher that records (recipient, payload) instead of going through Celery."""
    return NotificationDispatcher(
        enqueue=lambda recipient, _id, payload: sent_notifications.append(
            (recipient, payload)
        )
    )


@pytest.fixture
def creator():
    return make_user("creator")


@pytest.fixture
def collaborations(store):
    return CollaborationService(store)


@pytest.fixture
def roster(store, dispatcher):
    return ParticipantRoster(store, dispatcher)


@pytest.fixture
def engagement(store):
    return EngagementCounters(store)


@pytest.fixture
def applications(store, dispatcher, engagement):
    return ApplicationWorkflow(store, dispatcher, engagement)


@pytest.fixture
def invitations(store, dispatcher):
    return InvitationWorkflow(store, dispatcher)


@pytest.fixture
def ledger(store):
    return BudgetLedger(store)


@pytest.fixture
def new_collaboration(collaborations, creator):
    """Factory creating a collaboration owned by ``creator``."""

    def _create(**overrides):
        fields = {
            "title": "Late Night Session",
            "description": "Looking for players for a lo-fi EP",
            "genre": "jazz",
            "instruments": ["bass", "drums"],
        }
        fields.update(overrides)
        return collaborations.create(CollaborationCreate(**fields), creator)

    return _create


@pytest.fixture
def retraction_deletes():
    return settings.model_copy(update={"retraction_mode": "delete"})


@pytest.fixture
def client(store):
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client
