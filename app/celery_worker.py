"""Celery worker configuration and tasks.

Execution modes:
- Default: uses broker/backend from `settings`.
- Test: switches to in-memory broker/backend with eager execution so no external services are needed.

Tasks are thin wrappers around helpers in `app.modules.notifications.tasks`; the document
store comes from `app.core.store.get_store()` so tests can swap it.
"""

import os
from typing import Any, Dict

from celery import Celery

from app.core.config import settings
from app.core.exceptions import StoreUnavailableException
from app.core.store import get_store
from app.modules.notifications.tasks import write_notification

# ------------------------- Celery Setup -------------------------
celery_app = Celery(
    "collaboration_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_BACKEND_URL,
)


def _is_test_env() -> bool:
    return (
        settings.environment.lower() == "test"
        or os.getenv("APP_ENV", "").lower() == "test"
        or os.getenv("PYTEST_CURRENT_TEST") is not None
    )


if _is_test_env():
    # Use in-memory broker/backend and eager mode to avoid external services in tests.
    celery_app.conf.update(
        broker_url="memory://",
        result_backend="cache+memory://",
        task_always_eager=True,
        task_eager_propagates=True,
    )

celery_app.conf.update(task_serializer="json", accept_content=["json"])


# ------------------------- Tasks -------------------------
@celery_app.task(
    name="collaboration.deliver_notification",
    autoretry_for=(StoreUnavailableException,),
    retry_backoff=True,
    max_retries=5,
)
def deliver_collaboration_notification(
    recipient_id: str, notification_id: str, payload: Dict[str, Any]
) -> str:
    return write_notification(get_store(), recipient_id, notification_id, payload)
