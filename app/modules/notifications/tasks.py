"""Reusable task helpers for the notifications domain."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict

from app.core.store import DocumentStore

logger = logging.getLogger(__name__)


def notifications_collection(recipient_id: str) -> str:
    return f"users/{recipient_id}/notifications"


def write_notification(
    store: DocumentStore,
    recipient_id: str,
    notification_id: str,
    payload: Dict[str, Any],
) -> str:
    """Persist one notification document; repeated delivery overwrites the same id."""
    document = dict(payload)
    created_at = document.get("createdAt")
    if isinstance(created_at, str):
        document["createdAt"] = datetime.fromisoformat(created_at)
    store.set(notifications_collection(recipient_id), notification_id, document)
    logger.info(
        f"Delivered {document.get('type')} notification {notification_id} to {recipient_id}"
    )
    return notification_id
