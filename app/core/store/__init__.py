"""Document store access for services, routers and Celery tasks.

`get_store()` is both a FastAPI dependency and the accessor Celery tasks use, so tests can
swap the process-wide store with `configure_store()`.
"""

from __future__ import annotations

import threading
from typing import Optional

from app.core.config import settings

from .base import (
    DocumentSnapshot,
    DocumentStore,
    OrderBy,
    Predicate,
    Subscription,
    Transaction,
    get_field,
    set_field,
    where,
)
from .memory import InMemoryDocumentStore

_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def build_store(cfg=None) -> DocumentStore:
    """Construct the backend selected by `STORE_BACKEND`."""
    cfg = cfg or settings
    if cfg.store_backend == "firestore":
        from .firestore import FirestoreDocumentStore

        return FirestoreDocumentStore.from_settings(cfg)
    return InMemoryDocumentStore(
        max_attempts=cfg.store_max_attempts,
        backoff_seconds=cfg.store_retry_backoff_seconds,
        timeout_seconds=cfg.store_timeout_seconds,
    )


def configure_store(store: Optional[DocumentStore]) -> None:
    global _store
    with _store_lock:
        _store = store


def get_store() -> DocumentStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = build_store()
        return _store


__all__ = [
    "DocumentSnapshot",
    "DocumentStore",
    "InMemoryDocumentStore",
    "OrderBy",
    "Predicate",
    "Subscription",
    "Transaction",
    "build_store",
    "configure_store",
    "get_field",
    "get_store",
    "set_field",
    "where",
]
