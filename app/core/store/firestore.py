"""Cloud Firestore backend built on ``firebase_admin``.

Integration details:
- Initializes (or reuses) the default Firebase app from `settings`; a service-account file
  is used when `FIREBASE_CREDENTIALS_PATH` is set, application default credentials otherwise.
- Transactions run through `firestore.transactional` with a single attempt; the shared
  retry loop in `DocumentStore.run_transaction` owns retries so both backends behave alike.
- Google API errors are translated into the application's store exceptions.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

from app.core.exceptions import (
    ConcurrencyConflictException,
    ResourceConflictException,
    ResourceNotFoundException,
    StoreUnavailableException,
)

from .base import (
    DocumentCallback,
    DocumentSnapshot,
    DocumentStore,
    OrderBy,
    Predicate,
    QueryCallback,
    Subscription,
    T,
    Transaction,
)

logger = logging.getLogger(__name__)

_CONFLICT_ERRORS = (google_exceptions.Aborted, google_exceptions.FailedPrecondition)
_TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
)


def initialize_firebase_app(
    project_id: Optional[str] = None, credentials_path: Optional[str] = None
) -> firebase_admin.App:
    """Return the default Firebase app, creating it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    cred = (
        credentials.Certificate(credentials_path)
        if credentials_path
        else credentials.ApplicationDefault()
    )
    options = {"projectId": project_id} if project_id else None
    app = firebase_admin.initialize_app(cred, options)
    logger.info("Firebase initialized successfully")
    return app


def _translate(exc: Exception) -> Exception:
    if isinstance(exc, _CONFLICT_ERRORS):
        return ConcurrencyConflictException(str(exc))
    if isinstance(exc, _TRANSIENT_ERRORS):
        return StoreUnavailableException(str(exc))
    if isinstance(exc, google_exceptions.NotFound):
        return ResourceNotFoundException("Document")
    if isinstance(exc, google_exceptions.AlreadyExists):
        return ResourceConflictException("Document already exists")
    return exc


def _to_snapshot(collection: str, doc) -> Optional[DocumentSnapshot]:
    if doc is None or not doc.exists:
        return None
    return DocumentSnapshot(
        collection=collection,
        id=doc.id,
        data=doc.to_dict() or {},
        version=getattr(doc, "update_time", None),
    )


class _FirestoreWatch(Subscription):
    def __init__(self, watch):
        self._watch = watch

    def unsubscribe(self) -> None:
        self._watch.unsubscribe()


class _FirestoreTransaction(Transaction):
    def __init__(self, store: "FirestoreDocumentStore", txn):
        self._store = store
        self._txn = txn

    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        ref = self._store._doc(collection, doc_id)
        return _to_snapshot(collection, ref.get(transaction=self._txn))

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        query = self._store._build_query(collection, predicates, order_by, limit)
        return [
            _to_snapshot(collection, doc) for doc in query.stream(transaction=self._txn)
        ]

    def create(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        ref = (
            self._store._doc(collection, doc_id)
            if doc_id
            else self._store._client.collection(collection).document()
        )
        self._txn.create(ref, data)
        return ref.id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._txn.set(self._store._doc(collection, doc_id), data)

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._txn.update(self._store._doc(collection, doc_id), fields)

    def delete(self, collection: str, doc_id: str) -> None:
        self._txn.delete(self._store._doc(collection, doc_id))


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore over a `google.cloud.firestore.Client`."""

    backend_name = "firestore"

    def __init__(self, client=None, **kwargs):
        super().__init__(**kwargs)
        self._client = client or firestore.client()

    @classmethod
    def from_settings(cls, cfg) -> "FirestoreDocumentStore":
        app = initialize_firebase_app(
            cfg.firebase_project_id, cfg.firebase_credentials_path
        )
        return cls(
            client=firestore.client(app),
            max_attempts=cfg.store_max_attempts,
            backoff_seconds=cfg.store_retry_backoff_seconds,
            timeout_seconds=cfg.store_timeout_seconds,
        )

    # ---------------------------------------------------------------- helpers
    def _doc(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    def _build_query(self, collection, predicates, order_by, limit):
        query = self._client.collection(collection)
        for predicate in predicates:
            query = query.where(
                filter=firestore.FieldFilter(
                    predicate.field, predicate.op, predicate.value
                )
            )
        for order in order_by:
            direction = (
                firestore.Query.DESCENDING if order.descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order.field, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    def _call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        try:
            return fn(*args, **kwargs)
        except google_exceptions.GoogleAPICallError as exc:
            raise _translate(exc) from exc

    def _timeout(self) -> Dict[str, Any]:
        return {"timeout": self.timeout_seconds} if self.timeout_seconds else {}

    # ------------------------------------------------------------------ reads
    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        doc = self._call(self._doc(collection, doc_id).get, **self._timeout())
        return _to_snapshot(collection, doc)

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        query = self._build_query(collection, predicates, order_by, limit)
        docs = self._call(lambda: list(query.stream(**self._timeout())))
        return [_to_snapshot(collection, doc) for doc in docs]

    # ----------------------------------------------------------------- writes
    def create(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        ref = (
            self._doc(collection, doc_id)
            if doc_id
            else self._client.collection(collection).document()
        )
        self._call(ref.create, data, **self._timeout())
        return ref.id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._call(self._doc(collection, doc_id).set, data, **self._timeout())

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._call(self._doc(collection, doc_id).update, fields, **self._timeout())

    def delete(self, collection: str, doc_id: str) -> None:
        self._call(self._doc(collection, doc_id).delete, **self._timeout())

    def increment(
        self, collection: str, doc_id: str, field_path: str, delta: float = 1
    ) -> None:
        self.update(collection, doc_id, {field_path: firestore.Increment(delta)})

    def union_append(
        self, collection: str, doc_id: str, field_path: str, value: Any
    ) -> None:
        self.update(collection, doc_id, {field_path: firestore.ArrayUnion([value])})

    # ----------------------------------------------------------- transactions
    def _run_once(self, fn: Callable[[Transaction], T]) -> T:
        transaction = self._client.transaction(max_attempts=1)

        @firestore.transactional
        def _body(txn):
            return fn(_FirestoreTransaction(self, txn))

        try:
            return _body(transaction)
        except google_exceptions.GoogleAPICallError as exc:
            raise _translate(exc) from exc
        except ValueError as exc:
            # Raised by the client once its own attempt budget is spent on contention.
            if "attempt" in str(exc):
                raise ConcurrencyConflictException(str(exc)) from exc
            raise

    # ---------------------------------------------------------- subscriptions
    def subscribe(
        self,
        collection: str,
        callback: QueryCallback,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> Subscription:
        query = self._build_query(collection, predicates, order_by, limit)

        def _on_snapshot(docs, changes, read_time):
            callback([_to_snapshot(collection, doc) for doc in docs])

        return _FirestoreWatch(query.on_snapshot(_on_snapshot))

    def subscribe_document(
        self, collection: str, doc_id: str, callback: DocumentCallback
    ) -> Subscription:
        def _on_snapshot(docs, changes, read_time):
            callback(_to_snapshot(collection, docs[0]) if docs else None)

        return _FirestoreWatch(self._doc(collection, doc_id).on_snapshot(_on_snapshot))
