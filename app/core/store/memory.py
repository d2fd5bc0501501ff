"""Thread-safe in-memory document store with optimistic (compare-and-swap) transactions.

Every committed write stamps the document with a fresh version taken from a store-wide
counter. A transaction remembers the version of every document it read and, for every
query, the (id, version) pairs it matched. At commit time, under the store lock, the
document reads are compared and the queries are run again; the commit fails with
``ConcurrencyConflictException`` if anything moved. Reading a document that does not exist
records version 0, so concurrent creation is detected too. Writes that fall outside a
query's predicates never conflict with it.

Used as the default backend for local development and tests.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from app.core.exceptions import (
    ConcurrencyConflictException,
    ResourceConflictException,
    ResourceNotFoundException,
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
    apply_query,
    get_field,
    set_field,
)

logger = logging.getLogger(__name__)


@dataclass
class _StoredDocument:
    data: Dict[str, Any]
    version: int


@dataclass
class _Write:
    op: str  # create | set | update | delete
    collection: str
    doc_id: str
    payload: Optional[Dict[str, Any]] = None


class _Watch(Subscription):
    def __init__(self, store: "InMemoryDocumentStore", watch_id: int):
        self._store = store
        self._watch_id = watch_id

    def unsubscribe(self) -> None:
        self._store._drop_watch(self._watch_id)


@dataclass(frozen=True)
class _QueryRead:
    collection: str
    predicates: Tuple[Predicate, ...]
    order_by: Tuple[OrderBy, ...]
    limit: Optional[int]
    matched: FrozenSet[Tuple[str, Any]]


def _matched(rows: Sequence[DocumentSnapshot]) -> FrozenSet[Tuple[str, Any]]:
    return frozenset((row.id, row.version) for row in rows)


@dataclass
class _WatchSpec:
    collection: str
    deliver: Callable[[], None]


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


class _MemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.document_reads: Dict[Tuple[str, str], int] = {}
        self.query_reads: List[_QueryRead] = []
        self.writes: List[_Write] = []

    def _ensure_reading(self) -> None:
        if self.writes:
            raise RuntimeError("Transaction reads must happen before any write")

    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        self._ensure_reading()
        snap, version = self._store._read_versioned(collection, doc_id)
        self.document_reads.setdefault((collection, doc_id), version)
        return snap

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        self._ensure_reading()
        rows = self._store.query(collection, predicates, order_by, limit)
        self.query_reads.append(
            _QueryRead(
                collection, tuple(predicates), tuple(order_by), limit, _matched(rows)
            )
        )
        return rows

    def create(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        doc_id = doc_id or new_document_id()
        self.writes.append(_Write("create", collection, doc_id, copy.deepcopy(data)))
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.writes.append(_Write("set", collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.writes.append(_Write("update", collection, doc_id, copy.deepcopy(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes.append(_Write("delete", collection, doc_id))


class InMemoryDocumentStore(DocumentStore):
    """Process-local store; safe to share between threads."""

    backend_name = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._lock = threading.RLock()
        self._dispatch_lock = threading.RLock()
        self._collections: Dict[str, Dict[str, _StoredDocument]] = {}
        self._clock = itertools.count(1)
        self._watches: Dict[int, _WatchSpec] = {}
        self._watch_ids = itertools.count(1)

    # ---------------------------------------------------------------- helpers
    def _snapshot(self, collection: str, doc_id: str, stored: _StoredDocument):
        return DocumentSnapshot(
            collection=collection,
            id=doc_id,
            data=copy.deepcopy(stored.data),
            version=stored.version,
        )

    def _read_versioned(self, collection: str, doc_id: str):
        with self._lock:
            stored = self._collections.get(collection, {}).get(doc_id)
            if stored is None:
                return None, 0
            return self._snapshot(collection, doc_id, stored), stored.version

    def _matching(self, collection, predicates, order_by, limit):
        with self._lock:
            docs = self._collections.get(collection, {})
            snaps = [self._snapshot(collection, i, d) for i, d in docs.items()]
        return apply_query(snaps, predicates, order_by, limit)

    def _apply_writes(self, writes: Sequence[_Write]) -> List[str]:
        """Validate and apply writes atomically; caller holds the lock."""
        staged: Dict[Tuple[str, str], Optional[_StoredDocument]] = {}

        def current(collection: str, doc_id: str) -> Optional[_StoredDocument]:
            key = (collection, doc_id)
            if key in staged:
                return staged[key]
            return self._collections.get(collection, {}).get(doc_id)

        version = next(self._clock)
        for write in writes:
            existing = current(write.collection, write.doc_id)
            key = (write.collection, write.doc_id)
            if write.op == "create":
                if existing is not None:
                    raise ResourceConflictException(
                        "Document already exists",
                        details={"path": f"{write.collection}/{write.doc_id}"},
                    )
                staged[key] = _StoredDocument(write.payload, version)
            elif write.op == "set":
                staged[key] = _StoredDocument(write.payload, version)
            elif write.op == "update":
                if existing is None:
                    raise ResourceNotFoundException(
                        "Document", f"{write.collection}/{write.doc_id}"
                    )
                data = copy.deepcopy(existing.data)
                for path, value in write.payload.items():
                    set_field(data, path, value)
                staged[key] = _StoredDocument(data, version)
            elif write.op == "delete":
                staged[key] = None

        touched = set()
        for (collection, doc_id), stored in staged.items():
            docs = self._collections.setdefault(collection, {})
            if stored is None:
                docs.pop(doc_id, None)
            else:
                docs[doc_id] = stored
            touched.add(collection)
        return sorted(touched)

    def _write(self, writes: Sequence[_Write]) -> None:
        with self._lock:
            touched = self._apply_writes(writes)
        self._notify(touched)

    # ------------------------------------------------------------------ reads
    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        snap, _ = self._read_versioned(collection, doc_id)
        return snap

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        return self._matching(collection, predicates, order_by, limit)

    # ----------------------------------------------------------------- writes
    def create(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        doc_id = doc_id or new_document_id()
        self._write([_Write("create", collection, doc_id, copy.deepcopy(data))])
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._write([_Write("set", collection, doc_id, copy.deepcopy(data))])

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._write([_Write("update", collection, doc_id, copy.deepcopy(fields))])

    def delete(self, collection: str, doc_id: str) -> None:
        self._write([_Write("delete", collection, doc_id)])

    def increment(
        self, collection: str, doc_id: str, field_path: str, delta: float = 1
    ) -> None:
        with self._lock:
            stored = self._collections.get(collection, {}).get(doc_id)
            if stored is None:
                raise ResourceNotFoundException("Document", f"{collection}/{doc_id}")
            value = get_field(stored.data, field_path) or 0
            touched = self._apply_writes(
                [_Write("update", collection, doc_id, {field_path: value + delta})]
            )
        self._notify(touched)

    def union_append(
        self, collection: str, doc_id: str, field_path: str, value: Any
    ) -> None:
        with self._lock:
            stored = self._collections.get(collection, {}).get(doc_id)
            if stored is None:
                raise ResourceNotFoundException("Document", f"{collection}/{doc_id}")
            items = list(get_field(stored.data, field_path) or [])
            if value in items:
                return
            items.append(copy.deepcopy(value))
            touched = self._apply_writes(
                [_Write("update", collection, doc_id, {field_path: items})]
            )
        self._notify(touched)

    # ----------------------------------------------------------- transactions
    def _run_once(self, fn: Callable[[Transaction], T]) -> T:
        txn = _MemoryTransaction(self)
        result = fn(txn)
        if not txn.writes:
            return result
        with self._lock:
            for (collection, doc_id), seen in txn.document_reads.items():
                stored = self._collections.get(collection, {}).get(doc_id)
                if (stored.version if stored else 0) != seen:
                    raise ConcurrencyConflictException(
                        f"{collection}/{doc_id} changed during the transaction"
                    )
            for read in txn.query_reads:
                rows = self._matching(
                    read.collection, read.predicates, read.order_by, read.limit
                )
                if _matched(rows) != read.matched:
                    raise ConcurrencyConflictException(
                        f"Query on {read.collection} changed during the transaction"
                    )
            touched = self._apply_writes(txn.writes)
        self._notify(touched)
        return result

    # ---------------------------------------------------------- subscriptions
    def subscribe(
        self,
        collection: str,
        callback: QueryCallback,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> Subscription:
        def deliver() -> None:
            callback(self.query(collection, predicates, order_by, limit))

        return self._add_watch(collection, deliver)

    def subscribe_document(
        self, collection: str, doc_id: str, callback: DocumentCallback
    ) -> Subscription:
        def deliver() -> None:
            callback(self.get(collection, doc_id))

        return self._add_watch(collection, deliver)

    def _add_watch(self, collection: str, deliver: Callable[[], None]) -> Subscription:
        with self._lock:
            watch_id = next(self._watch_ids)
            self._watches[watch_id] = _WatchSpec(collection, deliver)
        self._deliver(watch_id, deliver)
        return _Watch(self, watch_id)

    def _drop_watch(self, watch_id: int) -> None:
        with self._lock:
            self._watches.pop(watch_id, None)

    def _notify(self, collections: Sequence[str]) -> None:
        if not collections:
            return
        with self._lock:
            targets = [
                (watch_id, spec.deliver)
                for watch_id, spec in self._watches.items()
                if spec.collection in collections
            ]
        for watch_id, deliver in targets:
            self._deliver(watch_id, deliver)

    def _deliver(self, watch_id: int, deliver: Callable[[], None]) -> None:
        with self._dispatch_lock:
            with self._lock:
                if watch_id not in self._watches:
                    return
            try:
                deliver()
            except Exception as exc:
                # Listener failures must not fail the write that triggered them.
                logger.error(f"Snapshot listener {watch_id} failed: {exc}", exc_info=True)

    # ------------------------------------------------------------------ misc
    def clear(self) -> None:
        with self._lock:
            self._collections.clear()
