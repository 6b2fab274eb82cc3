"""
Document store abstraction for Firestore and an in-memory test implementation.
"""

from __future__ import annotations

import contextlib
import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol, Sequence

from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, ArrayUnion, Query
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from lookbook.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

# Marker for ordering by the document identifier instead of a field.
DOCUMENT_ID = "__name__"

Filter = tuple[str, str, Any]


@dataclass
class StoredDocument:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class DocumentStore(Protocol):
    """Operations the API needs from the document database."""

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        ...

    def add(self, collection: str, data: dict) -> str:
        ...

    def set(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        ...

    def update(self, collection: str, doc_id: str, updates: dict) -> None:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        direction: str = "desc",
        limit: Optional[int] = None,
    ) -> list[StoredDocument]:
        ...

    def array_union(self, *values: Any) -> Any:
        ...

    def server_timestamp(self) -> Any:
        ...


def query_with_fallback(
    store: DocumentStore,
    collection: str,
    filters: Sequence[Filter] = (),
    order_by: str = "createdAt",
    limit: Optional[int] = None,
) -> list[StoredDocument]:
    """
    Query newest-first by `order_by`, retrying by document id when the
    preferred ordering is rejected (e.g. a composite index is missing).
    """
    try:
        return store.query(
            collection,
            filters=filters,
            order_by=order_by,
            direction="desc",
            limit=limit,
        )
    except StoreError:
        logger.warning(
            "Ordering %s by %s failed, falling back to document id",
            collection,
            order_by,
        )
        return store.query(
            collection,
            filters=filters,
            order_by=DOCUMENT_ID,
            direction="desc",
            limit=limit,
        )


@dataclass(frozen=True)
class InMemoryArrayUnion:
    values: tuple


class _InMemoryServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


IN_MEMORY_SERVER_TIMESTAMP = _InMemoryServerTimestamp()

_FILTER_OPS = {
    "==": lambda actual, expected: actual == expected,
    "!=": lambda actual, expected: actual != expected,
    "in": lambda actual, expected: actual in expected,
    "array-contains": lambda actual, expected: isinstance(actual, list)
    and expected in actual,
}


def _order_key(value: Any) -> tuple:
    # Mirrors Firestore's cross-type ordering.
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    return (9, repr(value))


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.collections.clear()

    def _resolve(self, value: Any, current: Any = None) -> Any:
        if value is IN_MEMORY_SERVER_TIMESTAMP:
            return datetime.now(timezone.utc)
        if isinstance(value, InMemoryArrayUnion):
            merged = list(current) if isinstance(current, list) else []
            for item in value.values:
                if item not in merged:
                    merged.append(copy.deepcopy(item))
            return merged
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items()}
        return copy.deepcopy(value)

    def _merge(self, target: dict, data: dict) -> None:
        for key, value in data.items():
            existing = target.get(key)
            if isinstance(value, dict) and isinstance(existing, dict):
                self._merge(existing, value)
            else:
                target[key] = self._resolve(value, existing)

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        with self._lock:
            data = self.collections.get(collection, {}).get(doc_id)
            if data is None:
                return None
            return StoredDocument(id=doc_id, data=copy.deepcopy(data))

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex[:20]
        with self._lock:
            self.collections.setdefault(collection, {})[doc_id] = self._resolve(data)
        return doc_id

    def set(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        with self._lock:
            docs = self.collections.setdefault(collection, {})
            if merge and doc_id in docs:
                self._merge(docs[doc_id], data)
            else:
                docs[doc_id] = self._resolve(data)

    def update(self, collection: str, doc_id: str, updates: dict) -> None:
        with self._lock:
            doc = self.collections.get(collection, {}).get(doc_id)
            if doc is None:
                raise NotFoundError(f"No document to update: {collection}/{doc_id}")
            for key, value in updates.items():
                doc[key] = self._resolve(value, doc.get(key))

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self.collections.get(collection, {}).pop(doc_id, None)

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        direction: str = "desc",
        limit: Optional[int] = None,
    ) -> list[StoredDocument]:
        with self._lock:
            docs = [
                StoredDocument(id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in self.collections.get(collection, {}).items()
            ]
        for field_name, op, expected in filters:
            check = _FILTER_OPS.get(op)
            if check is None:
                raise StoreError(f"Unsupported filter operator: {op}")
            docs = [
                doc
                for doc in docs
                if field_name in doc.data and check(doc.data[field_name], expected)
            ]
        if order_by == DOCUMENT_ID:
            docs.sort(key=lambda doc: doc.id, reverse=direction == "desc")
        elif order_by is not None:
            docs = [doc for doc in docs if order_by in doc.data]
            try:
                docs.sort(
                    key=lambda doc: _order_key(doc.data[order_by]),
                    reverse=direction == "desc",
                )
            except TypeError as e:
                raise StoreError(f"Cannot order {collection} by {order_by}") from e
        if limit is not None:
            docs = docs[:limit]
        return docs

    def array_union(self, *values: Any) -> InMemoryArrayUnion:
        return InMemoryArrayUnion(values=tuple(values))

    def server_timestamp(self) -> _InMemoryServerTimestamp:
        return IN_MEMORY_SERVER_TIMESTAMP


@contextlib.contextmanager
def _translate_errors(action: str, path: str) -> Iterator[None]:
    try:
        yield
    except exceptions.NotFound as e:
        raise NotFoundError(f"Not found: {path}") from e
    except (exceptions.GoogleAPICallError, exceptions.RetryError) as e:
        raise StoreError(f"Failed to {action} {path}") from e
    except (ValueError, TypeError) as e:
        # Raised client-side for malformed paths, filters or payloads.
        raise StoreError(f"Invalid request to {action} {path}: {e}") from e


class FirestoreDocumentStore:
    """
    Firestore-backed implementation. Accepts any `google.cloud.firestore.Client`,
    typically the one returned by `firebase_admin.firestore.client()`.
    """

    def __init__(self, client):
        self._client = client

    def _doc(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        with _translate_errors("read", f"{collection}/{doc_id}"):
            snap = self._doc(collection, doc_id).get()
        if not snap.exists:
            return None
        return StoredDocument(id=snap.id, data=snap.to_dict() or {})

    def add(self, collection: str, data: dict) -> str:
        with _translate_errors("add to", collection):
            _, ref = self._client.collection(collection).add(data)
        return ref.id

    def set(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        with _translate_errors("write", f"{collection}/{doc_id}"):
            self._doc(collection, doc_id).set(data, merge=merge)

    def update(self, collection: str, doc_id: str, updates: dict) -> None:
        with _translate_errors("update", f"{collection}/{doc_id}"):
            self._doc(collection, doc_id).update(updates)

    def delete(self, collection: str, doc_id: str) -> None:
        with _translate_errors("delete", f"{collection}/{doc_id}"):
            self._doc(collection, doc_id).delete()

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        direction: str = "desc",
        limit: Optional[int] = None,
    ) -> list[StoredDocument]:
        with _translate_errors("query", collection):
            query = self._client.collection(collection)
            for field_name, op, value in filters:
                query = query.where(filter=FieldFilter(field_name, op, value))
            if order_by is not None:
                path = FieldPath.document_id() if order_by == DOCUMENT_ID else order_by
                query = query.order_by(
                    path,
                    direction=(
                        Query.DESCENDING if direction == "desc" else Query.ASCENDING
                    ),
                )
            if limit is not None:
                query = query.limit(limit)
            snaps = list(query.stream())
        return [StoredDocument(id=snap.id, data=snap.to_dict() or {}) for snap in snaps]

    def array_union(self, *values: Any) -> ArrayUnion:
        return ArrayUnion(list(values))

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP
