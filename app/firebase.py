import copy
import logging
import os
import threading
import uuid

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
import firebase_admin

logger = logging.getLogger("app.firebase")

# Initialize Firebase Admin SDK (needed for ID token verification)
USE_MOCK_DB = os.environ.get("USE_MOCK_DB", "0") == "1"

if not firebase_admin._apps and not USE_MOCK_DB:
    try:
        # Default credentials work on Cloud Run with a service account
        firebase_admin.initialize_app()
    except Exception as e:
        logger.warning(f"Firebase Admin init with default credentials failed: {e}")


# ---------- In-memory Firestore ---------- #

def _split(path: str) -> list[str]:
    return path.split(".")


def _get_path(data: dict, path: str):
    node = data
    for part in _split(path):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _set_path(data: dict, path: str, value):
    parts = _split(path)
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = copy.deepcopy(value)


def _deep_merge(target: dict, patch: dict):
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class MockDocumentSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data) if data is not None else None

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        if self._data is None:
            return None
        return copy.deepcopy(self._data)

    def get(self, field):
        return _get_path(self._data or {}, field)


class MockDocumentReference:
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.id = doc_id

    @property
    def _lock(self):
        return self.collection._client._lock

    @property
    def path(self):
        return f"{self.collection.name}/{self.id}"

    def get(self, transaction=None):
        with self._lock:
            return MockDocumentSnapshot(self, self.collection._docs.get(self.id))

    def set(self, data, merge=False):
        with self._lock:
            self._apply_set(data, merge)

    def create(self, data):
        with self._lock:
            self._apply_create(data)

    def update(self, data):
        with self._lock:
            self._apply_update(data)

    def delete(self):
        with self._lock:
            self._apply_delete()

    def _apply_set(self, data, merge=False):
        current = self.collection._docs.get(self.id)
        if merge and current is not None:
            _deep_merge(current, data)
        else:
            self.collection._docs[self.id] = copy.deepcopy(data)
        logger.debug(f"[MockDB] Set {self.path}")

    def _apply_create(self, data):
        if self.id in self.collection._docs:
            raise gcp_exceptions.AlreadyExists(f"Document already exists: {self.path}")
        self.collection._docs[self.id] = copy.deepcopy(data)

    def _apply_update(self, data):
        current = self.collection._docs.get(self.id)
        if current is None:
            raise gcp_exceptions.NotFound(f"No document to update: {self.path}")
        for field, value in data.items():
            _set_path(current, field, value)
        logger.debug(f"[MockDB] Update {self.path}: {list(data.keys())}")

    def _apply_delete(self):
        self.collection._docs.pop(self.id, None)
        logger.debug(f"[MockDB] Delete {self.path}")


class MockQuery:
    _OPS = {
        "==": lambda a, b: a == b,
        "!=": lambda a, b: a != b,
        "<": lambda a, b: a is not None and a < b,
        "<=": lambda a, b: a is not None and a <= b,
        ">": lambda a, b: a is not None and a > b,
        ">=": lambda a, b: a is not None and a >= b,
        "in": lambda a, b: a in b,
    }

    def __init__(self, collection, filters=None, order=None, limit_to=None):
        self.collection = collection
        self._filters = filters or []
        self._order = order
        self._limit = limit_to

    def where(self, field_path=None, op_string=None, value=None, *, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return MockQuery(self.collection, self._filters + [(field_path, op_string, value)], self._order, self._limit)

    def order_by(self, field_path, direction="ASCENDING"):
        return MockQuery(self.collection, self._filters, (field_path, direction), self._limit)

    def limit(self, count):
        return MockQuery(self.collection, self._filters, self._order, count)

    def stream(self, transaction=None):
        with self.collection._client._lock:
            items = list(self.collection._docs.items())
        rows = []
        for doc_id, data in items:
            if all(self._OPS[op](_get_path(data, field), value) for field, op, value in self._filters):
                rows.append((doc_id, data))
        if self._order:
            field, direction = self._order
            rows.sort(key=lambda row: (_get_path(row[1], field) is None, _get_path(row[1], field)),
                      reverse=(direction == "DESCENDING"))
        if self._limit is not None:
            rows = rows[:self._limit]
        for doc_id, data in rows:
            yield MockDocumentSnapshot(MockDocumentReference(self.collection, doc_id), data)


class MockCollectionReference:
    def __init__(self, client, name):
        self._client = client
        self.name = name
        self._docs = {}  # id -> data

    def document(self, doc_id=None):
        return MockDocumentReference(self, doc_id or uuid.uuid4().hex)

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return None, ref

    def where(self, *args, **kwargs):
        return MockQuery(self).where(*args, **kwargs)

    def order_by(self, *args, **kwargs):
        return MockQuery(self).order_by(*args, **kwargs)

    def limit(self, count):
        return MockQuery(self).limit(count)

    def stream(self, transaction=None):
        return MockQuery(self).stream()


class _BufferedWrites:
    def __init__(self, client):
        self._client = client
        self._writes = []

    def set(self, ref, data, merge=False):
        self._writes.append((ref._apply_set, (data, merge)))

    def create(self, ref, data):
        self._writes.append((ref._apply_create, (data,)))

    def update(self, ref, data):
        self._writes.append((ref._apply_update, (data,)))

    def delete(self, ref):
        self._writes.append((ref._apply_delete, ()))

    def commit(self):
        with self._client._lock:
            for apply, args in self._writes:
                apply(*args)
        self._writes = []


class MockBatch(_BufferedWrites):
    pass


class MockTransaction(_BufferedWrites):
    def get(self, ref_or_query):
        return ref_or_query.get(transaction=self)


class MockFirestoreClient:
    def __init__(self):
        self._collections = {}
        # Transactions are serialized; this stands in for Firestore's optimistic retries.
        self._lock = threading.RLock()

    def collection(self, name):
        with self._lock:
            if name not in self._collections:
                self._collections[name] = MockCollectionReference(self, name)
            return self._collections[name]

    def batch(self):
        return MockBatch(self)

    def transaction(self):
        return MockTransaction(self)

    def reset(self):
        with self._lock:
            self._collections = {}


# ---------- Initialization ---------- #

PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT")

if USE_MOCK_DB:
    logger.warning("!!! USING MOCK DB !!!")
    db = MockFirestoreClient()
else:
    if not PROJECT_ID:
        logger.warning("GOOGLE_CLOUD_PROJECT not set. Falling back to the ambient project.")
    db = firestore.Client(project=PROJECT_ID) if PROJECT_ID else firestore.Client()


def run_in_transaction(func, *args, **kwargs):
    """
    Runs ``func(transaction, *args, **kwargs)`` as one atomic unit.

    On Firestore the function is wrapped with ``firestore.transactional`` and is
    retried on contention, so it must do all reads before writes and must not
    have side effects outside the transaction. The in-memory client runs it
    under the client lock and applies the buffered writes on success.
    """
    transaction = db.transaction()
    if isinstance(transaction, MockTransaction):
        with db._lock:
            result = func(transaction, *args, **kwargs)
            transaction.commit()
        return result
    return firestore.transactional(func)(transaction, *args, **kwargs)
