"""Shared test fixtures: an in-memory Firestore double, a frozen clock and scripted collaborators."""

import copy
import datetime
import itertools
import threading
import time

import jwt
import pytest
import pytz
from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from dependencies import ServiceRegistry
from models import ChallengeSection, ChallengeTask, UserChallenge, user_challenge_doc_id

AUSTIN = (30.27, -97.74)
AUSTIN_KEY = "r25:121:-391"
JWT_SECRET = "test-jwt-secret"
ADMIN_SECRET = "test-admin-secret"

# Probabilities the scripted generator reports for the Austin area
AUSTIN_PROBABILITIES = {
    "White-tailed Deer": 70,
    "Northern Cardinal": 80,
    "Eastern Gray Squirrel": 90,
    "Nine-banded Armadillo": 30,
    "Virginia Opossum": 25,
    "Mexican Free-tailed Bat": 40,
    "Great Blue Heron": 20,
    "Coyote": 12,
    "Red Fox": 8,
    "Bobcat": 5,
    "Snow Leopard": 0,
    "Emperor Penguin": 0,
}


# --- In-memory Firestore ---

class FakeSnapshot:
    def __init__(self, reference, data, update_time):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data)
        self.update_time = update_time

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


def _resolve(current, value):
    if isinstance(value, firestore.Increment):
        return (current or 0) + value.value
    if isinstance(value, dict):
        return {k: _resolve(None, v) for k, v in value.items()}
    return copy.deepcopy(value)


def _merge(target, data):
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = _resolve(target.get(key), value)


def _set_path(target, dotted, value):
    parts = dotted.split('.')
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = _resolve(target.get(parts[-1]), value)


def _get_path(data, dotted):
    for part in dotted.split('.'):
        if not isinstance(data, dict) or part not in data:
            return None
        data = data[part]
    return data


class FakeFirestore:
    """The subset of google.cloud.firestore.Client the services use. Thread safe."""

    def __init__(self):
        self.docs = {}
        self.lock = threading.RLock()
        self._clock = itertools.count(1)
        self.write_count = 0

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeWriteBatch(self)

    def transaction(self, max_attempts=5):
        return FakeTransaction(self, max_attempts)

    def close(self):
        pass

    # Applies (op, path, data, kwargs) writes atomically. `reads` maps paths to the
    # update_time seen by a transaction; any change since aborts the commit.
    def _commit(self, ops, reads=None):
        with self.lock:
            for path, seen in (reads or {}).items():
                current = self.docs.get(path)
                if (current[1] if current else None) != seen:
                    raise gcp_exceptions.Aborted(f"Document {path} changed during the transaction")
            staged = dict(self.docs)
            update_time = next(self._clock)
            for op, path, data, kwargs in ops:
                current = staged.get(path)
                if op == 'create':
                    if current is not None:
                        raise gcp_exceptions.AlreadyExists(f"Document already exists: {path}")
                    staged[path] = (_resolve(None, data), update_time)
                elif op == 'set':
                    if kwargs.get('merge') and current is not None:
                        merged = copy.deepcopy(current[0])
                        _merge(merged, data)
                        staged[path] = (merged, update_time)
                    else:
                        staged[path] = (_resolve(None, data), update_time)
                elif op == 'update':
                    if current is None:
                        raise gcp_exceptions.NotFound(f"No document to update: {path}")
                    updated = copy.deepcopy(current[0])
                    for key, value in data.items():
                        _set_path(updated, key, value)
                    staged[path] = (updated, update_time)
                elif op == 'delete':
                    staged.pop(path, None)
            self.docs = staged
            self.write_count += len(ops)

    def _snapshot(self, ref):
        with self.lock:
            data, update_time = self.docs.get(ref.path, (None, None))
            return FakeSnapshot(ref, data, update_time)

    # Test helpers
    def put(self, collection, doc_id, data):
        self.collection(collection).document(doc_id).set(data)

    def read(self, collection, doc_id):
        return self.collection(collection).document(doc_id).get().to_dict()

    def count(self, collection):
        with self.lock:
            return sum(1 for (c, _) in self.docs if c == collection)


class FakeDocumentReference:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self.collection_name = collection
        self.id = doc_id
        self.path = (collection, doc_id)

    def get(self, transaction=None):
        snapshot = self._db._snapshot(self)
        if transaction is not None:
            transaction._record_read(snapshot)
        return snapshot

    def create(self, data):
        self._db._commit([('create', self.path, data, {})])

    def set(self, data, merge=False):
        self._db._commit([('set', self.path, data, {'merge': merge})])

    def update(self, data):
        self._db._commit([('update', self.path, data, {})])

    def delete(self):
        self._db._commit([('delete', self.path, None, {})])


class FakeQuery:
    def __init__(self, db, collection, filters=(), orders=(), limit_count=None):
        self._db = db
        self._collection = collection
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._limit = limit_count

    def where(self, field_path=None, op_string=None, value=None, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return FakeQuery(self._db, self._collection, self._filters + ((field_path, op_string, value),),
                         self._orders, self._limit)

    def order_by(self, field_path, direction=firestore.Query.ASCENDING):
        return FakeQuery(self._db, self._collection, self._filters,
                         self._orders + ((field_path, direction),), self._limit)

    def limit(self, count):
        return FakeQuery(self._db, self._collection, self._filters, self._orders, count)

    def _matches(self, data):
        ops = {
            '==': lambda a, b: a == b,
            '!=': lambda a, b: a != b,
            '<': lambda a, b: a is not None and a < b,
            '<=': lambda a, b: a is not None and a <= b,
            '>': lambda a, b: a is not None and a > b,
            '>=': lambda a, b: a is not None and a >= b,
            'in': lambda a, b: a in b,
        }
        return all(ops[op](_get_path(data, field), value) for field, op, value in self._filters)

    def stream(self):
        with self._db.lock:
            rows = [
                (FakeDocumentReference(self._db, c, doc_id), data, update_time)
                for (c, doc_id), (data, update_time) in sorted(self._db.docs.items())
                if c == self._collection and self._matches(data)
            ]
        for field, direction in reversed(self._orders):
            rows.sort(key=lambda row: _get_path(row[1], field),
                      reverse=direction == firestore.Query.DESCENDING)
        if self._limit is not None:
            rows = rows[:self._limit]
        return iter([FakeSnapshot(ref, data, update_time) for ref, data, update_time in rows])


class FakeCollection(FakeQuery):
    def __init__(self, db, name):
        super().__init__(db, name)

    def document(self, doc_id):
        return FakeDocumentReference(self._db, self._collection, doc_id)


class FakeWriteBatch:
    def __init__(self, db):
        self._db = db
        self._ops = []

    def create(self, ref, data):
        self._ops.append(('create', ref.path, data, {}))

    def set(self, ref, data, merge=False):
        self._ops.append(('set', ref.path, data, {'merge': merge}))

    def update(self, ref, data):
        self._ops.append(('update', ref.path, data, {}))

    def delete(self, ref):
        self._ops.append(('delete', ref.path, None, {}))

    def commit(self):
        ops, self._ops = self._ops, []
        if ops:
            self._db._commit(ops)


class FakeTransaction(FakeWriteBatch):
    """
    Optimistic transaction driven by @firestore.transactional: reads record the
    update_time they saw and the commit aborts if any of those documents moved.
    """

    _ids = itertools.count(1)

    def __init__(self, db, max_attempts=5):
        super().__init__(db)
        self._max_attempts = max_attempts
        self._read_only = False
        self._id = None
        self._reads = {}
        self.attempts = 0

    @property
    def in_progress(self):
        return self._id is not None

    def _clean_up(self):
        self._ops = []
        self._reads = {}
        self._id = None

    def _begin(self, retry_id=None):
        if self.in_progress:
            raise ValueError("Transaction already in progress")
        self._id = next(self._ids)
        self.attempts += 1

    def _record_read(self, snapshot):
        self._reads.setdefault(snapshot.reference.path, snapshot.update_time)

    def _commit(self):
        if not self.in_progress:
            raise ValueError("Transaction not in progress")
        ops, self._ops = self._ops, []
        self._db._commit(ops, reads=self._reads)
        self._clean_up()
        return []

    def _rollback(self):
        if not self.in_progress:
            raise ValueError("Transaction not in progress")
        self._clean_up()


# --- Collaborators ---

class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + datetime.timedelta(**kwargs)
        return self.now


class FakeCatalog:
    def __init__(self, names):
        self.names = list(names)

    def list_all_animal_names(self):
        return list(self.names)


class ScriptedGenerator:
    """Returns fixed probabilities; counts calls. `delay` widens race windows in threaded tests."""

    def __init__(self, probabilities=None, fail_with=None, delay=0.0, response=None):
        self.probabilities = probabilities if probabilities is not None else dict(AUSTIN_PROBABILITIES)
        self.fail_with = fail_with
        self.delay = delay
        self.response = response
        self.calls = []
        self._lock = threading.Lock()

    @property
    def call_count(self):
        return len(self.calls)

    def suggest_probabilities(self, location_label, animal_names):
        with self._lock:
            self.calls.append((location_label, list(animal_names)))
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with
        if self.response is not None:
            return copy.deepcopy(self.response)
        return [{'name': name, 'probability': p} for name, p in self.probabilities.items()]


# --- Builders ---

def make_section(tasks, issued_at, expires_at, **extra):
    """tasks: list of (animalName, probability, requiredCount[, progressCount])."""
    animals = [
        ChallengeTask(animalName=t[0], probability=t[1], requiredCount=t[2], progressCount=t[3] if len(t) > 3 else 0)
        for t in tasks
    ]
    return ChallengeSection(animals=animals, issuedAt=issued_at, expiresAt=expires_at, **extra)


def put_user_challenge(db, user_id, region_key, daily=None, weekly=None, now=None):
    record = UserChallenge(
        userId=user_id, regionKey=region_key, regionId='manifest-1', location='Austin, Texas',
        daily=daily, weekly=weekly, createdAt=now, updatedAt=now, refreshedAt=now,
    )
    db.put('userChallenges', user_challenge_doc_id(user_id, region_key), record.model_dump())
    return record


# --- Fixtures ---

@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def clock():
    # A Wednesday afternoon in UTC
    return FrozenClock(datetime.datetime(2025, 6, 11, 15, 0, tzinfo=pytz.utc))


@pytest.fixture
def catalog():
    return FakeCatalog(AUSTIN_PROBABILITIES.keys())


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def registry(db, clock, catalog, generator):
    return ServiceRegistry(
        db=db,
        redis_client=None,
        generator=generator,
        catalog=catalog,
        clock=clock,
        jwt_secret_keys=[JWT_SECRET],
        admin_secret_key=ADMIN_SECRET,
    )


@pytest.fixture
def service(registry):
    return registry.challenge_service


@pytest.fixture
def app(registry):
    from main import create_app
    return create_app(registry, config={'RATELIMIT_ENABLED': False, 'RATELIMIT_STORAGE_URI': 'memory://'})


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(user_id, secret=JWT_SECRET, expires_in=datetime.timedelta(hours=1)):
    token = jwt.encode(
        {'user_id': user_id, 'exp': datetime.datetime.now(datetime.timezone.utc) + expires_in},
        secret,
        algorithm="HS256",
    )
    return {'Authorization': f'Bearer {token}'}


ADMIN_HEADERS = {'X-Admin-Secret': ADMIN_SECRET}
