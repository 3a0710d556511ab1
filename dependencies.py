"""
Dependency injection container for the SpotItNow challenge backend.
A ServiceRegistry owns the shared clients (Firestore, Redis) and the services built on
them. The Flask app creates one at startup and stores it on app.extensions; Celery
workers build one lazily per process.
"""

import logging
import os
import threading

import redis
from google.cloud import firestore
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from animal_catalog import FirestoreAnimalCatalog, FirestoreMasteredAnimals
from challenge_sampler import ChallengeSampler
from challenge_service import ChallengeService
from firebase_init import initialize_firebase
from geocoder import NominatimGeocoder
from manifest_generator import GeminiManifestGenerator
from manifest_store import ManifestStore
from progress_tracker import ProgressTracker
from region_keyer import RegionKeyer
from timezone_utils import utc_now
from user_challenge_store import UserChallengeStore
from xp_awarder import XPAwarder


def get_jwt_secret_keys():
    """Current, previous and next signing keys, for rotation. JWT_SECRET_KEY is the single-key fallback."""
    keys = [os.environ.get(f"JWT_SECRET_KEY_{slot}") for slot in ('CURRENT', 'PREVIOUS', 'NEXT')]
    keys = [key for key in keys if key]
    if not keys and os.environ.get("JWT_SECRET_KEY"):
        keys = [os.environ.get("JWT_SECRET_KEY")]
    return keys


def get_redis_connection(url=None):
    """
    Redis client backed by a connection pool with retry logic.
    Returns None when Redis is unreachable; callers treat Redis as optional.
    """
    try:
        retry = Retry(ExponentialBackoff(), retries=3)
        connection_pool = redis.ConnectionPool.from_url(
            url or os.environ.get('REDIS_URL', 'redis://localhost:6379/0'),
            decode_responses=True,
            retry=retry,
            max_connections=20,
            health_check_interval=30,
            socket_connect_timeout=5,
            socket_timeout=10
        )
        connection = redis.Redis(connection_pool=connection_pool)
        connection.ping()
        logging.info("Redis connection pool initialized successfully")
        return connection
    except redis.exceptions.ConnectionError as e:
        logging.error(f"Failed to connect to Redis: {e}")
        return None


class ServiceRegistry:
    """Process-wide clients and services with an explicit lifecycle (build once, close at shutdown)."""

    def __init__(self, db=None, redis_client=None, geocoder=None, generator=None, catalog=None,
                 sampler=None, clock=utc_now, jwt_secret_keys=None, admin_secret_key=None):
        self._db = db
        self.redis_client = redis_client
        self.geocoder = geocoder
        self._generator = generator
        self._catalog = catalog
        self._sampler = sampler
        self.clock = clock
        self.jwt_secret_keys = jwt_secret_keys if jwt_secret_keys is not None else get_jwt_secret_keys()
        self.admin_secret_key = admin_secret_key if admin_secret_key is not None else os.environ.get("ADMIN_SECRET_KEY")
        self._challenge_service = None
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls):
        return cls(redis_client=get_redis_connection(), geocoder=NominatimGeocoder())

    @property
    def db(self):
        if self._db is None:
            initialize_firebase()
            self._db = firestore.Client()
        return self._db

    @property
    def challenge_service(self):
        with self._lock:
            if self._challenge_service is None:
                self._challenge_service = self._build()
        return self._challenge_service

    def _build(self):
        db = self.db
        keyer = RegionKeyer(geocoder=self.geocoder)
        manifest_store = ManifestStore(
            db,
            catalog=self._catalog or FirestoreAnimalCatalog(db),
            generator=self._generator or GeminiManifestGenerator(redis_client=self.redis_client),
            keyer=keyer,
            redis_client=self.redis_client,
            clock=self.clock,
        )
        user_challenge_store = UserChallengeStore(
            db,
            manifest_store,
            self._sampler or ChallengeSampler(),
            mastered_animals=FirestoreMasteredAnimals(db),
            clock=self.clock,
        )
        progress_tracker = ProgressTracker(db, user_challenge_store, XPAwarder(db), clock=self.clock)
        logging.info("Challenge services initialized.")
        return ChallengeService(db, keyer, manifest_store, user_challenge_store, progress_tracker)

    def close(self):
        if self.redis_client is not None:
            try:
                self.redis_client.close()
            except redis.exceptions.RedisError as e:
                logging.warning(f"Error closing Redis connection: {e}")
            self.redis_client = None
        if self._db is not None and hasattr(self._db, 'close'):
            self._db.close()
        self._challenge_service = None
        logging.info("Service registry closed.")
