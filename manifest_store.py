import logging
import math
import time
import uuid

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from challenge_config import ChallengeConfig
from exceptions import ManifestGenerationFailed
from manifest_generator import normalize_manifest, probability_distribution
from models import ManifestSummary, RegionManifest
from timezone_utils import utc_now

logger = logging.getLogger(__name__)


class ManifestStore:
    """
    One probability manifest per region, stored at regionManifests/{regionKey}.

    The document id is the region key, so DocumentReference.create() is the uniqueness
    check: a writer that loses a race gets AlreadyExists and reads the winner's manifest.
    When Redis is available a short lock additionally keeps concurrent first requests
    from calling the AI more than once.
    """

    def __init__(self, db, catalog, generator, keyer=None, redis_client=None, clock=utc_now,
                 collection='regionManifests', lock_seconds=None, poll_seconds=None, sleep=time.sleep):
        self.db = db
        self.catalog = catalog
        self.generator = generator
        self.keyer = keyer
        self.redis_client = redis_client
        self.clock = clock
        self.collection = collection
        self.lock_seconds = ChallengeConfig.MANIFEST_LOCK_SECONDS if lock_seconds is None else lock_seconds
        self.poll_seconds = ChallengeConfig.MANIFEST_WAIT_POLL_SECONDS if poll_seconds is None else poll_seconds
        self.sleep = sleep

    def _ref(self, region_key):
        return self.db.collection(self.collection).document(region_key)

    def get(self, region_key):
        snapshot = self._ref(region_key).get()
        if not snapshot.exists:
            return None
        return RegionManifest.from_firestore(snapshot.to_dict())

    def get_or_create(self, region):
        existing = self.get(region.key)
        if existing:
            logger.info(f"Manifest cache hit for region {region.key}")
            return existing

        logger.info(f"Manifest cache miss for region {region.key}, generating.")
        if not self.redis_client:
            return self._create(region)
        return self._create_under_lock(region)

    def _create_under_lock(self, region):
        lock_key = f"lock:region_manifest:{region.key}"
        deadline = time.monotonic() + self.lock_seconds
        while True:
            token = str(uuid.uuid4())
            try:
                acquired = self.redis_client.set(lock_key, token, ex=max(1, math.ceil(self.lock_seconds)), nx=True)
            except Exception as e:
                logger.warning(f"Redis lock unavailable for {region.key}, relying on Firestore uniqueness: {e}")
                return self._create(region)

            if acquired:
                try:
                    existing = self.get(region.key)
                    if existing:
                        return existing
                    return self._create(region)
                finally:
                    self._release(lock_key, token)

            existing = self.get(region.key)
            if existing:
                logger.info(f"Manifest for {region.key} was generated by a concurrent request.")
                return existing
            if time.monotonic() >= deadline:
                raise ManifestGenerationFailed(
                    f"Timed out waiting for manifest generation of region {region.key}.", region.key)
            self.sleep(self.poll_seconds)

    def _release(self, lock_key, token):
        try:
            if self.redis_client.get(lock_key) == token:
                self.redis_client.delete(lock_key)
        except Exception as e:
            logger.warning(f"Failed to release {lock_key}: {e}")

    def _generate(self, region):
        animal_names = self.catalog.list_all_animal_names()
        if not animal_names:
            raise ManifestGenerationFailed(
                "No animals found in catalog. Please add animals before generating challenges.", region.key)

        location = self.keyer.describe(region) if self.keyer else region.displayLocation
        try:
            raw = self.generator.suggest_probabilities(location, animal_names)
        except ManifestGenerationFailed as e:
            e.region_key = region.key
            raise
        except Exception as e:
            logger.error(f"Manifest generator failed for {region.key}: {e}", exc_info=True)
            raise ManifestGenerationFailed(f"Failed to generate probability manifest: {e}", region.key) from e

        entries, matched = normalize_manifest(raw, animal_names)
        if matched == 0:
            raise ManifestGenerationFailed("AI returned an empty or malformed manifest.", region.key)

        logger.info(f"Probability manifest generated for {region.key} ({location}): size={len(entries)}, "
                    f"distribution={probability_distribution(entries)}")
        manifest = RegionManifest(
            regionKey=region.key,
            manifestId=str(uuid.uuid4()),
            location=location,
            center=region.center,
            animalManifest=entries,
            createdAt=self.clock(),
        )
        return manifest, raw

    def _create(self, region):
        manifest, raw = self._generate(region)
        for _ in range(ChallengeConfig.MAX_WRITE_ATTEMPTS):
            try:
                self._ref(region.key).create(manifest.to_firestore(raw_response=raw))
                logger.info(f"New region manifest created: {region.key} ({manifest.manifestId})")
                return manifest
            except gcp_exceptions.AlreadyExists:
                logger.warning(f"Manifest for {region.key} already exists, using the stored one.")
                existing = self.get(region.key)
                if existing:
                    return existing
        raise ManifestGenerationFailed(f"Could not persist manifest for region {region.key}.", region.key)

    # --- Admin operations ---

    def regenerate(self, region):
        """
        Replaces the region's manifest with a freshly generated one. Generation happens first,
        so a failed AI call leaves the existing manifest in place.
        """
        manifest, raw = self._generate(region)
        self._ref(region.key).set(manifest.to_firestore(raw_response=raw))
        logger.info(f"Region manifest regenerated: {region.key} ({manifest.manifestId})")
        return manifest

    def delete_one(self, region_key):
        ref = self._ref(region_key)
        if not ref.get().exists:
            return False
        ref.delete()
        logger.info(f"Region manifest deleted: {region_key}")
        return True

    def delete_all(self):
        batch = self.db.batch()
        deleted = 0
        for doc in self.db.collection(self.collection).stream():
            batch.delete(doc.reference)
            deleted += 1
            if deleted % ChallengeConfig.FIRESTORE_BATCH_SIZE == 0:
                batch.commit()
                batch = self.db.batch()
        if deleted % ChallengeConfig.FIRESTORE_BATCH_SIZE != 0:
            batch.commit()
        logger.info(f"Cleared {deleted} regional manifests.")
        return deleted

    def list_all(self, limit=None):
        query = self.db.collection(self.collection).order_by(
            'createdAt', direction=firestore.Query.DESCENDING
        ).limit(limit or ChallengeConfig.MANIFEST_LIST_LIMIT)
        summaries = []
        for doc in query.stream():
            manifest = RegionManifest.from_firestore(doc.to_dict())
            summaries.append(ManifestSummary(
                regionKey=manifest.regionKey,
                manifestId=manifest.manifestId,
                location=manifest.location,
                center=manifest.center,
                manifestSize=len(manifest.animalManifest),
                highProbabilityCount=sum(
                    1 for a in manifest.animalManifest if a.probability >= ChallengeConfig.HIGH_PROBABILITY_THRESHOLD),
                createdAt=manifest.createdAt,
            ))
        return summaries
