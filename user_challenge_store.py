import datetime
import logging

import pytz
from google.cloud import firestore

from challenge_config import ChallengeConfig
from models import UserChallenge, ChallengeSection, user_challenge_doc_id
from timezone_utils import get_period_expiry, resolve_timezone, utc_now
from xp_awarder import compute_xp_potential

logger = logging.getLogger(__name__)

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=pytz.utc)


def _recency(record):
    return record.refreshedAt or record.createdAt or EPOCH


@firestore.transactional
def refresh_sections_transaction(transaction, ref, user_id, region_key, manifest, issue_section, now):
    """
    Re-reads the record and replaces only the sections still missing or expired.
    A concurrent refresh that committed first makes this one a plain read.
    """
    snapshot = ref.get(transaction=transaction)
    current = UserChallenge.model_validate(snapshot.to_dict()) if snapshot.exists else None
    stale = current.stale_kinds(now) if current else list(ChallengeConfig.CHALLENGE_KINDS)
    if not stale:
        logger.info(f"Challenges for {user_id} in {region_key} were refreshed concurrently, using them.")
        return current

    fresh = {kind: issue_section(kind) for kind in stale}
    if current is None:
        record = UserChallenge(
            userId=user_id,
            regionKey=region_key,
            regionId=manifest.manifestId,
            location=manifest.location,
            createdAt=now,
            updatedAt=now,
            refreshedAt=now,
            **fresh,
        )
        transaction.set(ref, record.model_dump())
        return record

    changes = {'regionId': manifest.manifestId, 'location': manifest.location, 'updatedAt': now, 'refreshedAt': now}
    updates = {kind: section.model_dump() for kind, section in fresh.items()}
    updates.update(changes)
    transaction.update(ref, updates)
    return current.model_copy(update={**fresh, **changes})


class UserChallengeStore:
    """
    Per-user challenge state at userChallenges/{userId}__{regionKey}.

    Expired sections are replaced whole, never merged, inside a Firestore transaction:
    when two devices refresh the same expired section at once exactly one replacement
    commits and the other re-reads the winner's section.
    """

    def __init__(self, db, manifest_store, sampler, mastered_animals=None, clock=utc_now,
                 collection='userChallenges'):
        self.db = db
        self.manifest_store = manifest_store
        self.sampler = sampler
        self.mastered_animals = mastered_animals
        self.clock = clock
        self.collection = collection

    def _ref(self, user_id, region_key):
        return self.db.collection(self.collection).document(user_challenge_doc_id(user_id, region_key))

    def _mastered(self, user_id):
        if not self.sampler.exclude_mastered or not self.mastered_animals:
            return set()
        return self.mastered_animals.mastered_animals(user_id)

    def build_section(self, kind, manifest, user_id, now, tz, mastered=None):
        seed = f"{user_id}:{manifest.regionKey}:{kind}:{now.isoformat()}"
        tasks = self.sampler.sample(manifest, kind, mastered, seed=seed)
        section = ChallengeSection(
            animals=tasks,
            issuedAt=now,
            expiresAt=get_period_expiry(kind, now, tz),
            xpPotential=compute_xp_potential(tasks),
        )
        logger.info(f"Generated new {kind} challenge for {user_id} in {manifest.regionKey}: "
                    f"animals={[t.animalName for t in tasks]}, expires={section.expiresAt}, "
                    f"xpPotential={section.xpPotential}")
        return section

    def get_or_refresh(self, user_id, region, tz_name=None):
        """
        Returns the user's record for the region, issuing fresh daily/weekly sections for
        any that are missing or expired. Live sections are returned untouched.
        """
        tz = resolve_timezone(tz_name)
        ref = self._ref(user_id, region.key)
        now = self.clock()

        snapshot = ref.get()
        if snapshot.exists:
            current = UserChallenge.model_validate(snapshot.to_dict())
            if not current.stale_kinds(now):
                logger.info(f"Returning existing challenges for {user_id} in {region.key}")
                return current

        # The manifest may need an AI call, so it is resolved before the transaction starts
        manifest = self.manifest_store.get_or_create(region)
        mastered = self._mastered(user_id)

        def issue_section(kind):
            return self.build_section(kind, manifest, user_id, now, tz, mastered)

        transaction = self.db.transaction(max_attempts=ChallengeConfig.MAX_WRITE_ATTEMPTS)
        return refresh_sections_transaction(transaction, ref, user_id, region.key, manifest, issue_section, now)

    def _latest_live(self, user_id, now):
        query = self.db.collection(self.collection).where(filter=firestore.FieldFilter('userId', '==', user_id))
        live = []
        for doc in query.stream():
            record = UserChallenge.model_validate(doc.to_dict())
            if record.has_live_section(now):
                live.append((doc, record))
        if not live:
            return None, None
        return max(live, key=lambda pair: _recency(pair[1]))

    def get_active_only(self, user_id):
        """Most recently refreshed record with a live section, expired sections blanked. Never writes."""
        now = self.clock()
        _, record = self._latest_live(user_id, now)
        return record.live_view(now) if record else None

    def active_record_ref(self, user_id):
        """Reference to the record get_active_only() resolves, or None."""
        snapshot, _ = self._latest_live(user_id, self.clock())
        return snapshot.reference if snapshot else None
