"""
Entry point for HTTP handlers and workers: turns raw request values into regions and
delegates to the stores. Holds no state of its own.
"""

import logging

from exceptions import InvalidLocation

logger = logging.getLogger(__name__)


class ChallengeService:

    def __init__(self, db, keyer, manifest_store, user_challenge_store, progress_tracker, users_collection='users'):
        self.db = db
        self.keyer = keyer
        self.manifest_store = manifest_store
        self.user_challenge_store = user_challenge_store
        self.progress_tracker = progress_tracker
        self.users_collection = users_collection

    def _stored_coordinates(self, user_id):
        snapshot = self.db.collection(self.users_collection).document(user_id).get()
        if not snapshot.exists:
            return None, None
        data = snapshot.to_dict() or {}
        return data.get('latitude'), data.get('longitude')

    def resolve_region(self, lat=None, lon=None, user_id=None):
        """Region for explicit coordinates, or for the user's last known location when none are given."""
        if (lat is None or lon is None) and user_id:
            lat, lon = self._stored_coordinates(user_id)
            if lat is None or lon is None:
                raise InvalidLocation("Missing lat/lng coordinates and no stored location for user.")
            logger.info(f"Using stored location for {user_id}")
        return self.keyer.key_for(lat, lon)

    # --- User operations ---

    def get_challenges_for_location(self, user_id, lat=None, lon=None, tz=None):
        region = self.resolve_region(lat, lon, user_id)
        return self.user_challenge_store.get_or_refresh(user_id, region, tz)

    def get_active(self, user_id):
        return self.user_challenge_store.get_active_only(user_id)

    def on_sighting_confirmed(self, user_id, animal_name, confirmed_at=None, sighting_id=None):
        return self.progress_tracker.on_sighting_confirmed(user_id, animal_name, confirmed_at, sighting_id)

    # --- Admin operations ---

    def get_manifest(self, lat, lon):
        return self.manifest_store.get_or_create(self.keyer.key_for(lat, lon))

    def list_manifests(self, limit=None):
        return self.manifest_store.list_all(limit)

    def regenerate_manifest(self, lat, lon):
        return self.manifest_store.regenerate(self.keyer.key_for(lat, lon))

    def delete_manifest(self, region_key):
        return self.manifest_store.delete_one(region_key)

    def clear_manifests(self):
        return self.manifest_store.delete_all()
