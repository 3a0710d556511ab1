# FILE: spotitnow-backend/tasks.py

import logging
import datetime
from google.api_core import exceptions as gcp_exceptions

from celery_worker import celery_app
from dependencies import ServiceRegistry
from exceptions import InvalidLocation, ManifestGenerationFailed
from logging_config import setup_logging
from api.notifications import notify_challenge_transitions

# --- SETUP & CONFIG ---
setup_logging()

# --- LAZY INITIALIZED REGISTRY ---
_registry = None
def get_registry():
    global _registry
    if _registry is None:
        _registry = ServiceRegistry.from_env()
    return _registry

def set_registry(registry):
    """Swaps the worker's registry (tests, or a worker sharing one with an app)."""
    global _registry
    _registry = registry


@celery_app.task(bind=True, name="process_confirmed_sighting", max_retries=3, default_retry_delay=30, acks_late=True)
def process_confirmed_sighting(self, user_id, animal_name, confirmed_at=None, sighting_id=None):
    """
    Applies a confirmed sighting to the user's challenges and notifies on completion.
    Safe to retry: sections remember which sightings they already counted.
    """
    registry = get_registry()
    if isinstance(confirmed_at, str):
        confirmed_at = datetime.datetime.fromisoformat(confirmed_at)
    try:
        transitions = registry.challenge_service.on_sighting_confirmed(user_id, animal_name, confirmed_at, sighting_id)
    except (gcp_exceptions.Aborted, gcp_exceptions.ServiceUnavailable, gcp_exceptions.DeadlineExceeded) as e:
        logging.warning(f"Sighting update for {user_id} hit a transient error, retrying: {e}")
        raise self.retry(exc=e)

    sent = notify_challenge_transitions(registry.db, user_id, transitions)
    logging.info(f"Processed sighting of {animal_name} for {user_id}: {len(transitions)} transition(s), {sent} notification(s).")
    return [t.model_dump(mode='json') for t in transitions]


@celery_app.task(bind=True, name="warm_region_manifest", max_retries=2, default_retry_delay=300)
def warm_region_manifest(self, lat, lng):
    """Generates the region's manifest ahead of the first user request."""
    registry = get_registry()
    try:
        manifest = registry.challenge_service.get_manifest(lat, lng)
    except InvalidLocation as e:
        logging.error(f"Not warming manifest for invalid coordinates ({lat}, {lng}): {e}")
        return None
    except ManifestGenerationFailed as e:
        logging.warning(f"Manifest warm-up for ({lat}, {lng}) failed, retrying: {e}")
        raise self.retry(exc=e)
    logging.info(f"Manifest ready for region {manifest.regionKey} ({len(manifest.animalManifest)} animals).")
    return manifest.regionKey
