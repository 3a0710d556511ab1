# FILE: spotitnow-backend/api/challenges.py

import logging
from flask import Blueprint, request, jsonify

from .auth import admin_required, get_registry, token_required
from .notifications import notify_challenge_transitions
from .pydantic_models import LocationQuery, SightingConfirmedEvent, SightingProgressResponse, UserChallengesResponse
from extensions import limiter

challenges_bp = Blueprint('challenges_bp', __name__)


@challenges_bp.route('/user', methods=['GET'])
@token_required
@limiter.limit("60 per minute")
def get_user_challenges(user_id):
    """Current daily/weekly challenges for the caller's region, reissuing expired sections."""
    query = LocationQuery.model_validate(request.args.to_dict())
    challenge = get_registry().challenge_service.get_challenges_for_location(user_id, query.lat, query.lng, query.tz)
    return jsonify(UserChallengesResponse(active=True, challenge=challenge).model_dump(mode='json')), 200


@challenges_bp.route('/user/active', methods=['GET'])
@token_required
@limiter.exempt
def get_active_user_challenges(user_id):
    """Polling endpoint. Never generates anything."""
    challenge = get_registry().challenge_service.get_active(user_id)
    response = UserChallengesResponse(active=challenge is not None, challenge=challenge)
    return jsonify(response.model_dump(mode='json')), 200


@challenges_bp.route('/sightings/confirmed', methods=['POST'])
@admin_required
@limiter.exempt
def sighting_confirmed():
    """Called by the sighting flow once an identification is final."""
    event = SightingConfirmedEvent.model_validate(request.get_json(silent=True) or {})
    registry = get_registry()
    transitions = registry.challenge_service.on_sighting_confirmed(
        event.userId, event.animalName, event.confirmedAt, event.sightingId)
    if any(t.justCompleted for t in transitions):
        notify_challenge_transitions(registry.db, event.userId, transitions)
    logging.info(f"Sighting {event.sightingId or event.animalName} for {event.userId}: {len(transitions)} transition(s)")
    return jsonify(SightingProgressResponse(transitions=transitions).model_dump(mode='json')), 200
