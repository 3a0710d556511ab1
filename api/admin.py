# FILE: spotitnow-backend/api/admin.py

import logging
from flask import Blueprint, request, jsonify

from .auth import admin_required, get_registry
from .error_utils import not_found_error
from .pydantic_models import LocationQuery, ManifestListResponse, ManifestResponse, RegenerateManifestRequest

admin_bp = Blueprint('admin_bp', __name__)


@admin_bp.route('/manifest', methods=['GET'])
@admin_required
def get_region_manifest():
    """Manifest for the region containing lat/lng, generating it on first request."""
    query = LocationQuery.model_validate(request.args.to_dict())
    manifest = get_registry().challenge_service.get_manifest(query.lat, query.lng)
    return jsonify(ManifestResponse(manifest=manifest).model_dump(mode='json')), 200


@admin_bp.route('/all', methods=['GET'])
@admin_required
def list_region_manifests():
    limit = request.args.get('limit', type=int)
    manifests = get_registry().challenge_service.list_manifests(limit)
    return jsonify(ManifestListResponse(count=len(manifests), manifests=manifests).model_dump(mode='json')), 200


@admin_bp.route('/regenerate', methods=['POST'])
@admin_required
def regenerate_region_manifest():
    req_data = RegenerateManifestRequest.model_validate(request.get_json(silent=True) or {})
    manifest = get_registry().challenge_service.regenerate_manifest(req_data.lat, req_data.lng)
    logging.info(f"Admin regenerated manifest for {manifest.regionKey}")
    return jsonify(ManifestResponse(manifest=manifest).model_dump(mode='json')), 200


@admin_bp.route('/clear-all', methods=['DELETE'])
@admin_required
def clear_region_manifests():
    deleted = get_registry().challenge_service.clear_manifests()
    logging.info(f"Admin cleared {deleted} regional manifests")
    return jsonify({"message": "All regional manifests cleared.", "deletedCount": deleted}), 200


@admin_bp.route('/<region_key>', methods=['DELETE'])
@admin_required
def delete_region_manifest(region_key):
    if not get_registry().challenge_service.delete_manifest(region_key):
        return not_found_error(f"No manifest for region {region_key}.")
    return jsonify({"message": "Regional manifest deleted.", "regionKey": region_key}), 200
