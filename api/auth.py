# FILE: spotitnow-backend/api/auth.py

import logging
import hmac
from functools import wraps
from flask import current_app, request
import jwt

from .error_utils import create_error_response, unauthorized_error


def get_registry():
    return current_app.extensions['service_registry']


def decode_token(token, secret_keys):
    """Tries each rotation key in turn. Returns the payload or raises jwt.InvalidTokenError."""
    last_error = jwt.InvalidTokenError("No JWT secret keys configured")
    for key in secret_keys:
        try:
            return jwt.decode(token, key, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise
        except jwt.InvalidTokenError as e:
            last_error = e
    raise last_error


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get('Authorization')
        if not auth_header or not auth_header.startswith('Bearer '):
            return create_error_response("TOKEN_MISSING", status_code=401)
        token = auth_header.split(' ')[1]
        try:
            data = decode_token(token, get_registry().jwt_secret_keys)
            kwargs['user_id'] = data['user_id']
        except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError):
            return create_error_response("TOKEN_INVALID", status_code=401)
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Shared-secret gate for admin and internal routes: X-Admin-Secret header or ?secret=."""
    @wraps(f)
    def decorated(*args, **kwargs):
        admin_secret_key = get_registry().admin_secret_key
        secret = request.headers.get('X-Admin-Secret') or request.args.get('secret')
        if not admin_secret_key or not secret or not hmac.compare_digest(secret, admin_secret_key):
            logging.warning(f"Rejected admin request to {request.path}")
            return unauthorized_error()
        return f(*args, **kwargs)
    return decorated
