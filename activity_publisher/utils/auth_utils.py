"""
Authentication utilities for the API routes
"""
import hmac
import logging
from functools import wraps

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


def _bearer_token() -> str:
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return ''
    return header[len('Bearer '):].strip()


def api_token_required(f):
    """Decorator to require 'Authorization: Bearer <API_TOKEN>' on a route"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('API_TOKEN') or ''
        provided = _bearer_token()

        if not provided:
            logger.warning(f"Missing bearer token on {request.method} {request.path}")
            return jsonify({'error': 'Unauthorized: Bearer token required'}), 401

        # An unset API_TOKEN rejects every caller
        if not expected or not hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8')):
            logger.warning(f"Invalid bearer token on {request.method} {request.path}")
            return jsonify({'error': 'Unauthorized: Invalid token'}), 401

        return f(*args, **kwargs)
    return decorated_function
