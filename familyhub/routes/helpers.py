"""Response helpers shared by the API blueprints."""

import logging

from flask import jsonify

from familyhub.models import db
from familyhub.services.errors import ServiceError

logger = logging.getLogger(__name__)


def error_response(message, status_code=400, details=None, kind=None):
    """Generate consistent error response."""
    response = {
        'error': kind or ('ValidationError' if status_code == 400 else 'Error'),
        'message': message
    }
    if details:
        response['details'] = details
    return jsonify(response), status_code


def success_response(data, message="Success", status_code=200):
    """Generate consistent success response."""
    return jsonify({
        'data': data,
        'message': message
    }), status_code


def list_response(items, total, limit, offset, message):
    return jsonify({
        'data': items,
        'total': total,
        'limit': limit,
        'offset': offset,
        'message': message
    }), 200


def service_error_response(error: ServiceError):
    """Translate a service error into its JSON body and status."""
    return jsonify(error.to_dict()), error.status_code


def internal_error_response(action: str, error: Exception):
    """Roll back and report an unexpected failure."""
    logger.error(f"Failed to {action}: {error}", exc_info=True)
    db.session.rollback()
    return jsonify({
        'error': 'Internal Server Error',
        'message': f'Failed to {action}',
        'details': str(error)
    }), 500


def pagination_args(request, default_limit=50, max_limit=100):
    """Read limit/offset query parameters, clamping limit to max_limit."""
    limit = request.args.get('limit', default=default_limit, type=int)
    offset = request.args.get('offset', default=0, type=int)
    if limit > max_limit:
        limit = max_limit
    if limit < 1:
        limit = default_limit
    if offset < 0:
        offset = 0
    return limit, offset
