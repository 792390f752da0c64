"""Notification inbox API endpoints."""

import logging

from flask import Blueprint, jsonify, request

from familyhub.auth import auth_required, get_caller
from familyhub.routes.helpers import (
    error_response, success_response, service_error_response, internal_error_response
)
from familyhub.services.errors import ServiceError
from familyhub.services.notification_service import NotificationService

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')
logger = logging.getLogger(__name__)


@notifications_bp.route('', methods=['GET'])
@auth_required
def list_notifications():
    """
    GET /api/notifications - The caller's latest notifications.

    Query Parameters:
    - limit (int): Maximum results (default: 50, max: 100)
    """
    limit = request.args.get('limit', default=50, type=int)

    try:
        notifications, unread = NotificationService.list_for(get_caller(), limit)
        return jsonify({
            'data': [notification.to_dict() for notification in notifications],
            'unread_count': unread,
            'message': f'Retrieved {len(notifications)} notification(s)'
        }), 200
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve notifications', e)


@notifications_bp.route('', methods=['PATCH'])
@auth_required
def mark_notifications_read():
    """
    PATCH /api/notifications - Mark notifications as read.

    Request Body:
    {
        "notification_ids": [1, 2, 3]
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or 'notification_ids' not in data:
        return error_response("Field 'notification_ids' is required")

    try:
        updated = NotificationService.mark_read(get_caller(), data['notification_ids'])
        return success_response({'updated': updated}, f'Marked {updated} notification(s) as read')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('update notifications', e)
