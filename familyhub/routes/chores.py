"""Chore definition API endpoints."""

import logging
from datetime import date

from flask import Blueprint, request

from familyhub.auth import auth_required, get_caller
from familyhub.models import Chore
from familyhub.routes.helpers import (
    error_response, success_response, list_response,
    service_error_response, internal_error_response, pagination_args
)
from familyhub.services.assignment_service import AssignmentService
from familyhub.services.chore_service import ChoreService, parse_int
from familyhub.services.errors import ServiceError

chores_bp = Blueprint('chores', __name__, url_prefix='/api/chores')
logger = logging.getLogger(__name__)


def _parse_bool(value):
    """Parse a boolean value from JSON or query string input.

    Handles:
    - Python booleans: True, False
    - Strings: 'on', 'true', '1', 'yes' (case-insensitive)
    - None/missing: False
    """
    if isinstance(value, bool):
        return value
    if value is None or value == '':
        return False
    if isinstance(value, str):
        return value.lower() in ('on', 'true', '1', 'yes')
    return bool(value)


def serialize_chore(chore: Chore, include_counts=False) -> dict:
    """Serialize a Chore object to dictionary."""
    result = chore.to_dict()

    if include_counts:
        statuses = [a.status for a in chore.assignments]
        result['assignment_count'] = len(statuses)
        result['outstanding_count'] = sum(1 for s in statuses if s != 'verified')

    return result


@chores_bp.route('', methods=['GET'])
@auth_required
def list_chores():
    """
    GET /api/chores - List the family's chores.

    Query Parameters:
    - category (str): Filter by category
    - limit (int): Number of results per page (default: 50)
    - offset (int): Offset for pagination (default: 0)
    """
    limit, offset = pagination_args(request)
    category = request.args.get('category')

    try:
        chores, total = ChoreService.list_chores(get_caller(), category, limit, offset)
        chores_data = [serialize_chore(chore, include_counts=True) for chore in chores]
        return list_response(chores_data, total, limit, offset,
                             f'Retrieved {len(chores_data)} chore(s)')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve chores', e)


@chores_bp.route('', methods=['POST'])
@auth_required
def create_chore():
    """
    POST /api/chores - Create a new chore.

    Request Body:
    {
        "title": "Take out trash",
        "description": "Roll bins to curb",
        "points_reward": 25,
        "allowance_cents": 100,
        "category": "outdoor",
        "difficulty": "easy",
        "estimated_minutes": 10,
        "icon": "trash"
    }
    """
    data = request.get_json(silent=True)

    try:
        chore = ChoreService.create_chore(get_caller(), data)
        return success_response(serialize_chore(chore), "Chore created successfully", 201)
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('create chore', e)


@chores_bp.route('/<int:chore_id>', methods=['GET'])
@auth_required
def get_chore(chore_id):
    """GET /api/chores/{id} - Get chore details with assignment counts."""
    try:
        chore = ChoreService.get_chore(chore_id, get_caller().family_id)
        return success_response(
            serialize_chore(chore, include_counts=True),
            "Chore retrieved successfully"
        )
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve chore', e)


@chores_bp.route('/<int:chore_id>', methods=['PUT'])
@auth_required
def update_chore(chore_id):
    """
    PUT /api/chores/{id} - Update a chore.

    Request Body: Partial chore object with fields to update.
    """
    data = request.get_json(silent=True)

    try:
        chore = ChoreService.update_chore(get_caller(), chore_id, data)
        return success_response(serialize_chore(chore), "Chore updated successfully")
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('update chore', e)


@chores_bp.route('/<int:chore_id>', methods=['DELETE'])
@auth_required
def delete_chore(chore_id):
    """
    DELETE /api/chores/{id} - Delete a chore.

    Query Parameters:
    - force (bool): Delete even when assignments are still outstanding
    """
    force = _parse_bool(request.args.get('force'))

    try:
        summary = ChoreService.delete_chore(get_caller(), chore_id, force=force)
        return success_response(summary, "Chore deleted successfully")
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('delete chore', e)


@chores_bp.route('/<int:chore_id>/assign', methods=['POST'])
@auth_required
def assign_chore(chore_id):
    """
    POST /api/chores/{id}/assign - Assign a chore to a family member.

    Request Body:
    {
        "assigned_to": 3,
        "due_date": "2025-01-31",
        "notes": "Before dinner"
    }
    """
    data = request.get_json(silent=True) or {}

    if data.get('assigned_to') in (None, ''):
        return error_response("Field 'assigned_to' is required")

    try:
        assignee_id = parse_int(data['assigned_to'], allow_none=False)
    except (ValueError, TypeError):
        return error_response('assigned_to must be a valid integer')

    due_date = None
    if data.get('due_date'):
        try:
            due_date = date.fromisoformat(data['due_date'])
        except (ValueError, TypeError):
            return error_response('due_date must be an ISO date (YYYY-MM-DD)')

    try:
        assignment = AssignmentService.assign(
            get_caller(), chore_id, assignee_id,
            due_date=due_date, notes=data.get('notes')
        )
        return success_response(assignment.to_dict(), "Chore assigned successfully", 201)
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('assign chore', e)
