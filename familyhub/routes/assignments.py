"""Assignment Workflow API routes.

This module implements the chore assignment workflow:
- Listing and viewing assignments
- Completing assignments (member marks as done)
- Verifying assignments (parent approves and credits the ledger, or rejects)
- Reassigning rejected assignments

State machine: assigned → completed → verified
After rejection: completed → rejected → assigned
"""

import logging

from flask import Blueprint, request

from familyhub.auth import auth_required, get_caller
from familyhub.routes.helpers import (
    error_response, success_response, list_response,
    service_error_response, internal_error_response, pagination_args
)
from familyhub.services.assignment_service import AssignmentService
from familyhub.services.chore_service import parse_int
from familyhub.services.errors import ServiceError

assignments_bp = Blueprint('assignments', __name__, url_prefix='/api/assignments')
logger = logging.getLogger(__name__)


@assignments_bp.route('', methods=['GET'])
@auth_required
def list_assignments():
    """List the family's assignments.

    Query params:
        - assigned_to: Filter by member ID
        - status: Filter by status (assigned, completed, verified, rejected)
        - chore_id: Filter by chore definition
        - limit / offset: Pagination

    Returns:
        JSON: {data: [assignments], total, limit, offset, message}
    """
    limit, offset = pagination_args(request)

    try:
        assignments, total = AssignmentService.list_assignments(
            get_caller(),
            assigned_to=request.args.get('assigned_to', type=int),
            status=request.args.get('status'),
            chore_id=request.args.get('chore_id', type=int),
            limit=limit,
            offset=offset
        )
        return list_response([a.to_dict() for a in assignments], total, limit, offset,
                             f'Retrieved {len(assignments)} assignment(s)')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve assignments', e)


@assignments_bp.route('/<int:assignment_id>', methods=['GET'])
@auth_required
def get_assignment(assignment_id: int):
    try:
        assignment = AssignmentService.get_assignment(assignment_id, get_caller().family_id)
        return success_response(assignment.to_dict(), 'Assignment retrieved successfully')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve assignment', e)


@assignments_bp.route('/<int:assignment_id>/complete', methods=['POST'])
@auth_required
def complete_assignment(assignment_id: int):
    """Member marks an assignment as done.

    State transition: assigned → completed

    Request body:
        {
            "notes": str (optional)
        }
    """
    data = request.get_json(silent=True) or {}

    try:
        assignment = AssignmentService.complete(get_caller(), assignment_id, data.get('notes'))
        return success_response(assignment.to_dict(), 'Chore marked complete, pending verification')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('complete assignment', e)


@assignments_bp.route('/<int:assignment_id>/verify', methods=['POST'])
@auth_required
def verify_assignment(assignment_id: int):
    """Parent approves or rejects a completed assignment.

    State transition: completed → verified (approved) or completed → rejected

    Request body:
        {
            "approved": bool (required),
            "notes": str (optional)
        }

    Returns:
        JSON: {data: {assignment, ledger_delta}, message: str}
    """
    data = request.get_json(silent=True) or {}

    approved = data.get('approved')
    if not isinstance(approved, bool):
        return error_response("Field 'approved' is required and must be a boolean")

    try:
        assignment, ledger_delta = AssignmentService.verify(
            get_caller(), assignment_id, approved, data.get('notes')
        )
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('verify assignment', e)

    if not approved:
        message = 'Chore rejected'
    elif ledger_delta:
        message = f"Chore verified, {ledger_delta['amount']} points awarded"
    else:
        message = 'Chore verified'

    return success_response({
        'assignment': assignment.to_dict(),
        'ledger_delta': ledger_delta
    }, message)


@assignments_bp.route('/<int:assignment_id>/reassign', methods=['POST'])
@auth_required
def reassign_assignment(assignment_id: int):
    """Parent reopens a rejected assignment.

    State transition: rejected → assigned

    Request body:
        {
            "assigned_to": int (optional, keeps the current assignee if omitted)
        }
    """
    data = request.get_json(silent=True) or {}

    assignee_id = None
    if data.get('assigned_to') not in (None, ''):
        try:
            assignee_id = parse_int(data['assigned_to'], allow_none=False)
        except (ValueError, TypeError):
            return error_response('assigned_to must be a valid integer')

    try:
        assignment = AssignmentService.reassign(get_caller(), assignment_id, assignee_id)
        return success_response(assignment.to_dict(), 'Chore reassigned successfully')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('reassign assignment', e)
