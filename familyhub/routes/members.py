"""Member and gamification settings API endpoints."""

import logging

from flask import Blueprint, request

from familyhub.auth import auth_required, get_caller
from familyhub.models import Member, MEMBER_ROLES
from familyhub.routes.helpers import (
    error_response, success_response, service_error_response, internal_error_response
)
from familyhub.services.errors import ServiceError
from familyhub.services.ledger_service import LedgerService, gamification_state
from familyhub.utils.amounts import format_amount

members_bp = Blueprint('members', __name__, url_prefix='/api/members')
logger = logging.getLogger(__name__)


@members_bp.route('', methods=['GET'])
@auth_required
def list_members():
    """
    GET /api/members - List members of the caller's family.

    Query Parameters:
    - role (str): Filter by role
    """
    caller = get_caller()
    role = request.args.get('role')

    if role and role not in MEMBER_ROLES:
        return error_response(f"Invalid role. Must be one of: {', '.join(MEMBER_ROLES)}")

    try:
        query = Member.query.filter_by(family_id=caller.family_id)
        if role:
            query = query.filter(Member.role == role)
        members = query.order_by(Member.name.asc(), Member.id.asc()).all()

        return success_response(
            [member.to_dict() for member in members],
            f'Retrieved {len(members)} member(s)'
        )
    except Exception as e:
        return internal_error_response('retrieve members', e)


@members_bp.route('/<int:member_id>/gamification', methods=['GET'])
@auth_required
def get_gamification(member_id):
    """GET /api/members/{id}/gamification - Balances, level and progress."""
    try:
        state = LedgerService.get_state(get_caller(), member_id)
        return success_response(state, 'Gamification state retrieved successfully')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve gamification state', e)


@members_bp.route('/<int:member_id>/settings', methods=['GET'])
@auth_required
def get_settings(member_id):
    try:
        settings = LedgerService.get_settings(get_caller(), member_id)
        return success_response(settings, 'Settings retrieved successfully')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve settings', e)


@members_bp.route('/<int:member_id>/settings', methods=['PATCH'])
@auth_required
def update_settings(member_id):
    """
    PATCH /api/members/{id}/settings - Configure gamification for a member.

    Request Body (all fields optional):
    {
        "gamification_enabled": true,
        "points_per_task": 15,
        "allowed_pages": ["chores", "rewards"]
    }
    """
    data = request.get_json(silent=True)

    try:
        member = LedgerService.configure_member(get_caller(), member_id, data)
        return success_response(LedgerService.serialize_settings(member), 'Settings updated successfully')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('update settings', e)


@members_bp.route('/<int:member_id>/award-points', methods=['POST'])
@auth_required
def award_points(member_id):
    """
    POST /api/members/{id}/award-points - Parent awards points directly.

    Request Body:
    {
        "amount": 15,
        "note": "Helped with groceries"
    }
    """
    data = request.get_json(silent=True) or {}

    if 'amount' not in data:
        return error_response("Field 'amount' is required")

    try:
        member, event = LedgerService.award_manual(
            get_caller(), member_id, data['amount'], data.get('note')
        )
        return success_response({
            'award': event.to_dict(),
            'member': gamification_state(member)
        }, f'Awarded {format_amount(event.amount)} points to {member.name}', 201)
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('award points', e)


@members_bp.route('/<int:member_id>/allowance-payments', methods=['GET'])
@auth_required
def list_allowance_payments(member_id):
    try:
        payments = LedgerService.list_allowance_payments(get_caller(), member_id)
        return success_response(
            [payment.to_dict() for payment in payments],
            f'Retrieved {len(payments)} allowance payment(s)'
        )
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve allowance payments', e)
