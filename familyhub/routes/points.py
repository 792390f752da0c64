"""Points API endpoints for familyhub."""

import logging

from flask import Blueprint, request

from familyhub.auth import auth_required, get_caller
from familyhub.routes.helpers import (
    error_response, success_response, list_response,
    service_error_response, internal_error_response
)
from familyhub.services.achievement_service import AchievementService
from familyhub.services.chore_service import parse_int
from familyhub.services.errors import ServiceError
from familyhub.services.ledger_service import LedgerService, gamification_state
from familyhub.utils.amounts import format_amount

points_bp = Blueprint('points', __name__, url_prefix='/api/points')
logger = logging.getLogger(__name__)


@points_bp.route('/task-completed', methods=['POST'])
@auth_required
def task_completed():
    """Credit a member's points_per_task for a finished task.

    Request Body:
    {
        "member_id": 3 (optional, defaults to the caller),
        "task_ref": "todo-42",
        "task_title": "Unload dishwasher" (optional)
    }
    """
    caller = get_caller()
    data = request.get_json(silent=True) or {}

    member_id = caller.member_id
    if data.get('member_id') not in (None, ''):
        try:
            member_id = parse_int(data['member_id'], allow_none=False)
        except (ValueError, TypeError):
            return error_response('member_id must be a valid integer')

    try:
        member, event = LedgerService.award_task_completion(
            caller, member_id, data.get('task_ref'), data.get('task_title')
        )
        return success_response({
            'award': event.to_dict(),
            'member': gamification_state(member)
        }, f'Task completed, {format_amount(event.amount)} points awarded', 201)
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('record task completion', e)


@points_bp.route('/history/<int:member_id>', methods=['GET'])
@auth_required
def get_points_history(member_id):
    """Get paginated award history for a member."""
    limit = request.args.get('limit', default=50, type=int)
    offset = request.args.get('offset', default=0, type=int)

    try:
        member, events, total = LedgerService.get_history(get_caller(), member_id, limit, offset)
        return list_response([event.to_dict() for event in events], total, limit, offset,
                             f'Retrieved {len(events)} award(s) for {member.name}')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve points history', e)


@points_bp.route('/leaderboard', methods=['GET'])
@auth_required
def leaderboard():
    """Family leaderboard sorted by lifetime points or current streak."""
    sort_by = request.args.get('sort_by', 'points')

    try:
        board = LedgerService.leaderboard(get_caller(), sort_by)
        return success_response(board, 'Leaderboard retrieved successfully')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve leaderboard', e)


@points_bp.route('/achievements', methods=['GET'])
@auth_required
def list_achievements():
    """
    GET /api/points/achievements - Family achievements with unlock state.

    Query Parameters:
    - member_id (int): Whose unlocks to report (default: the caller)
    """
    member_id = request.args.get('member_id', type=int)

    try:
        member, achievements = AchievementService.list_for(get_caller(), member_id)
        return success_response(
            achievements,
            f'Retrieved {len(achievements)} achievement(s) for {member.name}'
        )
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('retrieve achievements', e)


@points_bp.route('/achievements', methods=['POST'])
@auth_required
def create_achievement():
    """
    POST /api/points/achievements - Define a new achievement (parent only).

    Request Body:
    {
        "name": "Helping Hand",
        "description": "Complete 10 chores",
        "icon": "star",
        "unlock_condition": "chores_completed:10",
        "points": 20 (optional),
        "rarity": "rare" (optional),
        "category": "chores" (optional)
    }
    """
    data = request.get_json(silent=True)

    try:
        achievement = AchievementService.create(get_caller(), data)
        return success_response(achievement.to_dict(), 'Achievement created successfully', 201)
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('create achievement', e)


@points_bp.route('/achievements/check', methods=['POST'])
@auth_required
def check_achievements():
    """Unlock any achievements a member now qualifies for.

    Request Body (optional):
    {
        "member_id": 3 (defaults to the caller)
    }
    """
    data = request.get_json(silent=True) or {}

    member_id = None
    if data.get('member_id') not in (None, ''):
        try:
            member_id = parse_int(data['member_id'], allow_none=False)
        except (ValueError, TypeError):
            return error_response('member_id must be a valid integer')

    try:
        member, unlocked = AchievementService.check(get_caller(), member_id)
        return success_response({
            'unlocked': [achievement.to_dict() for achievement in unlocked],
            'member': gamification_state(member)
        }, f'{len(unlocked)} new achievement(s) unlocked')
    except ServiceError as e:
        return service_error_response(e)
    except Exception as e:
        return internal_error_response('check achievements', e)
