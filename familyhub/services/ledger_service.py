"""Gamification ledger service.

This module is the only code path that changes a member's ``family_bucks``
and ``total_points_earned``:
- Awarding points (chore verification, manual awards, task completion)
- Deriving level and progress from lifetime points
- Configuring per-member gamification settings
- Reading award history, allowance payments and the family leaderboard

Routes should delegate to this service and handle HTTP responses.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple, List

from flask import current_app
from sqlalchemy import desc, update
from sqlalchemy.exc import IntegrityError

from familyhub.auth import Caller
from familyhub.models import (
    db, Member, AwardEvent, AllowancePayment, MemberStreak, AWARD_REASONS
)
from familyhub.services.errors import (
    NotFoundError, ForbiddenError, ValidationError, InvalidAmountError,
    GamificationDisabledError, AlreadyVerifiedError, DuplicateAwardError
)
from familyhub.services.notification_service import NotificationService
from familyhub.utils.amounts import AmountLike, MAX_AMOUNT, format_amount, to_amount
from familyhub.utils.webhooks import fire_webhook

logger = logging.getLogger(__name__)

LEVEL_SIZE = 100

CONFIGURABLE_SETTINGS = ('gamification_enabled', 'points_per_task', 'allowed_pages')


def compute_level(total_points_earned: AmountLike) -> int:
    """Level derived from lifetime points: floor(total / 100) + 1."""
    total = to_amount(total_points_earned)
    return int(total // LEVEL_SIZE) + 1


def compute_progress(total_points_earned: AmountLike) -> Tuple[float, Decimal]:
    """Progress through the current level.

    Returns:
        (progress_percent, points_to_next_level)
    """
    total = to_amount(total_points_earned)
    in_level = total % LEVEL_SIZE
    progress_percent = float(in_level / LEVEL_SIZE * 100)
    points_to_next_level = LEVEL_SIZE - in_level
    return progress_percent, points_to_next_level


def gamification_state(member: Member) -> dict:
    """Dashboard view of a member's ledger account."""
    progress_percent, points_to_next_level = compute_progress(member.total_points_earned)
    streak = member.streak
    return {
        'member_id': member.id,
        'name': member.name,
        'family_bucks': format_amount(member.family_bucks),
        'total_points_earned': format_amount(member.total_points_earned),
        'level': compute_level(member.total_points_earned),
        'progress_percent': progress_percent,
        'points_to_next_level': format_amount(points_to_next_level),
        'gamification_enabled': member.gamification_enabled,
        'points_per_task': member.points_per_task,
        'current_streak': streak.current_streak if streak else 0,
        'longest_streak': streak.longest_streak if streak else 0
    }


class LedgerService:
    """Service for the family gamification ledger."""

    @staticmethod
    def get_member(member_id: int, family_id: int) -> Member:
        """Get a member of the given family or raise NotFoundError.

        Members of other families are reported as not found so ids from
        another household are never confirmed.
        """
        member = db.session.get(Member, member_id)
        if not member or member.family_id != family_id:
            raise NotFoundError(f'Member {member_id} not found')
        return member

    @staticmethod
    def award_points(member: Member, amount: AmountLike, reason: str,
                     source_ref: Optional[str] = None, created_by: Optional[int] = None,
                     description: Optional[str] = None) -> AwardEvent:
        """Credit a member's ledger account.

        Appends an AwardEvent and increments both balances with a single SQL
        UPDATE so concurrent awards for the same member cannot lose an
        update. The caller owns the transaction: this flushes but does not
        commit or roll back.

        Raises:
            InvalidAmountError: Amount is not a positive number
            ValidationError: Unknown reason
            GamificationDisabledError: Member has gamification turned off
            AlreadyVerifiedError: A chore credit for this assignment exists
            DuplicateAwardError: A credit for this task already exists
        """
        try:
            amount = to_amount(amount)
        except ValueError as e:
            raise InvalidAmountError(str(e))

        if amount <= 0:
            raise InvalidAmountError('Award amount must be greater than zero')

        if amount > MAX_AMOUNT:
            raise InvalidAmountError(f'Award amount must not exceed {MAX_AMOUNT}')

        if reason not in AWARD_REASONS:
            raise ValidationError(f'Invalid award reason "{reason}"')

        if not member.gamification_enabled:
            raise GamificationDisabledError(f'Gamification is not enabled for {member.name}')

        event = AwardEvent(
            member_id=member.id,
            family_id=member.family_id,
            amount=amount,
            reason=reason,
            source_ref=str(source_ref) if source_ref is not None else None,
            description=description,
            created_by=created_by
        )
        db.session.add(event)

        try:
            db.session.flush()
        except IntegrityError:
            if reason == 'chore_verified':
                raise AlreadyVerifiedError(f'Assignment {source_ref} has already been credited')
            raise DuplicateAwardError(f'A {reason} credit for {source_ref} already exists')

        db.session.execute(
            update(Member)
            .where(Member.id == member.id)
            .values(
                family_bucks=Member.family_bucks + amount,
                total_points_earned=Member.total_points_earned + amount
            )
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(member)

        logger.info(f"Awarded {amount} to member {member.id} ({reason}, ref={source_ref})")
        return event

    @staticmethod
    def award_manual(caller: Caller, member_id: int, amount: AmountLike,
                     note: Optional[str] = None) -> Tuple[Member, AwardEvent]:
        """Parent awards points directly, bypassing the chore flow."""
        if not caller.is_parent:
            raise ForbiddenError('Only parents can award points')

        member = LedgerService.get_member(member_id, caller.family_id)

        try:
            event = LedgerService.award_points(
                member, amount, 'manual_award',
                created_by=caller.member_id,
                description=note.strip() if isinstance(note, str) and note.strip() else 'Manual award'
            )
            NotificationService.notify(
                member, 'points_awarded', 'Points Awarded!',
                f'You earned {format_amount(event.amount)} points: {event.description}'
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        fire_webhook('points_awarded', event, family_bucks=format_amount(member.family_bucks))
        return member, event

    @staticmethod
    def award_task_completion(caller: Caller, member_id: int, task_ref: str,
                              task_title: Optional[str] = None) -> Tuple[Member, AwardEvent]:
        """Credit the member's configured ``points_per_task`` for a finished task.

        Each task reference pays out at most once.
        """
        if task_ref is None or not str(task_ref).strip():
            raise ValidationError('task_ref is required')

        if not caller.is_parent and caller.member_id != member_id:
            raise ForbiddenError('You can only record your own task completions')

        member = LedgerService.get_member(member_id, caller.family_id)
        label = task_title.strip() if isinstance(task_title, str) and task_title.strip() else str(task_ref).strip()

        try:
            event = LedgerService.award_points(
                member, member.points_per_task, 'task_completed',
                source_ref=str(task_ref).strip(),
                created_by=caller.member_id,
                description=f'Completed task: {label}'
            )
            NotificationService.notify(
                member, 'points_awarded', 'Points Awarded!',
                f'You earned {format_amount(event.amount)} points: {event.description}'
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        fire_webhook('points_awarded', event, family_bucks=format_amount(member.family_bucks))
        return member, event

    @staticmethod
    def get_state(caller: Caller, member_id: int) -> dict:
        """Gamification state for any member of the caller's family."""
        member = LedgerService.get_member(member_id, caller.family_id)
        return gamification_state(member)

    @staticmethod
    def get_settings(caller: Caller, member_id: int) -> dict:
        member = LedgerService.get_member(member_id, caller.family_id)
        if not caller.is_parent and caller.member_id != member_id:
            raise ForbiddenError('You can only view your own settings')
        return LedgerService.serialize_settings(member)

    @staticmethod
    def serialize_settings(member: Member) -> dict:
        return {
            'member_id': member.id,
            'gamification_enabled': member.gamification_enabled,
            'points_per_task': member.points_per_task,
            'allowed_pages': member.allowed_pages
        }

    @staticmethod
    def configure_member(caller: Caller, member_id: int, settings: dict) -> Member:
        """Partially update a member's gamification settings (parent only).

        The balances are not configurable; they only move through awards.

        Raises:
            ForbiddenError: Caller is not a parent
            NotFoundError: Member not in caller's family
            ValidationError: Unknown key or invalid value
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can update member settings')

        member = LedgerService.get_member(member_id, caller.family_id)

        if not isinstance(settings, dict) or not settings:
            raise ValidationError('Request body must be a non-empty JSON object')

        unknown = sorted(set(settings) - set(CONFIGURABLE_SETTINGS))
        if unknown:
            raise ValidationError(
                f'Unsupported settings: {", ".join(unknown)}',
                details={'allowed': list(CONFIGURABLE_SETTINGS)}
            )

        if 'gamification_enabled' in settings:
            value = settings['gamification_enabled']
            if not isinstance(value, bool):
                raise ValidationError('gamification_enabled must be a boolean')

        if 'points_per_task' in settings:
            value = settings['points_per_task']
            low = current_app.config['POINTS_PER_TASK_MIN']
            high = current_app.config['POINTS_PER_TASK_MAX']
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError('points_per_task must be an integer')
            if not low <= value <= high:
                raise ValidationError(f'points_per_task must be between {low} and {high}')

        if 'allowed_pages' in settings:
            value = settings['allowed_pages']
            if value is not None and (not isinstance(value, list)
                                      or not all(isinstance(p, str) for p in value)):
                raise ValidationError('allowed_pages must be a list of strings or null')

        for key in CONFIGURABLE_SETTINGS:
            if key in settings:
                setattr(member, key, settings[key])

        db.session.commit()
        logger.info(f"Member {member.id} settings updated by {caller.member_id}: {sorted(settings)}")
        return member

    @staticmethod
    def get_history(caller: Caller, member_id: int, limit: int = 50,
                    offset: int = 0) -> Tuple[Member, List[AwardEvent], int]:
        """Paginated award history, newest first."""
        member = LedgerService.get_member(member_id, caller.family_id)
        if not caller.is_parent and caller.member_id != member_id:
            raise ForbiddenError('You can only view your own points history')

        if limit < 1 or limit > 1000:
            raise ValidationError('limit must be between 1 and 1000')
        if offset < 0:
            raise ValidationError('offset must be non-negative')

        query = AwardEvent.query.filter_by(member_id=member.id).order_by(
            desc(AwardEvent.created_at), desc(AwardEvent.id)
        )
        total = query.count()
        return member, query.limit(limit).offset(offset).all(), total

    @staticmethod
    def leaderboard(caller: Caller, sort_by: str = 'points') -> List[dict]:
        """Family members ranked by lifetime points or current streak."""
        if sort_by not in ('points', 'streak'):
            raise ValidationError("sort_by must be 'points' or 'streak'")

        members = Member.query.filter_by(family_id=caller.family_id).all()

        def sort_key(member):
            streak = member.streak.current_streak if member.streak else 0
            if sort_by == 'streak':
                return (-streak, -member.total_points_earned, member.id)
            return (-member.total_points_earned, -streak, member.id)

        board = []
        for rank, member in enumerate(sorted(members, key=sort_key), start=1):
            entry = gamification_state(member)
            entry['rank'] = rank
            entry['is_current_member'] = member.id == caller.member_id
            board.append(entry)
        return board

    @staticmethod
    def list_allowance_payments(caller: Caller, member_id: int) -> List[AllowancePayment]:
        member = LedgerService.get_member(member_id, caller.family_id)
        if not caller.is_parent and caller.member_id != member_id:
            raise ForbiddenError('You can only view your own allowance payments')
        return AllowancePayment.query.filter_by(member_id=member.id).order_by(
            desc(AllowancePayment.created_at), desc(AllowancePayment.id)
        ).all()

    @staticmethod
    def get_or_create_streak(member: Member) -> MemberStreak:
        if member.streak is None:
            member.streak = MemberStreak(current_streak=0, longest_streak=0)
            db.session.add(member.streak)
        return member.streak
