"""Chore assignment workflow service.

This module contains the business logic for chore assignment operations:
- Assigning a chore definition to a family member
- Completing an assignment (member marks as done)
- Verifying an assignment (parent approves with ledger credit, or rejects)
- Reassigning a rejected assignment

State machine: assigned → completed → verified
After rejection: completed → rejected → assigned

Every transition is applied with a conditional UPDATE on the expected
source status, so two concurrent requests can never both move the same
assignment. Routes should delegate to this service and handle HTTP
responses.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple, List

from sqlalchemy import update

from familyhub.auth import Caller
from familyhub.models import db, Chore, ChoreAssignment, AllowancePayment, ASSIGNMENT_STATUSES
from familyhub.services.errors import (
    NotFoundError, ForbiddenError, ValidationError,
    InvalidStateTransitionError, AlreadyVerifiedError
)
from familyhub.services.achievement_service import AchievementService
from familyhub.services.ledger_service import LedgerService
from familyhub.services.notification_service import NotificationService
from familyhub.utils.amounts import format_amount, to_amount
from familyhub.utils.timezone import local_today, utc_now
from familyhub.utils.webhooks import fire_webhook

logger = logging.getLogger(__name__)


def resolve_credit(chore: Chore, assignee) -> Decimal:
    """Points credited when an assignment of ``chore`` is approved.

    The chore's own ``points_reward`` wins when set; otherwise the
    assignee's ``points_per_task`` default applies.
    """
    if chore.points_reward is not None:
        return to_amount(chore.points_reward)
    return to_amount(assignee.points_per_task)


class AssignmentService:
    """Service for managing the chore assignment lifecycle."""

    @staticmethod
    def get_assignment(assignment_id: int, family_id: int) -> ChoreAssignment:
        """Get an assignment within a family or raise NotFoundError."""
        assignment = db.session.get(ChoreAssignment, assignment_id)
        if not assignment or assignment.chore.family_id != family_id:
            raise NotFoundError(f'Assignment {assignment_id} not found')
        return assignment

    @staticmethod
    def list_assignments(caller: Caller, assigned_to: Optional[int] = None,
                         status: Optional[str] = None, chore_id: Optional[int] = None,
                         limit: int = 50, offset: int = 0) -> Tuple[List[ChoreAssignment], int]:
        """List the family's assignments, newest first."""
        if status and status not in ASSIGNMENT_STATUSES:
            raise ValidationError(
                f'Invalid status "{status}". Must be one of: {", ".join(ASSIGNMENT_STATUSES)}'
            )

        query = ChoreAssignment.query.join(Chore).filter(Chore.family_id == caller.family_id)

        if assigned_to:
            query = query.filter(ChoreAssignment.assigned_to == assigned_to)
        if status:
            query = query.filter(ChoreAssignment.status == status)
        if chore_id:
            query = query.filter(ChoreAssignment.chore_id == chore_id)

        total = query.count()
        assignments = query.order_by(
            ChoreAssignment.created_at.desc(), ChoreAssignment.id.desc()
        ).limit(limit).offset(offset).all()
        return assignments, total

    @staticmethod
    def _transition(assignment: ChoreAssignment, from_status: str, **values) -> bool:
        """Move ``assignment`` out of ``from_status`` if it is still there.

        Returns:
            True if this call performed the transition
        """
        result = db.session.execute(
            update(ChoreAssignment)
            .where(ChoreAssignment.id == assignment.id,
                   ChoreAssignment.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(assignment)
        return result.rowcount == 1

    @staticmethod
    def assign(caller: Caller, chore_id: int, assignee_id: int,
               due_date: Optional[date] = None, notes: Optional[str] = None) -> ChoreAssignment:
        """Give a chore to one family member.

        Raises:
            ForbiddenError: Caller is not a parent
            NotFoundError: Chore or assignee not in caller's family
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can assign chores')

        chore = db.session.get(Chore, chore_id)
        if not chore or chore.family_id != caller.family_id:
            raise NotFoundError(f'Chore {chore_id} not found')

        try:
            assignee = LedgerService.get_member(assignee_id, caller.family_id)
        except NotFoundError:
            raise NotFoundError(f'Assignee {assignee_id} not found in family')

        try:
            assignment = ChoreAssignment(
                chore_id=chore.id,
                assigned_to=assignee.id,
                assigned_by=caller.member_id,
                due_date=due_date,
                notes=notes,
                status='assigned'
            )
            db.session.add(assignment)
            NotificationService.notify(
                assignee, 'chore_assigned', 'New Chore Assigned',
                f"You've been assigned: {chore.title}"
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Chore {chore.id} assigned to member {assignee.id} (assignment {assignment.id})")
        fire_webhook('chore_assigned', assignment)
        return assignment

    @staticmethod
    def complete(caller: Caller, assignment_id: int, notes: Optional[str] = None) -> ChoreAssignment:
        """Mark an assignment as completed and ask parents to verify it.

        Raises:
            NotFoundError: Assignment not in caller's family
            ForbiddenError: Caller is neither the assignee nor a parent
            InvalidStateTransitionError: Assignment is not 'assigned'
        """
        assignment = AssignmentService.get_assignment(assignment_id, caller.family_id)

        if assignment.assigned_to != caller.member_id and not caller.is_parent:
            raise ForbiddenError('You can only complete your own assignments')

        if assignment.status != 'assigned':
            raise InvalidStateTransitionError(
                f'Cannot complete assignment with status "{assignment.status}". '
                'Only "assigned" assignments can be completed.'
            )

        values = {'status': 'completed', 'completed_at': utc_now()}
        if notes:
            values['notes'] = notes

        try:
            if not AssignmentService._transition(assignment, 'assigned', **values):
                raise InvalidStateTransitionError(
                    f'Cannot complete assignment with status "{assignment.status}". '
                    'Only "assigned" assignments can be completed.'
                )

            NotificationService.notify_parents(
                caller.family_id, 'chore_completed', 'Chore Completed',
                f'{assignment.assignee.name} completed: {assignment.chore.title} (pending verification)'
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Assignment {assignment.id} completed by member {caller.member_id}")
        fire_webhook('chore_completed', assignment)
        return assignment

    @staticmethod
    def verify(caller: Caller, assignment_id: int, approved: bool,
               notes: Optional[str] = None) -> Tuple[ChoreAssignment, Optional[dict]]:
        """Approve or reject a completed assignment.

        Approval moves the assignment to 'verified' and credits the
        assignee's ledger in the same transaction, unlocking any achievements
        the assignee now qualifies for. Rejection moves it to 'rejected' and
        leaves the ledger alone.

        Returns:
            (assignment, ledger_delta) where ledger_delta is None when
            nothing was credited

        Raises:
            ForbiddenError: Caller is not a parent
            NotFoundError: Assignment not in caller's family
            AlreadyVerifiedError: Assignment was already verified
            InvalidStateTransitionError: Assignment is not 'completed'
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can verify chores')

        assignment = AssignmentService.get_assignment(assignment_id, caller.family_id)
        AssignmentService._check_verifiable(assignment)

        if approved:
            return AssignmentService._approve(caller, assignment, notes)
        return AssignmentService._reject(caller, assignment, notes), None

    @staticmethod
    def _check_verifiable(assignment: ChoreAssignment) -> None:
        if assignment.status == 'verified':
            raise AlreadyVerifiedError(f'Assignment {assignment.id} is already verified')
        if assignment.status != 'completed':
            raise InvalidStateTransitionError(
                f'Cannot verify assignment with status "{assignment.status}". '
                'Only "completed" assignments can be verified.'
            )

    @staticmethod
    def _approve(caller: Caller, assignment: ChoreAssignment,
                 notes: Optional[str]) -> Tuple[ChoreAssignment, Optional[dict]]:
        chore = assignment.chore
        assignee = assignment.assignee
        amount = resolve_credit(chore, assignee)

        values = {'status': 'verified', 'verified_by': caller.member_id, 'verified_at': utc_now()}
        if notes:
            values['notes'] = notes

        event = None
        try:
            if not AssignmentService._transition(assignment, 'completed', **values):
                # Another request moved it first
                AssignmentService._check_verifiable(assignment)

            if amount > 0 and assignee.gamification_enabled:
                event = LedgerService.award_points(
                    assignee, amount, 'chore_verified',
                    source_ref=str(assignment.id),
                    created_by=caller.member_id,
                    description=f'Verified: {chore.title}'
                )
                assignment.points_awarded = event.amount
            elif amount > 0:
                logger.info(f"Assignment {assignment.id} verified without credit: "
                            f"gamification disabled for member {assignee.id}")

            if chore.allowance_cents > 0:
                db.session.add(AllowancePayment(
                    family_id=chore.family_id,
                    member_id=assignee.id,
                    amount_cents=chore.allowance_cents,
                    assignment_ref=str(assignment.id),
                    paid_by=caller.member_id,
                    payment_method='pending',
                    notes=f'For completing: {chore.title}'
                ))

            LedgerService.get_or_create_streak(assignee).record_activity(local_today())

            NotificationService.notify(
                assignee, 'chore_verified', 'Chore Verified!',
                AssignmentService._verified_message(chore, event)
            )
            unlocked = AchievementService.unlock_earned(assignee, created_by=caller.member_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Assignment {assignment.id} verified by member {caller.member_id}, "
                    f"credit={event.amount if event else None}")

        fire_webhook('chore_verified', assignment)
        ledger_delta = None
        if event is not None:
            ledger_delta = {
                'award_event_id': event.id,
                'amount': format_amount(event.amount),
                'family_bucks': format_amount(assignee.family_bucks),
                'total_points_earned': format_amount(assignee.total_points_earned)
            }
            fire_webhook('points_awarded', event, family_bucks=ledger_delta['family_bucks'])

        for achievement in unlocked:
            fire_webhook('achievement_unlocked', achievement, member_id=assignee.id)

        return assignment, ledger_delta

    @staticmethod
    def _verified_message(chore: Chore, event) -> str:
        parts = []
        if event is not None:
            parts.append(f'{format_amount(event.amount)} points')
        if chore.allowance_cents > 0:
            parts.append(f'${chore.allowance_cents / 100:.2f}')
        if not parts:
            return f'Nice work on: {chore.title}'
        return f'You earned {" and ".join(parts)} for: {chore.title}'

    @staticmethod
    def _reject(caller: Caller, assignment: ChoreAssignment, notes: Optional[str]) -> ChoreAssignment:
        values = {'status': 'rejected', 'rejected_by': caller.member_id, 'rejected_at': utc_now()}
        if notes:
            values['notes'] = notes

        try:
            if not AssignmentService._transition(assignment, 'completed', **values):
                AssignmentService._check_verifiable(assignment)

            NotificationService.notify(
                assignment.assignee, 'chore_rejected', 'Chore Needs Work',
                f'Your completion of "{assignment.chore.title}" was rejected. {notes or ""}'.strip()
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Assignment {assignment.id} rejected by member {caller.member_id}")
        fire_webhook('chore_rejected', assignment)
        return assignment

    @staticmethod
    def reassign(caller: Caller, assignment_id: int,
                 assignee_id: Optional[int] = None) -> ChoreAssignment:
        """Reopen a rejected assignment, optionally handing it to someone else.

        Raises:
            ForbiddenError: Caller is not a parent
            NotFoundError: Assignment or new assignee not in caller's family
            InvalidStateTransitionError: Assignment is not 'rejected'
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can reassign chores')

        assignment = AssignmentService.get_assignment(assignment_id, caller.family_id)

        if assignment.status != 'rejected':
            raise InvalidStateTransitionError(
                f'Cannot reassign assignment with status "{assignment.status}". '
                'Only "rejected" assignments can be reassigned.'
            )

        values = {
            'status': 'assigned',
            'completed_at': None,
            'rejected_by': None,
            'rejected_at': None
        }
        if assignee_id is not None and assignee_id != assignment.assigned_to:
            try:
                new_assignee = LedgerService.get_member(assignee_id, caller.family_id)
            except NotFoundError:
                raise NotFoundError(f'Assignee {assignee_id} not found in family')
            values['assigned_to'] = new_assignee.id

        try:
            if not AssignmentService._transition(assignment, 'rejected', **values):
                raise InvalidStateTransitionError(
                    f'Cannot reassign assignment with status "{assignment.status}". '
                    'Only "rejected" assignments can be reassigned.'
                )

            NotificationService.notify(
                assignment.assignee, 'chore_assigned', 'Chore Reassigned',
                f'Please try again: {assignment.chore.title}'
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Assignment {assignment.id} reassigned to member {assignment.assigned_to}")
        fire_webhook('chore_reassigned', assignment)
        return assignment
