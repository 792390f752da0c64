"""Achievement service.

Achievements are family-defined milestones ("Complete 10 chores") checked
against a member's verified chores, lifetime points and current streak.
Unlocking one records a MemberAchievement, credits its bonus points through
the ledger and notifies the member.
"""

import logging
from typing import List, Optional, Tuple

from familyhub.auth import Caller
from familyhub.models import (
    db, Achievement, ChoreAssignment, Member, MemberAchievement,
    ACHIEVEMENT_CONDITIONS, ACHIEVEMENT_RARITIES
)
from familyhub.services.errors import ForbiddenError, ValidationError
from familyhub.services.ledger_service import LedgerService
from familyhub.services.notification_service import NotificationService
from familyhub.utils.webhooks import fire_webhook

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'description', 'icon', 'unlock_condition')


def member_progress(member: Member) -> dict:
    """Current value of every unlock condition type for a member."""
    streak = member.streak
    return {
        'chores_completed': ChoreAssignment.query.filter_by(
            assigned_to=member.id, status='verified'
        ).count(),
        'points_earned': member.total_points_earned,
        'streak_days': streak.current_streak if streak else 0
    }


class AchievementService:
    """Service for defining, listing and unlocking achievements."""

    @staticmethod
    def unlock_earned(member: Member, created_by: Optional[int] = None) -> List[Achievement]:
        """Unlock every active achievement whose condition the member now meets.

        Runs inside the caller's transaction: rows are added and flushed but
        not committed. Bonus points are only credited when the member has
        gamification enabled.

        Returns:
            Achievements unlocked by this call, in definition order
        """
        already = {
            row.achievement_id
            for row in MemberAchievement.query.filter_by(member_id=member.id)
        }
        candidates = Achievement.query.filter_by(
            family_id=member.family_id, is_active=True
        ).order_by(Achievement.id).all()

        progress = member_progress(member)
        unlocked = []

        for achievement in candidates:
            if achievement.id in already:
                continue

            condition = achievement.parse_condition()
            if condition is None:
                logger.warning(f"Achievement {achievement.id} has invalid condition "
                               f"'{achievement.unlock_condition}', skipping")
                continue

            kind, threshold = condition
            if progress[kind] < threshold:
                continue

            db.session.add(MemberAchievement(member_id=member.id, achievement_id=achievement.id))
            db.session.flush()

            bonus = 0
            if achievement.points > 0 and member.gamification_enabled:
                LedgerService.award_points(
                    member, achievement.points, 'achievement_unlocked',
                    source_ref=f'{member.id}:{achievement.id}',
                    created_by=created_by,
                    description=f'Unlocked achievement: {achievement.name}'
                )
                bonus = achievement.points

            NotificationService.notify(
                member, 'achievement_unlocked', 'Achievement Unlocked!',
                f'You earned "{achievement.name}" (+{bonus} points)'
            )
            logger.info(f"Member {member.id} unlocked achievement {achievement.id} ({kind} >= {threshold})")
            unlocked.append(achievement)

        return unlocked

    @staticmethod
    def check(caller: Caller, member_id: Optional[int] = None) -> Tuple[Member, List[Achievement]]:
        """Run the unlock check for a member and commit the result.

        Members check themselves; parents may check anyone in the family.
        """
        member_id = caller.member_id if member_id is None else member_id
        if not caller.is_parent and caller.member_id != member_id:
            raise ForbiddenError('You can only check your own achievements')

        member = LedgerService.get_member(member_id, caller.family_id)

        try:
            unlocked = AchievementService.unlock_earned(member, created_by=caller.member_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        for achievement in unlocked:
            fire_webhook('achievement_unlocked', achievement, member_id=member.id)
        return member, unlocked

    @staticmethod
    def list_for(caller: Caller, member_id: Optional[int] = None) -> Tuple[Member, List[dict]]:
        """Active achievements of the family with the member's unlock state."""
        member_id = caller.member_id if member_id is None else member_id
        member = LedgerService.get_member(member_id, caller.family_id)

        unlocked_at = {
            row.achievement_id: row.unlocked_at
            for row in MemberAchievement.query.filter_by(member_id=member.id)
        }
        achievements = Achievement.query.filter_by(
            family_id=caller.family_id, is_active=True
        ).order_by(Achievement.id).all()

        result = []
        for achievement in achievements:
            entry = achievement.to_dict()
            when = unlocked_at.get(achievement.id)
            entry['unlocked'] = when is not None
            entry['unlocked_at'] = when.isoformat() if when else None
            result.append(entry)
        return member, result

    @staticmethod
    def create(caller: Caller, data: dict) -> Achievement:
        """Define a new achievement for the caller's family (parent only).

        Raises:
            ForbiddenError: Caller is not a parent
            ValidationError: Missing field or invalid value
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can create achievements')

        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')

        missing = [f for f in REQUIRED_FIELDS
                   if not isinstance(data.get(f), str) or not data[f].strip()]
        if missing:
            raise ValidationError(
                f'Missing required fields: {", ".join(missing)}',
                details={'required': list(REQUIRED_FIELDS)}
            )

        points = data.get('points', 0)
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValidationError('points must be a non-negative integer')

        rarity = data.get('rarity', 'common')
        if rarity not in ACHIEVEMENT_RARITIES:
            raise ValidationError(f"rarity must be one of: {', '.join(ACHIEVEMENT_RARITIES)}")

        category = data.get('category', 'general')
        if not isinstance(category, str) or not category.strip():
            raise ValidationError('category must be a non-empty string')

        achievement = Achievement(
            family_id=caller.family_id,
            name=data['name'].strip(),
            description=data['description'].strip(),
            icon=data['icon'].strip(),
            category=category.strip(),
            points=points,
            rarity=rarity,
            unlock_condition=data['unlock_condition'].strip()
        )
        if achievement.parse_condition() is None:
            raise ValidationError(
                'unlock_condition must look like "<type>:<number>"',
                details={'types': list(ACHIEVEMENT_CONDITIONS)}
            )

        if Achievement.query.filter_by(family_id=caller.family_id, name=achievement.name).first():
            raise ValidationError(f'An achievement named "{achievement.name}" already exists')

        db.session.add(achievement)
        db.session.commit()
        logger.info(f"Achievement {achievement.id} created by member {caller.member_id}")
        return achievement
