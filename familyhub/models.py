"""
SQLAlchemy models for familyhub.

This module defines the database models for the chore workflow and the
family gamification ledger. Uses Flask-SQLAlchemy for ORM integration
with Flask.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import CheckConstraint, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from familyhub.utils.amounts import format_amount
from familyhub.utils.timezone import local_today, utc_now

db = SQLAlchemy()

PARENT_ROLES = ('admin', 'parent')
MEMBER_ROLES = ('admin', 'parent', 'child', 'member')

ASSIGNMENT_STATUSES = ('assigned', 'completed', 'verified', 'rejected')
# Assignments that still represent unfinished work
OUTSTANDING_STATUSES = ('assigned', 'completed', 'rejected')

DIFFICULTIES = ('easy', 'medium', 'hard', 'expert')

AWARD_REASONS = ('chore_verified', 'manual_award', 'task_completed', 'achievement_unlocked')

NOTIFICATION_TYPES = ('chore_assigned', 'chore_completed', 'chore_verified',
                      'chore_rejected', 'points_awarded', 'achievement_unlocked')

ACHIEVEMENT_CONDITIONS = ('chores_completed', 'points_earned', 'streak_days')
ACHIEVEMENT_RARITIES = ('common', 'rare', 'epic', 'legendary')


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class Family(db.Model):
    """A household. Owns members and chore definitions."""

    __tablename__ = 'families'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    members = relationship('Member', back_populates='family', cascade='all, delete-orphan')
    chores = relationship('Chore', back_populates='family', cascade='all, delete-orphan')
    achievements = relationship('Achievement', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Family {self.name}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'created_at': _iso(self.created_at)
        }


class Member(db.Model):
    """A family member. The ledger account is embedded in this row.

    ``family_bucks`` and ``total_points_earned`` are denormalized totals of
    the member's AwardEvent rows and must only be changed through the
    ledger service.
    """

    __tablename__ = 'members'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    external_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='member')
    allowed_pages = db.Column(db.JSON, nullable=True)

    # Ledger account
    gamification_enabled = db.Column(db.Boolean, default=False, nullable=False)
    family_bucks = db.Column(db.Numeric(10, 2), default=Decimal('0'), nullable=False)
    total_points_earned = db.Column(db.Numeric(10, 2), default=Decimal('0'), nullable=False)
    points_per_task = db.Column(db.Integer, default=10, nullable=False)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    family = relationship('Family', back_populates='members')
    assignments = relationship('ChoreAssignment', foreign_keys='ChoreAssignment.assigned_to',
                               back_populates='assignee')
    award_events = relationship('AwardEvent', foreign_keys='AwardEvent.member_id',
                                back_populates='member', order_by='AwardEvent.id')
    streak = relationship('MemberStreak', back_populates='member', uselist=False,
                          cascade='all, delete-orphan')

    # Constraints
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'parent', 'child', 'member')", name='check_member_role'),
        CheckConstraint('family_bucks >= 0', name='check_family_bucks_non_negative'),
        CheckConstraint('total_points_earned >= 0', name='check_total_points_non_negative'),
        CheckConstraint('points_per_task BETWEEN 1 AND 100', name='check_points_per_task_range'),
        Index('idx_members_family', 'family_id'),
    )

    def __repr__(self):
        return f'<Member {self.name} ({self.role})>'

    @property
    def is_parent(self) -> bool:
        return self.role in PARENT_ROLES

    def to_dict(self) -> dict:
        """Serialize Member to dictionary for JSON/webhook responses."""
        return {
            'id': self.id,
            'external_id': self.external_id,
            'family_id': self.family_id,
            'name': self.name,
            'role': self.role,
            'gamification_enabled': self.gamification_enabled,
            'family_bucks': format_amount(self.family_bucks),
            'total_points_earned': format_amount(self.total_points_earned),
            'points_per_task': self.points_per_task,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }

    def calculate_awarded_total(self) -> Decimal:
        """
        Sum of all award amounts recorded for this member.

        Returns:
            Decimal: Total from the AwardEvent log (0 when empty)
        """
        from sqlalchemy import func
        total = db.session.query(func.sum(AwardEvent.amount)).filter(
            AwardEvent.member_id == self.id
        ).scalar()
        return Decimal(total) if total is not None else Decimal('0')

    def verify_ledger_balance(self) -> bool:
        """
        Check that the denormalized totals reconcile with the award log.

        The ledger is credit-only, so both the spendable balance and the
        lifetime counter must equal the sum of awards.
        """
        awarded = self.calculate_awarded_total()
        return self.total_points_earned == awarded and self.family_bucks == awarded


class Chore(db.Model):
    """Chore definition: a reusable template describing a task and its reward."""

    __tablename__ = 'chores'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    points_reward = db.Column(db.Integer, nullable=True)  # NULL falls back to member points_per_task
    allowance_cents = db.Column(db.Integer, default=0, nullable=False)
    category = db.Column(db.String(50), default='general', nullable=False)
    difficulty = db.Column(db.String(20), default='medium', nullable=False)
    estimated_minutes = db.Column(db.Integer, nullable=True)
    icon = db.Column(db.String(50), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey('members.id'))
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    family = relationship('Family', back_populates='chores')
    creator = relationship('Member', foreign_keys=[created_by])
    assignments = relationship('ChoreAssignment', back_populates='chore', cascade='all, delete-orphan')

    # Constraints
    __table_args__ = (
        CheckConstraint("difficulty IN ('easy', 'medium', 'hard', 'expert')", name='check_chore_difficulty'),
        CheckConstraint('points_reward IS NULL OR points_reward >= 0', name='check_points_reward_non_negative'),
        CheckConstraint('allowance_cents >= 0', name='check_allowance_non_negative'),
        Index('idx_chores_family', 'family_id'),
    )

    def __repr__(self):
        return f'<Chore {self.title}>'

    def to_dict(self) -> dict:
        """Serialize Chore to dictionary for JSON/webhook responses."""
        return {
            'id': self.id,
            'family_id': self.family_id,
            'title': self.title,
            'description': self.description,
            'points_reward': self.points_reward,
            'allowance_cents': self.allowance_cents,
            'category': self.category,
            'difficulty': self.difficulty,
            'estimated_minutes': self.estimated_minutes,
            'icon': self.icon,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ChoreAssignment(db.Model):
    """One instance of a chore given to one member, with its own lifecycle.

    State machine: assigned → completed → verified (terminal)
    Rejection loop: completed → rejected → assigned
    """

    __tablename__ = 'chore_assignments'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    chore_id = db.Column(db.Integer, db.ForeignKey('chores.id'), nullable=False)
    assigned_to = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False)
    assigned_by = db.Column(db.Integer, db.ForeignKey('members.id'))
    due_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text)

    # Status tracking
    status = db.Column(db.String(20), default='assigned', nullable=False)

    # Who did what when
    completed_at = db.Column(db.DateTime)
    verified_by = db.Column(db.Integer, db.ForeignKey('members.id'))
    verified_at = db.Column(db.DateTime)
    rejected_by = db.Column(db.Integer, db.ForeignKey('members.id'))
    rejected_at = db.Column(db.DateTime)

    # Credit applied on verification (NULL when nothing was credited)
    points_awarded = db.Column(db.Numeric(10, 2))

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    chore = relationship('Chore', back_populates='assignments')
    assignee = relationship('Member', foreign_keys=[assigned_to], back_populates='assignments')
    assigner = relationship('Member', foreign_keys=[assigned_by])
    verifier = relationship('Member', foreign_keys=[verified_by])
    rejecter = relationship('Member', foreign_keys=[rejected_by])

    # Constraints
    __table_args__ = (
        CheckConstraint("status IN ('assigned', 'completed', 'verified', 'rejected')",
                        name='check_assignment_status'),
        Index('idx_chore_assignments_status', 'status'),
        Index('idx_chore_assignments_assigned_to', 'assigned_to'),
    )

    def __repr__(self):
        return f'<ChoreAssignment chore_id={self.chore_id} assigned_to={self.assigned_to} status={self.status}>'

    def to_dict(self) -> dict:
        """Serialize ChoreAssignment to dictionary for JSON/webhook responses."""
        return {
            'id': self.id,
            'assignment_id': self.id,  # Alias for clarity in automations
            'chore_id': self.chore_id,
            'chore_title': self.chore.title if self.chore else None,
            'assigned_to': self.assigned_to,
            'assigned_to_name': self.assignee.name if self.assignee else None,
            'assigned_by': self.assigned_by,
            'due_date': _iso(self.due_date),
            'notes': self.notes,
            'status': self.status,
            'is_overdue': self.is_overdue(),
            'completed_at': _iso(self.completed_at),
            'verified_by': self.verified_by,
            'verified_at': _iso(self.verified_at),
            'rejected_by': self.rejected_by,
            'rejected_at': _iso(self.rejected_at),
            'points_awarded': format_amount(self.points_awarded),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }

    def is_overdue(self, today: Optional[date] = None) -> bool:
        """True when the assignment is still open past its due date."""
        if self.due_date is None or self.status == 'verified':
            return False
        return (today or local_today()) > self.due_date


class AwardEvent(db.Model):
    """Append-only record of a ledger credit.

    ``source_ref`` is a plain value rather than a foreign key so deleting
    chores or assignments never rewrites financial history. The unique
    constraint on (reason, source_ref) guarantees at most one credit per
    assignment or task; NULL refs (manual awards) are never considered equal.
    """

    __tablename__ = 'award_events'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    reason = db.Column(db.String(30), nullable=False)
    source_ref = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text)

    created_by = db.Column(db.Integer, db.ForeignKey('members.id'))
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    # Relationships
    member = relationship('Member', foreign_keys=[member_id], back_populates='award_events')
    creator = relationship('Member', foreign_keys=[created_by])

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_award_amount_positive'),
        CheckConstraint("reason IN ('chore_verified', 'manual_award', 'task_completed', "
                        "'achievement_unlocked')",
                        name='check_award_reason'),
        UniqueConstraint('reason', 'source_ref', name='unique_award_source'),
        Index('idx_award_events_member', 'member_id'),
        Index('idx_award_events_created_at', 'created_at'),
    )

    def __repr__(self):
        return f'<AwardEvent member_id={self.member_id} amount={self.amount} reason={self.reason}>'

    def to_dict(self) -> dict:
        """Serialize AwardEvent to dictionary for JSON/webhook responses."""
        return {
            'id': self.id,
            'member_id': self.member_id,
            'amount': format_amount(self.amount),
            'reason': self.reason,
            'source_ref': self.source_ref,
            'description': self.description,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at)
        }


class AllowancePayment(db.Model):
    """Money owed to a member for an approved chore with an allowance."""

    __tablename__ = 'allowance_payments'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    assignment_ref = db.Column(db.String(64), unique=True, nullable=True)
    paid_by = db.Column(db.Integer, db.ForeignKey('members.id'))
    payment_method = db.Column(db.String(20), default='pending', nullable=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint('amount_cents > 0', name='check_allowance_payment_positive'),
    )

    def __repr__(self):
        return f'<AllowancePayment member_id={self.member_id} cents={self.amount_cents}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'member_id': self.member_id,
            'amount_cents': self.amount_cents,
            'assignment_ref': self.assignment_ref,
            'paid_by': self.paid_by,
            'payment_method': self.payment_method,
            'notes': self.notes,
            'created_at': _iso(self.created_at)
        }


class MemberStreak(db.Model):
    """Consecutive-day streak of verified chores."""

    __tablename__ = 'member_streaks'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), unique=True, nullable=False)
    current_streak = db.Column(db.Integer, default=0, nullable=False)
    longest_streak = db.Column(db.Integer, default=0, nullable=False)
    last_activity_date = db.Column(db.Date, nullable=True)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    member = relationship('Member', back_populates='streak')

    def __repr__(self):
        return f'<MemberStreak member_id={self.member_id} current={self.current_streak}>'

    def record_activity(self, today: date) -> None:
        """Advance the streak for activity on ``today``."""
        if self.last_activity_date == today:
            return
        if self.last_activity_date == today - timedelta(days=1):
            self.current_streak = (self.current_streak or 0) + 1
        else:
            self.current_streak = 1
        self.longest_streak = max(self.longest_streak or 0, self.current_streak)
        self.last_activity_date = today


class Notification(db.Model):
    """In-app notification for a family member."""

    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False)
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_notifications_member', 'member_id'),
    )

    def __repr__(self):
        return f'<Notification {self.type} member_id={self.member_id}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'member_id': self.member_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'read': self.read,
            'created_at': _iso(self.created_at)
        }


class Achievement(db.Model):
    """A badge a member unlocks by reaching a milestone.

    ``unlock_condition`` has the form ``"<type>:<threshold>"`` where type is
    one of ACHIEVEMENT_CONDITIONS, e.g. ``"chores_completed:10"``.
    """

    __tablename__ = 'achievements'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey('families.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    icon = db.Column(db.String(50), nullable=False)
    category = db.Column(db.String(50), default='general', nullable=False)
    points = db.Column(db.Integer, default=0, nullable=False)  # Bonus credited on unlock
    rarity = db.Column(db.String(20), default='common', nullable=False)
    unlock_condition = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    unlocks = relationship('MemberAchievement', back_populates='achievement',
                           cascade='all, delete-orphan')

    __table_args__ = (
        CheckConstraint('points >= 0', name='check_achievement_points_non_negative'),
        CheckConstraint("rarity IN ('common', 'rare', 'epic', 'legendary')",
                        name='check_achievement_rarity'),
        UniqueConstraint('family_id', 'name', name='unique_achievement_name'),
    )

    def __repr__(self):
        return f'<Achievement {self.name}>'

    def parse_condition(self):
        """Split ``unlock_condition`` into (type, threshold).

        Returns None when the condition is malformed or of an unknown type.
        """
        kind, _, raw = (self.unlock_condition or '').partition(':')
        if kind not in ACHIEVEMENT_CONDITIONS:
            return None
        try:
            threshold = int(raw)
        except ValueError:
            return None
        if threshold < 0:
            return None
        return kind, threshold

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'family_id': self.family_id,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'category': self.category,
            'points': self.points,
            'rarity': self.rarity,
            'unlock_condition': self.unlock_condition,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at)
        }


class MemberAchievement(db.Model):
    """An achievement unlocked by a member. Each is unlocked at most once."""

    __tablename__ = 'member_achievements'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    member_id = db.Column(db.Integer, db.ForeignKey('members.id'), nullable=False)
    achievement_id = db.Column(db.Integer, db.ForeignKey('achievements.id'), nullable=False)
    unlocked_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    achievement = relationship('Achievement', back_populates='unlocks')
    member = relationship('Member')

    __table_args__ = (
        UniqueConstraint('member_id', 'achievement_id', name='unique_member_achievement'),
        Index('idx_member_achievements_member', 'member_id'),
    )

    def __repr__(self):
        return f'<MemberAchievement member_id={self.member_id} achievement_id={self.achievement_id}>'
