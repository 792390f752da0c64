"""Chore definition service.

Chore definitions are the family's catalogue of jobs. They are created and
edited by parents; assignments are handed out from them by the assignment
service.
"""

import logging
from typing import Optional, Tuple, List

from familyhub.auth import Caller
from familyhub.models import db, Chore, ChoreAssignment, DIFFICULTIES, OUTSTANDING_STATUSES
from familyhub.services.errors import (
    NotFoundError, ForbiddenError, ValidationError, ChoreInUseError
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'description', 'points_reward', 'allowance_cents',
                   'category', 'difficulty', 'estimated_minutes', 'icon')


def parse_int(value, allow_none=True):
    """Parse an integer value from JSON or form input.

    Args:
        value: The value to parse
        allow_none: Whether to allow None as a return value

    Returns:
        int or None: Parsed integer value

    Raises:
        ValueError: If value cannot be converted to int
    """
    if value is None or value == '':
        return None if allow_none else 0
    if isinstance(value, bool):
        raise ValueError('Booleans are not integers')
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f'{value} is not a whole number')
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"Cannot convert {type(value).__name__} to int")


def _non_negative_int(data: dict, field: str, allow_none: bool = True):
    try:
        parsed = parse_int(data[field], allow_none=allow_none)
    except (ValueError, TypeError):
        raise ValidationError(f'{field} must be a valid integer')
    if parsed is not None and parsed < 0:
        raise ValidationError(f'{field} must be non-negative')
    return parsed


def _clean_fields(data: dict, creating: bool) -> dict:
    """Validate chore fields and return the normalized values to apply."""
    if not isinstance(data, dict) or not data:
        raise ValidationError('Request body is required')

    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f'Unknown fields: {", ".join(unknown)}')

    cleaned = {}

    if creating or 'title' in data:
        title = data.get('title')
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Field 'title' is required")
        cleaned['title'] = title.strip()

    if 'description' in data:
        cleaned['description'] = data['description'] or None

    if 'points_reward' in data:
        cleaned['points_reward'] = _non_negative_int(data, 'points_reward')

    if 'allowance_cents' in data:
        cleaned['allowance_cents'] = _non_negative_int(data, 'allowance_cents', allow_none=False)

    if 'estimated_minutes' in data:
        cleaned['estimated_minutes'] = _non_negative_int(data, 'estimated_minutes')

    if 'difficulty' in data:
        if data['difficulty'] not in DIFFICULTIES:
            raise ValidationError(f"difficulty must be one of: {', '.join(DIFFICULTIES)}")
        cleaned['difficulty'] = data['difficulty']

    if 'category' in data:
        category = data['category']
        if not isinstance(category, str) or not category.strip():
            raise ValidationError('category must be a non-empty string')
        cleaned['category'] = category.strip()

    if 'icon' in data:
        cleaned['icon'] = data['icon'] or None

    return cleaned


class ChoreService:
    """Service for managing chore definitions."""

    @staticmethod
    def get_chore(chore_id: int, family_id: int) -> Chore:
        """Get a chore of the given family or raise NotFoundError."""
        chore = db.session.get(Chore, chore_id)
        if not chore or chore.family_id != family_id:
            raise NotFoundError(f'Chore {chore_id} not found')
        return chore

    @staticmethod
    def list_chores(caller: Caller, category: Optional[str] = None,
                    limit: int = 50, offset: int = 0) -> Tuple[List[Chore], int]:
        query = Chore.query.filter_by(family_id=caller.family_id)
        if category:
            query = query.filter(Chore.category == category)

        total = query.count()
        chores = query.order_by(Chore.title.asc(), Chore.id.asc()).limit(limit).offset(offset).all()
        return chores, total

    @staticmethod
    def create_chore(caller: Caller, data: dict) -> Chore:
        """Create a chore definition owned by the caller's family.

        Raises:
            ForbiddenError: Caller is not a parent
            ValidationError: Missing title or invalid field value
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can create chores')

        fields = _clean_fields(data, creating=True)

        chore = Chore(family_id=caller.family_id, created_by=caller.member_id, **fields)
        db.session.add(chore)
        db.session.commit()

        logger.info(f"Chore {chore.id} '{chore.title}' created by member {caller.member_id}")
        return chore

    @staticmethod
    def update_chore(caller: Caller, chore_id: int, data: dict) -> Chore:
        """Partially update a chore definition.

        Existing assignments keep pointing at the chore and pick up the new
        reward when they are verified.
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can edit chores')

        chore = ChoreService.get_chore(chore_id, caller.family_id)

        fields = _clean_fields(data, creating=False)
        for key, value in fields.items():
            setattr(chore, key, value)

        db.session.commit()
        logger.info(f"Chore {chore.id} updated by member {caller.member_id}: {sorted(fields)}")
        return chore

    @staticmethod
    def count_outstanding(chore: Chore) -> int:
        return ChoreAssignment.query.filter(
            ChoreAssignment.chore_id == chore.id,
            ChoreAssignment.status.in_(OUTSTANDING_STATUSES)
        ).count()

    @staticmethod
    def delete_chore(caller: Caller, chore_id: int, force: bool = False) -> dict:
        """Delete a chore definition and its assignments.

        Award history is kept: award events reference assignments by value.

        Returns:
            Summary with the number of assignments removed

        Raises:
            ChoreInUseError: Chore has outstanding assignments and force is off
        """
        if not caller.is_parent:
            raise ForbiddenError('Only parents can delete chores')

        chore = ChoreService.get_chore(chore_id, caller.family_id)
        outstanding = ChoreService.count_outstanding(chore)

        if outstanding and not force:
            raise ChoreInUseError(
                f"Chore '{chore.title}' has {outstanding} outstanding assignment(s). "
                'Pass force=true to delete it anyway.',
                details={'outstanding_assignments': outstanding}
            )

        removed = len(chore.assignments)
        title = chore.title

        try:
            db.session.delete(chore)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if outstanding:
            logger.warning(f"Chore {chore_id} '{title}' force-deleted by member {caller.member_id}, "
                           f"discarding {outstanding} outstanding assignment(s)")
        else:
            logger.info(f"Chore {chore_id} '{title}' deleted by member {caller.member_id}")

        return {
            'chore_id': chore_id,
            'assignments_removed': removed,
            'outstanding_discarded': outstanding
        }
