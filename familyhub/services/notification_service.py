"""Notification dispatcher and inbox.

Notification rows are added to the current session so they commit together
with the state change that caused them. Webhooks are fired by the calling
service only after that commit succeeds.
"""

import logging
from typing import List, Tuple

from sqlalchemy import desc, update

from familyhub.auth import Caller
from familyhub.models import db, Member, Notification, NOTIFICATION_TYPES, PARENT_ROLES
from familyhub.services.errors import ValidationError

logger = logging.getLogger(__name__)


class NotificationService:
    """Creates in-app notifications for family members."""

    @staticmethod
    def notify(member: Member, type_: str, title: str, message: str) -> Notification:
        """Queue a notification for one member (not committed)."""
        if type_ not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {type_}")

        notification = Notification(
            family_id=member.family_id,
            member_id=member.id,
            type=type_,
            title=title,
            message=message,
            read=False
        )
        db.session.add(notification)
        return notification

    @staticmethod
    def notify_parents(family_id: int, type_: str, title: str, message: str) -> List[Notification]:
        """Queue a notification for every parent/admin in a family."""
        parents = Member.query.filter(
            Member.family_id == family_id,
            Member.role.in_(PARENT_ROLES)
        ).all()

        if not parents:
            logger.warning(f"No parents in family {family_id} to receive '{type_}' notification")

        return [NotificationService.notify(parent, type_, title, message) for parent in parents]

    @staticmethod
    def list_for(caller: Caller, limit: int = 50) -> Tuple[List[Notification], int]:
        """The caller's latest notifications, newest first.

        Returns:
            (notifications, unread_count)
        """
        if limit < 1 or limit > 100:
            raise ValidationError('limit must be between 1 and 100')

        query = Notification.query.filter_by(
            member_id=caller.member_id, family_id=caller.family_id
        )
        unread = query.filter(Notification.read.is_(False)).count()
        notifications = query.order_by(
            desc(Notification.created_at), desc(Notification.id)
        ).limit(limit).all()
        return notifications, unread

    @staticmethod
    def mark_read(caller: Caller, notification_ids) -> int:
        """Mark some of the caller's notifications as read.

        Ids belonging to other members are ignored rather than reported.

        Returns:
            Number of notifications that changed from unread to read
        """
        if not isinstance(notification_ids, list):
            raise ValidationError('notification_ids must be an array')
        if not all(isinstance(i, int) and not isinstance(i, bool) for i in notification_ids):
            raise ValidationError('notification_ids must contain only integers')

        if not notification_ids:
            return 0

        try:
            result = db.session.execute(
                update(Notification)
                .where(
                    Notification.id.in_(notification_ids),
                    Notification.member_id == caller.member_id,
                    Notification.read.is_(False)
                )
                .values(read=True)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Member {caller.member_id} marked {result.rowcount} notification(s) read")
        return result.rowcount
