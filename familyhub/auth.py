"""Authentication utilities for familyhub.

Authentication itself happens upstream: a reverse proxy authenticates the
user and forwards their external id in a request header. This module maps
that id to a Member and exposes the resolved identity as a ``Caller``.
"""

import logging
from functools import wraps
from typing import NamedTuple, Optional

from flask import g, jsonify

from familyhub.models import PARENT_ROLES

logger = logging.getLogger(__name__)


class Caller(NamedTuple):
    """Identity of the member making a request.

    Resolved once per request and passed explicitly to every service call.
    """
    member_id: int
    role: str
    family_id: int

    @property
    def is_parent(self) -> bool:
        return self.role in PARENT_ROLES


def auth_required(f):
    """Decorator to ensure the request carries a known member identity."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, 'remote_user', None) is None:
            return jsonify({
                'error': 'Unauthorized',
                'message': 'Authentication required'
            }), 401

        if get_current_member() is None:
            return jsonify({
                'error': 'Unauthorized',
                'message': 'Member not found for authenticated user'
            }), 401

        return f(*args, **kwargs)
    return decorated_function


def get_current_member():
    """
    Get the current authenticated member from the database.

    Returns:
        Member: Current member object or None if not found
    """
    from familyhub.models import Member

    remote_user = getattr(g, 'remote_user', None)
    if remote_user is None:
        return None

    # Cache the lookup in g to avoid repeated DB queries within the same request
    if getattr(g, 'cached_remote_user', None) != remote_user:
        g.current_member = Member.query.filter_by(external_id=remote_user).first()
        g.cached_remote_user = remote_user

    return g.current_member


def get_caller() -> Optional[Caller]:
    """Build the Caller for the current request, or None if unauthenticated."""
    member = get_current_member()
    if member is None:
        return None
    return Caller(member_id=member.id, role=member.role, family_id=member.family_id)
