"""Routes package for familyhub API endpoints."""

from .chores import chores_bp
from .assignments import assignments_bp
from .members import members_bp
from .points import points_bp
from .notifications import notifications_bp

__all__ = ['chores_bp', 'assignments_bp', 'members_bp', 'points_bp', 'notifications_bp']
