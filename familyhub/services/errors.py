"""Service error taxonomy.

Every error carries the HTTP status the routes should answer with and a
``kind`` string the UI can switch on ("AlreadyVerified" vs "NotFound").
"""

from typing import Optional


class ServiceError(Exception):
    """Base exception for service errors."""

    kind = 'ServiceError'

    def __init__(self, message: str, status_code: int = 400, details: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        data = {
            'error': self.kind,
            'message': self.message
        }
        if self.details:
            data['details'] = self.details
        return data


class NotFoundError(ServiceError):
    kind = 'NotFound'

    def __init__(self, message: str):
        super().__init__(message, 404)


class ForbiddenError(ServiceError):
    kind = 'Forbidden'

    def __init__(self, message: str):
        super().__init__(message, 403)


class ValidationError(ServiceError):
    kind = 'ValidationError'

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, 400, details)


class InvalidStateTransitionError(ServiceError):
    kind = 'InvalidStateTransition'

    def __init__(self, message: str):
        super().__init__(message, 409)


class AlreadyVerifiedError(ServiceError):
    kind = 'AlreadyVerified'

    def __init__(self, message: str):
        super().__init__(message, 409)


class InvalidAmountError(ServiceError):
    kind = 'InvalidAmount'

    def __init__(self, message: str):
        super().__init__(message, 400)


class GamificationDisabledError(ServiceError):
    kind = 'GamificationDisabled'

    def __init__(self, message: str):
        super().__init__(message, 400)


class DuplicateAwardError(ServiceError):
    kind = 'DuplicateAward'

    def __init__(self, message: str):
        super().__init__(message, 409)


class ChoreInUseError(ServiceError):
    kind = 'ChoreInUse'

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, 409, details)
