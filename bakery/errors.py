# bakery/errors.py
"""Error taxonomy raised by the service layer.

Each error carries the HTTP status it maps to and a message that is safe to
show to the client. The handlers in ``bakery.app`` turn them into JSON.
"""


class BakeryError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'message': self.message}


class ValidationError(BakeryError):
    status_code = 400
    default_message = 'Invalid input'


class AuthenticationError(BakeryError):
    status_code = 401
    default_message = 'Not authenticated'


class AuthorizationError(BakeryError):
    status_code = 403
    default_message = 'Not authorized'


class ForbiddenError(AuthorizationError):
    default_message = 'Not a participant'


class NotFoundError(BakeryError):
    status_code = 404
    default_message = 'Not found'


class ConflictError(BakeryError):
    status_code = 409
    default_message = 'Conflicting state'


class DuplicateApplicationError(ConflictError):
    default_message = 'A pending application already exists'


class AlreadyProcessedError(ConflictError):
    default_message = 'Application has already been processed'


class InvalidTransitionError(ConflictError):
    default_message = 'Invalid status transition'


class InvalidStateError(ConflictError):
    default_message = 'Operation not allowed in the current state'


class DuplicateReviewError(ConflictError):
    default_message = 'Order has already been reviewed'
