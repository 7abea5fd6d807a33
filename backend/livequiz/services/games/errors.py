class GameError(Exception):
    """Base for errors surfaced to API callers as ``{'error', 'code'}`` JSON."""

    status_code = 400
    code = 'invalid-argument'

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class InvalidArgument(GameError):
    status_code = 400
    code = 'invalid-argument'


class PermissionDenied(GameError):
    status_code = 403
    code = 'permission-denied'


class NotFound(GameError):
    status_code = 404
    code = 'not-found'


class FailedPrecondition(GameError):
    status_code = 409
    code = 'failed-precondition'


class QuestionClosed(FailedPrecondition):
    code = 'question-closed'
