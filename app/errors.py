"""
app/errors.py — Error taxonomy for the initiative engine

Every failure the engine reports is one of these. The JSON blueprint turns
them into {"success": false, "error": <code>, "message": <text>} responses,
so clients can branch on `error` (e.g. offer to start combat on
"invalid_state", show a permission message on "forbidden").
"""


class InitiativeError(Exception):
    """Base class. Subclasses set `code` and `status_code`."""
    code = 'error'
    status_code = 400
    default_message = 'Invalid request.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'success': False, 'error': self.code, 'message': self.message}


class Forbidden(InitiativeError):
    """Wrong role or not the owner of the character."""
    code = 'forbidden'
    status_code = 403
    default_message = 'You do not have permission to do that.'


class InvalidState(InitiativeError):
    """No active session, or the session can't take this action right now."""
    code = 'invalid_state'
    status_code = 409
    default_message = 'No active initiative session.'


class Conflict(InvalidState):
    """A session is already running for this campaign."""
    code = 'conflict'
    default_message = 'Initiative session is already active.'


class NotFound(InitiativeError):
    code = 'not_found'
    status_code = 404
    default_message = 'Not found.'


class ValidationError(InitiativeError):
    """Roll out of range, empty name, or a malformed batch item."""
    code = 'validation_error'
    status_code = 400
    default_message = 'Invalid input.'


class InternalError(InitiativeError):
    """Storage failed. The real error is logged, never sent to the client."""
    code = 'internal_error'
    status_code = 500
    default_message = 'An internal error occurred. Please try again.'
