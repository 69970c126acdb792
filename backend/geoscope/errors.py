"""Error taxonomy shared by the HTTP routes and the socket handlers.

Every expected failure of a room or round operation is raised as a
``GameError`` subclass. Routes render them as JSON with the matching status
code; socket handlers send them back to the originating player as an
``error`` event. Neither path lets them escape as a crash.
"""


class GameError(Exception):
    status_code = 400
    code = 'bad_request'
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        if self.retryable:
            payload['retryable'] = True
        return payload


class NotFound(GameError):
    status_code = 404
    code = 'not_found'


class BadState(GameError):
    status_code = 400
    code = 'bad_state'


class Forbidden(GameError):
    status_code = 403
    code = 'forbidden'


class Conflict(GameError):
    status_code = 409
    code = 'conflict'
    retryable = True


class Internal(GameError):
    status_code = 500
    code = 'internal'


class InvalidInput(GameError):
    status_code = 400
    code = 'invalid_input'
