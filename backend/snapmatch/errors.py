"""Room errors surfaced to clients as ``{'error': message}`` JSON bodies."""


class RoomError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class InvalidRequest(RoomError):
    status_code = 400


class NotAuthorized(RoomError):
    """A non-host asked for a host-only transition."""
    status_code = 403


class SessionMismatch(RoomError):
    """The caller's session belongs to another room."""
    status_code = 403


class RoomNotFound(RoomError):
    status_code = 404


class PreconditionFailed(RoomError):
    """The action exists but is not available yet (player count, prompts, photos)."""
    status_code = 409


class Conflict(RoomError):
    status_code = 409


class UploadRejected(RoomError):
    status_code = 400
