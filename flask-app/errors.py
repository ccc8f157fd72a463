# flask-app/errors.py

"""Error taxonomy shared by the store and the HTTP layer.

Every error carries the HTTP status the boundary answers with, so route
handlers can simply let them propagate to the registered error handler.
"""


class MediChainError(Exception):
    """Base class for all application errors."""

    status_code = 500

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"error": self.message}
        payload.update(self.details)
        return payload


class InvalidInput(MediChainError):
    """Schema or validation failure (e.g. record ids not owned by the caller)."""
    status_code = 400


class Unauthorized(MediChainError):
    """No session identity on a route that requires one."""
    status_code = 401


class Forbidden(MediChainError):
    status_code = 403


class NotFound(MediChainError):
    status_code = 404


class Conflict(MediChainError):
    status_code = 409


class IOFailure(MediChainError):
    """File write/read/delete failure."""
    status_code = 500
