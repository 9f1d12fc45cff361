"""
Error taxonomy for the dispatch core.

Each kind maps to one caller-visible outcome:
    ValidationError    -> fix your request (400)
    NotFoundError      -> referenced entity is missing (404)
    ConflictError      -> already handled / lost a race, retry or refresh (409)
    AuthorizationError -> actor does not own the resource (403)
"""


class DispatchError(Exception):
    """Base class for every failure the dispatch core reports to callers."""

    status_code = 400
    error_type = "error"

    def __init__(self, message, **details):
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}
        super().__init__(message)

    def to_dict(self):
        return {
            "success": False,
            "error": self.message,
            "error_type": self.error_type,
            "details": self.details,
        }


class ValidationError(DispatchError):
    """Malformed or missing input; nothing was changed."""

    status_code = 400
    error_type = "validation"


class NotFoundError(DispatchError):
    status_code = 404
    error_type = "not_found"


class ConflictError(DispatchError):
    """The entity is in the wrong state, usually because another caller got there first."""

    status_code = 409
    error_type = "conflict"


class AuthorizationError(DispatchError):
    status_code = 403
    error_type = "forbidden"
