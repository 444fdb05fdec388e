"""Domain errors raised by the repositories.

Each kind maps onto one HTTP status in ``messenger.main``; callers should
never have to inspect the message text to tell them apart.
"""


class MessengerError(Exception):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotAuthorized(MessengerError):
    """Caller is not a participant, or not the sender for a delete."""

    status_code = 403
    default_detail = "Not authorized"


class InvalidOperation(MessengerError):
    """Request is well-formed but not allowed, e.g. hiding your own message."""

    status_code = 400
    default_detail = "Invalid operation"


class NotFound(MessengerError):
    status_code = 404
    default_detail = "Not found"


class Conflict(MessengerError):
    """Unique constraint lost, e.g. username already taken."""

    status_code = 409
    default_detail = "Conflict"


class Internal(MessengerError):
    status_code = 500
