# localdeals/core/exceptions.py
"""
Domain errors raised by the service layer.

Each error carries the HTTP status the API answers with.
"""


class DealsError(Exception):
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(DealsError):
    status_code = 404
    default_message = "Resource not found"


class AuthorizationError(DealsError):
    status_code = 403
    default_message = "Not authorized to access this resource"


class ValidationError(DealsError):
    status_code = 400
    default_message = "Invalid request"


class QuotaExceededError(DealsError):
    status_code = 400
    default_message = "Subscription limit reached"


class InvalidStateError(DealsError):
    status_code = 409
    default_message = "Resource is not in a valid state for this action"


class ExpiredError(DealsError):
    status_code = 410
    default_message = "Resource has expired"
