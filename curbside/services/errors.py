"""Structured errors raised by the service layer"""


class PortalError(ValueError):
    """Base class for user-visible portal errors."""

    status_code = 500
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    status_code = 400
    kind = "validation_error"


class AuthError(PortalError):
    status_code = 401
    kind = "auth_error"


class PaymentError(PortalError):
    status_code = 402
    kind = "payment_error"


class NotFoundError(PortalError):
    status_code = 404
    kind = "not_found"


class PersistenceError(PortalError):
    status_code = 500
    kind = "persistence_error"
