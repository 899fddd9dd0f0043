class StoreError(Exception):
    """Base error; carries the HTTP status the API answers with."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StoreError):
    status_code = 400
    default_message = "Invalid request"


class InsufficientStockError(ValidationError):
    default_message = "Insufficient stock"


class DuplicateError(ValidationError):
    default_message = "Already exists"


class NotFoundError(StoreError):
    status_code = 404
    default_message = "Not found"


class AuthenticationError(StoreError):
    status_code = 401
    default_message = "Not authenticated"


class PermissionDeniedError(StoreError):
    status_code = 403
    default_message = "Admin privileges required"
