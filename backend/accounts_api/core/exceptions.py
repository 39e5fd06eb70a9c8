# accounts_api/core/exceptions.py
"""
Domain exceptions raised by the user and auth services.

Services raise these; the API endpoints catch them at their own boundary and
translate them into HTTP status codes. Nothing here knows about HTTP.
"""

from typing import Any, Dict, Optional


class AccountError(Exception):
    """Base class for account-related exceptions."""
    pass

class MalformedRequestError(AccountError):
    """A required field is missing or unusable."""
    pass

class ForbiddenError(AccountError):
    """The acting user is not allowed to perform the action."""
    pass

class NotFoundError(AccountError):
    """The target user does not exist."""
    pass

class ValidationFailedError(AccountError):
    """The store rejected the record (schema or uniqueness violation)."""

    def __init__(self, errors: Dict[str, Any]):
        super().__init__("Validation failed")
        self.errors = errors

class DuplicateKeyFieldError(AccountError):
    """A unique index rejected an insert or update."""

    def __init__(self, index_name: Optional[str], field: Optional[str] = None):
        super().__init__(f"Duplicate key on index {index_name}")
        self.index_name = index_name
        self.field = field

class InvalidTokenError(AccountError):
    pass

class ExpiredTokenError(AccountError):
    pass

class WeakPasswordError(AccountError):
    """Password does not satisfy the configured strength policy."""
    pass

class IncorrectPasswordError(AccountError):
    pass

class RegistrationDisabledError(AccountError):
    pass

class MailDeliveryError(AccountError):
    """The mail server could not be reached or refused the message."""
    pass
