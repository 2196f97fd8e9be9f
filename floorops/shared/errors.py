"""Domain error taxonomy.

Services raise these; the application exception handler renders them as
``{"error": message, ...extra}`` with the mapped HTTP status.
"""

from typing import Any, Optional


class DomainError(Exception):
    """Base class for failures detected by the core services"""

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, **self.extra}


class InvalidState(DomainError):
    status_code = 409
    default_message = "Operation not allowed in the current state"


class AlreadyVerified(DomainError):
    status_code = 409
    default_message = "OTP already verified"


class Conflict(DomainError):
    status_code = 409
    default_message = "Record was modified concurrently, please reload and retry"


class Expired(DomainError):
    default_message = "OTP has expired, please request a new one"


class InvalidCode(DomainError):
    default_message = "Invalid OTP"


class AttemptsExceeded(DomainError):
    default_message = "Maximum verification attempts exceeded, please request a new OTP"


class RateLimited(DomainError):
    status_code = 429
    default_message = "Please wait before requesting a new OTP"

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message or f"Please wait {retry_after_seconds} seconds before resending",
            retryAfter=retry_after_seconds,
        )


class InvalidQuantity(DomainError):
    default_message = "Quantity must be a positive integer"


class InsufficientStock(DomainError):
    default_message = "Insufficient stock"


class ValidationFailed(DomainError):
    default_message = "Validation failed"


class NotFound(DomainError):
    status_code = 404
    default_message = "Not found"


class PermissionDenied(DomainError):
    status_code = 403
    default_message = "Not authorized"
