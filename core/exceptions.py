"""Custom exception classes for the application.

Domain services raise these; `core.error_handlers` turns each one into the
standard JSON error body with the status code carried on the exception.
"""

from typing import Optional, Any, Dict


class AppException(Exception):
    """Base exception class for all application exceptions.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional additional error details.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Any):
        """Initialize not found error.

        Args:
            resource: Type of resource (e.g., 'Facility', 'Rating').
            identifier: ID or identifier that was not found.
        """
        message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, status_code=404, details={"resource": resource, "id": identifier})


class ConflictError(AppException):
    """Exception raised when a write would violate a uniqueness rule."""

    def __init__(self, message: str, resource: Optional[str] = None):
        details = {"resource": resource} if resource else {}
        super().__init__(message, status_code=409, details=details)


class InvalidStateError(AppException):
    """Exception raised when an operation is not allowed in the current state.

    Covers expired edit/delete windows, submissions outside the meal window
    and state machine transitions whose guard fails.
    """

    def __init__(self, message: str, state: Optional[str] = None):
        details = {"state": state} if state else {}
        super().__init__(message, status_code=400, details=details)


class ForbiddenError(AppException):
    """Exception raised when the caller may not act on a resource."""

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(message, status_code=403)


class ValidationError(AppException):
    """Exception raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        """Initialize validation error.

        Args:
            message: Validation error message.
            field: Optional field name that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, status_code=400, details=details)


class UnavailableError(AppException):
    """Exception raised when storage or a backing service cannot serve the request.

    Clients may retry the request.
    """

    def __init__(self, message: str = "Service temporarily unavailable", operation: Optional[str] = None):
        details = {"retryable": True}
        if operation:
            details["operation"] = operation
        super().__init__(message, status_code=503, details=details)


class AuthenticationError(AppException):
    """Exception raised when credentials or tokens are missing or invalid."""

    def __init__(self, message: str = "Not authorized to access this route"):
        super().__init__(message, status_code=401)


class AccountLockedError(AppException):
    """Exception raised when logging into an account locked by failed attempts."""

    def __init__(self, locked_until: Any = None):
        details = {"locked_until": str(locked_until)} if locked_until else {}
        super().__init__(
            "Account temporarily locked due to too many failed login attempts",
            status_code=423,
            details=details,
        )
