"""Custom exception classes for taskgate.

Each error carries the HTTP status it maps to, so the API exception handler and
the audit interception layer can classify it without a lookup table.
"""


class TaskGateError(Exception):
    """Base exception for taskgate."""

    status_code: int = 400

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(TaskGateError):
    """Raised when no identity is present on the request."""
    status_code = 401


class AuthorizationError(TaskGateError):
    """Raised when the identity lacks a permission or tenant access."""
    status_code = 403


class ResourceNotFoundError(TaskGateError):
    """Raised when a requested resource is not found."""
    status_code = 404


class ResourceConflictError(TaskGateError):
    """Raised on unique-constraint violations and lost transition races."""
    status_code = 409


class InvalidTransitionError(ResourceConflictError):
    """Raised when a task transition is not valid from its current status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move task from '{current}' to '{target}'")


class ValidationError(TaskGateError):
    """Raised when input validation fails."""
    status_code = 422


class InternalError(TaskGateError):
    """Raised when storage fails unexpectedly."""
    status_code = 500
