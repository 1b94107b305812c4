"""Error handling module for devspaces.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "error": {
        "code": "WORKSPACE_NOT_FOUND",
        "message": "Workspace not found"
    }
}

Usage:
    from devspaces.core.errors import ConflictError, WorkspaceNotFoundError

    # Raise with default message
    raise WorkspaceNotFoundError()

    # Raise with custom message
    raise ConflictError("Workspace is already starting")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    AUTH_ERROR = "AUTH_ERROR"
    FORBIDDEN = "FORBIDDEN"
    SESSION_LOST = "SESSION_LOST"
    STATE_MISMATCH = "STATE_MISMATCH"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    AUTH_REJECTED = "AUTH_REJECTED"
    WORKSPACE_NOT_FOUND = "WORKSPACE_NOT_FOUND"
    CONFLICT = "CONFLICT"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    RUNTIME_FAILURE = "RUNTIME_FAILURE"
    SESSION_PERSIST_FAILED = "SESSION_PERSIST_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class DevSpacesError(Exception):
    """Base exception for devspaces.

    All devspaces specific exceptions should inherit from this class.
    This enables centralized exception handling in FastAPI.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code to return
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(
            error=ErrorDetail(code=self.code.value, message=self.message)
        )


class ValidationError(DevSpacesError):
    """400 Bad Request - Malformed client input."""

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message, 400)


class UnauthorizedError(DevSpacesError):
    """401 Unauthorized - Authentication required."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401)


class ForbiddenError(DevSpacesError):
    """403 Forbidden - Permission denied."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class WorkspaceNotFoundError(DevSpacesError):
    """404 Not Found - Workspace not found."""

    def __init__(self, message: str = "Workspace not found") -> None:
        super().__init__(ErrorCode.WORKSPACE_NOT_FOUND, message, 404)


class ConflictError(DevSpacesError):
    """409 Conflict - Compare-and-swap precondition failed. Safe to retry."""

    def __init__(
        self, message: str = "Workspace state changed, retry the operation"
    ) -> None:
        super().__init__(ErrorCode.CONFLICT, message, 409)


class DuplicateNameError(DevSpacesError):
    """409 Conflict - A workspace with this name already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            ErrorCode.DUPLICATE_NAME, f"Workspace name '{name}' is already taken", 409
        )


class RuntimeFailureError(DevSpacesError):
    """500 Internal Server Error - The container runtime call failed.

    The workspace is parked in the ``error`` status for remediation.
    """

    def __init__(self, message: str = "Container runtime operation failed") -> None:
        super().__init__(ErrorCode.RUNTIME_FAILURE, message, 500)


class SessionPersistError(DevSpacesError):
    """500 Internal Server Error - The session could not be saved."""

    def __init__(self, message: str = "Session error") -> None:
        super().__init__(ErrorCode.SESSION_PERSIST_FAILED, message, 500)


class InternalError(DevSpacesError):
    """500 Internal Server Error - Unexpected error."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(ErrorCode.INTERNAL_ERROR, message, 500)


# =============================================================================
# OAuth flow errors
# =============================================================================


class AuthError(DevSpacesError):
    """401 - The identity provider handshake failed (e.g. code exchange)."""

    def __init__(self, message: str = "An error occurred during authentication") -> None:
        super().__init__(ErrorCode.AUTH_ERROR, message, 401)


class SessionLostError(DevSpacesError):
    """403 - No session or no pending nonce on the OAuth callback."""

    def __init__(
        self,
        message: str = "Session lost during authentication. Please try logging in again.",
    ) -> None:
        super().__init__(ErrorCode.SESSION_LOST, message, 403)


class StateMismatchError(DevSpacesError):
    """403 - The callback state does not match the session nonce."""

    def __init__(
        self, message: str = "Invalid state parameter. Please try logging in again."
    ) -> None:
        super().__init__(ErrorCode.STATE_MISMATCH, message, 403)


class NotAMemberError(DevSpacesError):
    """403 - The user is not a member of the required organization."""

    def __init__(self, username: str, organization: str) -> None:
        self.username = username
        self.organization = organization
        super().__init__(
            ErrorCode.NOT_A_MEMBER,
            f"User {username} is not a member of organization {organization}",
            403,
        )


class AuthRejectedError(DevSpacesError):
    """403 - The application success hook rejected the login."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(ErrorCode.AUTH_REJECTED, message, 403)
