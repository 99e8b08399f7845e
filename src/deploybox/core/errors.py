"""Error handling module for deploybox.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "error": {
        "code": "POOL_EXHAUSTED",
        "message": "No host ports available"
    }
}

Usage:
    from deploybox.core.errors import InvalidBundleError, PoolExhaustedError

    # Raise with default message
    raise PoolExhaustedError()

    # Raise with custom message
    raise InvalidBundleError("Unsupported file type '.exe'")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_BUNDLE = "INVALID_BUNDLE"
    EMPTY_ARCHIVE = "EMPTY_ARCHIVE"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    BUILD_FAILURE = "BUILD_FAILURE"
    ENGINE_UNAVAILABLE = "ENGINE_UNAVAILABLE"
    RECORD_PERSIST_FAILURE = "RECORD_PERSIST_FAILURE"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class DeployBoxError(Exception):
    """Base exception for deploybox.

    All deploybox specific exceptions should inherit from this class.
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


class UnauthorizedError(DeployBoxError):
    """401 Unauthorized - Caller identity missing."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401)


class InvalidBundleError(DeployBoxError):
    """400 Bad Request - Upload is neither an archive nor a recognized source file."""

    def __init__(
        self, message: str = "Unsupported file type. Please upload a .js or .zip file."
    ) -> None:
        super().__init__(ErrorCode.INVALID_BUNDLE, message, 400)


class EmptyArchiveError(DeployBoxError):
    """400 Bad Request - Archive extracted to nothing."""

    def __init__(
        self, message: str = "Uploaded zip is empty. Please upload a valid application"
    ) -> None:
        super().__init__(ErrorCode.EMPTY_ARCHIVE, message, 400)


class PoolExhaustedError(DeployBoxError):
    """503 Service Unavailable - Every host port in the pool is leased."""

    def __init__(self, message: str = "No available ports") -> None:
        super().__init__(ErrorCode.POOL_EXHAUSTED, message, 503)


class BuildFailureError(DeployBoxError):
    """422 Unprocessable Entity - Image build failed."""

    def __init__(self, message: str = "Image build failed") -> None:
        super().__init__(ErrorCode.BUILD_FAILURE, message, 422)


class EngineUnavailableError(DeployBoxError):
    """502 Bad Gateway - Container engine unreachable or timed out."""

    def __init__(self, message: str = "Container engine unavailable") -> None:
        super().__init__(ErrorCode.ENGINE_UNAVAILABLE, message, 502)


class RecordPersistFailureError(DeployBoxError):
    """500 Internal Server Error - Instance record could not be stored."""

    def __init__(self, message: str = "Failed to persist instance record") -> None:
        super().__init__(ErrorCode.RECORD_PERSIST_FAILURE, message, 500)


class InstanceNotFoundError(DeployBoxError):
    """404 Not Found - Instance not found."""

    def __init__(self, message: str = "Instance not found") -> None:
        super().__init__(ErrorCode.INSTANCE_NOT_FOUND, message, 404)


class InternalError(DeployBoxError):
    """500 Internal Server Error - Unexpected error."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(ErrorCode.INTERNAL_ERROR, message, 500)
